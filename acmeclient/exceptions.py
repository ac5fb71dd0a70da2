"""ACME client errors."""
from typing import Optional

import requests


BODY_EXCERPT = 500


class ACMEError(Exception):
    """
    Generic ACME error. `response` is the http response that triggered the
    error, if there is one; `step` names the part of the issuance flow that
    failed, one of `directory`, `nonce`, `account`, `order`, `authorization`,
    `challenge`, `finalize`, `download`.
    """

    step = ''

    def __init__(self,
                 message: str = '',
                 response: Optional[requests.Response] = None,
                 step: str = ''):
        super().__init__(message)
        self.message = message
        self.response = response
        if step:
            self.step = step

    @property
    def status_code(self) -> Optional[int]:
        if self.response is None:
            return None
        return self.response.status_code

    @property
    def body(self) -> str:
        if self.response is None:
            return ''
        return self.response.text

    def __str__(self) -> str:
        s = self.message or type(self).__name__
        if self.step:
            s = f'[{self.step}] {s}'
        if self.response is not None:
            excerpt = self.body[:BODY_EXCERPT]
            s += f' (HTTP {self.status_code}): {excerpt}'
        return s


class DirectoryIncomplete(ACMEError):
    """directory could not be fetched or misses a required field"""
    step = 'directory'


class NonceUnavailable(ACMEError):
    """`Replay-Nonce` header missing from the newNonce response"""
    step = 'nonce'


class AccountNotSet(ACMEError):
    """authenticated call attempted before create or restore account"""
    step = 'account'


class AccountCreationFailed(ACMEError):
    step = 'account'


class MissingAccountUrl(ACMEError):
    """successful newAccount response without a `Location` header"""
    step = 'account'


class OrderCreationFailed(ACMEError):
    step = 'order'


class OrderFetchFailed(ACMEError):
    step = 'order'


class AuthorizationFetchFailed(ACMEError):
    step = 'authorization'


class NoDns01Challenge(ACMEError):
    step = 'authorization'


class DNSProviderNotSet(ACMEError):
    step = 'challenge'


class DNSProviderError(ACMEError):
    """raised by dns provider implementations on a failed record change"""
    step = 'challenge'


class ChallengeNotificationFailed(ACMEError):
    step = 'challenge'


class FinalizationFailed(ACMEError):
    step = 'finalize'


class OrderDidNotFinalize(ACMEError):
    step = 'finalize'


class CertificateDownloadFailed(ACMEError):
    step = 'download'


class MalformedResponse(ACMEError):
    """response body is not the resource the protocol describes"""


class RetryExhausted(ACMEError):
    """
    Retry budget spent on a retryable failure. This is raised instead of
    the last failure itself, so a caller of e.g. `create_account` sees
    `RetryExhausted` rather than `AccountCreationFailed` once the retries
    run out; catch `ACMEError` to handle both. The last failure is kept
    unchanged in `last_error` and is also the `__cause__` of this error;
    `response`, `status_code`, `body` and `step` are the ones of the last
    failure.
    """

    def __init__(self, label: str, attempts: int, last_error: Exception):
        response = getattr(last_error, 'response', None)
        step = getattr(last_error, 'step', '')
        super().__init__(
            f'{label} failed after {attempts} attempts: {last_error}',
            response=response,
            step=step
        )
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


def raise_for_status(resp: requests.Response,
                     error_type: type,
                     message: str) -> requests.Response:
    """raise `error_type` carrying `resp` if it is not a 2xx response"""
    if not 200 <= resp.status_code < 300:
        raise error_type(message, response=resp)
    return resp
