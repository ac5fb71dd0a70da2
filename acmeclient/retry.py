"""
Retry wrapper for requests sent to an ACME server.

A failure is retried when there is no http response at all (network error),
when the server is rate limiting (429) or failing (5xx), and when a 400
response complains about the nonce; the operation draws a new nonce on every
attempt, so re-running it is the whole remedy for `badNonce`. Anything else
is raised at once.
"""
from typing import Any, Callable, Mapping, NamedTuple, Optional, TypeVar
import logging
import time

import requests

from acmeclient import settings
from acmeclient.exceptions import ACMEError, RetryExhausted


logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryConfig(NamedTuple):
    """delays are in milliseconds"""
    initial_delay: float = settings.DEFAULT_RETRY['initial_delay']
    max_delay: float = settings.DEFAULT_RETRY['max_delay']
    max_retries: int = settings.DEFAULT_RETRY['max_retries']
    backoff_factor: float = settings.DEFAULT_RETRY['backoff_factor']

    @classmethod
    def from_overrides(cls,
                       overrides: Optional[Mapping[str, Any]] = None
                       ) -> 'RetryConfig':
        """merge a partial mapping onto the defaults"""
        overrides = dict(overrides or {})
        unknown = set(overrides) - set(cls._fields)
        if unknown:
            raise ValueError(f'unknown retry config keys {sorted(unknown)}')
        config = cls()._replace(**overrides)
        if config.max_retries < 0:
            raise ValueError('max_retries must not be negative')
        if config.initial_delay < 0 or config.max_delay < 0:
            raise ValueError('retry delays must not be negative')
        if config.backoff_factor < 1:
            raise ValueError('backoff_factor must be at least 1')
        return config

    def delays(self):
        """yield the sleep before each retry, in milliseconds"""
        delay = min(self.initial_delay, self.max_delay)
        for _ in range(self.max_retries):
            yield delay
            delay = min(delay * self.backoff_factor, self.max_delay)


def _response_of(error: Exception) -> Optional[requests.Response]:
    response = getattr(error, 'response', None)
    if isinstance(response, requests.Response):
        return response
    return None


def is_retryable(error: Exception) -> bool:
    """
    classify a failure raised by an ACME request; only `ACMEError` and
    `requests` errors are candidates for a retry
    """
    if not isinstance(error, (ACMEError, requests.RequestException)):
        return False
    resp = _response_of(error)
    if resp is None:
        # network level failure; an ACMEError without a response is local
        return isinstance(error, requests.RequestException)
    status = resp.status_code
    if status == 429 or status >= 500:
        return True
    if status == 400:
        # see https://tools.ietf.org/html/rfc8555#section-6.5
        return 'nonce' in resp.text.lower()
    return False


class RetryPolicy:
    """
    `sleep` takes seconds, like `time.sleep`; tests pass a fake to observe
    the backoff without waiting.
    """

    def __init__(self,
                 config: Optional[RetryConfig] = None,
                 sleep: Callable[[float], Any] = time.sleep):
        self.config = config or RetryConfig()
        self.sleep = sleep

    def with_retry(self, operation: Callable[[], T], label: str) -> T:
        attempts = 0
        delays = self.config.delays()
        while True:
            attempts += 1
            try:
                return operation()
            except Exception as e:
                if not is_retryable(e):
                    raise
                delay = next(delays, None)
                if delay is None:
                    logger.warning(
                        '%s: giving up after %d attempts', label, attempts
                    )
                    raise RetryExhausted(label, attempts, e) from e
                logger.warning(
                    '%s: attempt %d failed (%s), retry in %d ms',
                    label, attempts, _describe(e), delay
                )
                self.sleep(delay / 1000)


def _describe(error: Exception) -> str:
    resp = _response_of(error)
    if resp is None:
        return f'{type(error).__name__}: {error}'
    return f'HTTP {resp.status_code}'
