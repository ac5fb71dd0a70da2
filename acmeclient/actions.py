"""
`ACMEClient` drives certificate issuance against one ACME server:

 * directory lookup, lazily on first use or explicitly with `init()`;
 * account creation, or restoring an account created earlier;
 * order creation and dns-01 challenge completion;
 * finalization, order polling and certificate download.

Every authenticated request draws a fresh nonce, is signed with the account
key and runs inside the client's `RetryPolicy`.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging
import time

import requests
from cryptography.hazmat.primitives.asymmetric import ec

from acmeclient import settings
from acmeclient.ACMEobj import ACMEAccount, ACMEAuthorization, ACMEOrder
from acmeclient.ACMEobj import AuthorizationStatus, Directory, OrderStatus
from acmeclient.challenges import ChallengeHandler, Dns01Handler
from acmeclient.dnsprovider.base import DNSProvider
from acmeclient.exceptions import AccountCreationFailed, AccountNotSet
from acmeclient.exceptions import AuthorizationFetchFailed
from acmeclient.exceptions import CertificateDownloadFailed
from acmeclient.exceptions import ChallengeNotificationFailed
from acmeclient.exceptions import DNSProviderNotSet, FinalizationFailed
from acmeclient.exceptions import MissingAccountUrl, OrderCreationFailed
from acmeclient.exceptions import OrderDidNotFinalize, OrderFetchFailed
from acmeclient.exceptions import raise_for_status
from acmeclient.base import b64_encode
from acmeclient.jwk import JWKEC
from acmeclient.request import ACMERequestActions
from acmeclient.retry import RetryConfig, RetryPolicy
from acmeclient.util import csr_to_der


__all__ = ['ACMEClient']


logger = logging.getLogger(__name__)


class ACMEClient:

    def __init__(self,
                 directory_url: str,
                 retry_config: Union[RetryConfig, Mapping[str, Any], None] = None,
                 dns_provider: Optional[DNSProvider] = None,
                 poll_interval: float = settings.POLL_INTERVAL,
                 poll_attempts: int = settings.POLL_ATTEMPTS,
                 verify_ssl: bool = True,
                 timeout: float = settings.REQUEST_TIMEOUT,
                 sleep: Callable[[float], Any] = time.sleep):
        """
        `retry_config` may be a partial mapping, missing keys take the values
        of `settings.DEFAULT_RETRY`; `sleep` is used for both backoff and
        order polling.
        """
        if not isinstance(retry_config, RetryConfig):
            retry_config = RetryConfig.from_overrides(retry_config)
        self.directory_url = directory_url
        self.retry_config = retry_config
        self.retry = RetryPolicy(retry_config, sleep=sleep)
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.req_action = ACMERequestActions(
            directory_url, verify_ssl=verify_ssl, timeout=timeout
        )
        self.account: Optional[ACMEAccount] = None
        self.challenge_handlers: Dict[str, ChallengeHandler] = {}
        if dns_provider is not None:
            self.set_dns_provider(dns_provider)

    # directory

    def init(self) -> Directory:
        """fetch the directory; also used to refresh it"""
        return self.retry.with_retry(self.req_action.query_dir, 'directory')

    refresh = init

    @property
    def directory(self) -> Optional[Directory]:
        return self.req_action.acme_dir

    def _ensure_directory(self) -> Directory:
        if self.req_action.acme_dir is None:
            return self.init()
        return self.req_action.acme_dir

    @property
    def terms_of_service(self) -> Optional[str]:
        return self._ensure_directory().meta.terms_of_service

    @property
    def external_account_required(self) -> bool:
        return self._ensure_directory().meta.external_account_required

    @property
    def profiles(self) -> Mapping[str, str]:
        return self._ensure_directory().meta.profiles

    # account

    def create_account(self,
                       contact_email: str,
                       jwk: Optional[JWKEC] = None) -> Tuple[str, JWKEC]:
        """
        register a new account, a P-256 key is generated if `jwk` is not
        given; return `(account_url, jwk)` for the caller to store.

        see https://tools.ietf.org/html/rfc8555#section-7.3
        """
        acme_dir = self._ensure_directory()
        if acme_dir.meta.external_account_required:
            logger.warning(
                'server requires external account binding, which is not '
                'supported; account creation will likely be refused'
            )
        jwk = jwk or JWKEC.generate()
        payload = {
            'termsOfServiceAgreed': True,
            'contact': [f'mailto:{contact_email}'],
        }

        def _create() -> requests.Response:
            resp = self.req_action.signed_request(
                acme_dir.new_account, payload, jwk
            )
            return raise_for_status(
                resp, AccountCreationFailed, 'failed to create account'
            )

        resp = self.retry.with_retry(_create, 'newAccount')
        acct_location = resp.headers.get('Location')
        if not acct_location:
            raise MissingAccountUrl(
                'no account url returned by server', response=resp
            )
        logger.info('account %s created', acct_location)
        self.account = ACMEAccount(acct_location, jwk)
        return acct_location, jwk

    def restore_account(self,
                        account_url: str,
                        key: Union[JWKEC, ec.EllipticCurvePrivateKey]) -> None:
        """use an existing account, no request is sent"""
        if isinstance(key, ec.EllipticCurvePrivateKey):
            key = JWKEC.from_private_key(key)
        self.account = ACMEAccount(account_url, key)

    def _require_account(self) -> ACMEAccount:
        if self.account is None:
            raise AccountNotSet(
                'account not set, call create_account or restore_account first'
            )
        return self.account

    def _signed(self,
                url: str,
                payload: Any,
                error_type: type,
                message: str,
                label: str,
                headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """signed `kid` request, retried, non-2xx raises `error_type`"""
        acct = self._require_account()
        self._ensure_directory()

        def _request() -> requests.Response:
            resp = self.req_action.signed_request(
                url, payload, acct.jwk, acct.acct_location, headers
            )
            return raise_for_status(resp, error_type, message)

        return self.retry.with_retry(_request, label)

    # order, authorization, challenge

    def create_order(self,
                     domains: List[str],
                     profile: Optional[str] = None) -> ACMEOrder:
        """
        request for new order; `profile` must be one advertised in the
        directory meta.

        see https://tools.ietf.org/html/rfc8555#section-7.4
        """
        acme_dir = self._ensure_directory()
        payload: Dict[str, Any] = {
            'identifiers': [{'type': 'dns', 'value': d} for d in domains]
        }
        if profile is not None:
            if profile not in acme_dir.meta.profiles:
                raise ValueError(
                    f'profile {profile!r} not offered by server, '
                    f'choose from {sorted(acme_dir.meta.profiles)}'
                )
            payload['profile'] = profile
        resp = self._signed(
            acme_dir.new_order, payload,
            OrderCreationFailed, 'failed to create order', 'newOrder'
        )
        order = ACMEOrder(resp)
        logger.info(
            'order %s created for %s', order.order_location, ', '.join(domains)
        )
        return order

    def fetch_order(self, order_url: str) -> ACMEOrder:
        resp = self._signed(
            order_url, '', OrderFetchFailed,
            f'failed to fetch order {order_url}', 'order'
        )
        return ACMEOrder(resp, order_url=order_url)

    def fetch_authorization(self, auth_url: str) -> ACMEAuthorization:
        resp = self._signed(
            auth_url, '', AuthorizationFetchFailed,
            f'failed to fetch authorization {auth_url}', 'authorization'
        )
        return ACMEAuthorization(resp, auth_url=auth_url)

    def set_dns_provider(self, dns_provider: DNSProvider) -> None:
        self.register_challenge_handler(Dns01Handler(dns_provider))

    def register_challenge_handler(self, handler: ChallengeHandler) -> None:
        self.challenge_handlers[handler.chall_type] = handler

    def _handler(self, chall_type: str) -> ChallengeHandler:
        if chall_type not in self.challenge_handlers:
            if chall_type == Dns01Handler.chall_type:
                raise DNSProviderNotSet(
                    'dns provider not set, call set_dns_provider first'
                )
            raise ValueError(f'no handler for challenge type {chall_type}')
        return self.challenge_handlers[chall_type]

    def respond_to_challenge(self, chall_url: str) -> requests.Response:
        """
        tell the server the challenge is ready; the payload is the empty
        json object `{}`.

        see https://tools.ietf.org/html/rfc8555#section-7.5.1
        """
        # an empty json object, not an empty payload, see rfc8555 section 7.5.1
        return self._signed(
            chall_url, {}, ChallengeNotificationFailed,
            f'failed to respond to challenge {chall_url}', 'challenge'
        )

    def complete_challenges(self,
                            order: ACMEOrder,
                            chall_type: str) -> List[str]:
        """
        publish and notify a `chall_type` challenge for every authorization
        of `order`, in server order; return the authorization urls handled.
        Authorizations already valid are returned without any work. Whether
        validation succeeds is seen later, when polling the order.
        """
        acct = self._require_account()
        handler = self._handler(chall_type)
        completed: List[str] = []
        for auth_url in order.authorizations:
            auth = self.fetch_authorization(auth_url)
            if auth.status is AuthorizationStatus.VALID:
                logger.info(
                    'authorization for %s is already valid', auth.identifier_value
                )
                completed.append(auth_url)
                continue
            chall = auth.challenge(chall_type)
            if chall is None:
                raise handler.missing_error(
                    f'no {chall_type} challenge for {auth.identifier_value}',
                    response=auth._resp
                )
            handler.perform(auth, chall, acct.jwk)
            self.respond_to_challenge(chall.url)
            logger.info(
                'responded to %s challenge for %s',
                chall_type, auth.identifier_value
            )
            completed.append(auth_url)
        return completed

    def complete_dns01_challenges(self, order: ACMEOrder) -> List[str]:
        return self.complete_challenges(order, Dns01Handler.chall_type)

    def cleanup_dns01_records(self, order: ACMEOrder) -> None:
        """remove the dns-01 TXT records of every identifier in `order`"""
        handler = self._handler(Dns01Handler.chall_type)
        for domain in order.domains:
            handler.cleanup(domain)

    # finalize

    def finalize(self, order: ACMEOrder, csr: Union[bytes, str]) -> str:
        """
        send the csr (DER, or PEM which is converted), poll the order until
        it is valid and return the downloaded PEM certificate chain. Calling
        it again on the same order is safe.

        see https://tools.ietf.org/html/rfc8555#section-7.4 p47
        """
        payload = {'csr': b64_encode(csr_to_der(csr))}
        try:
            resp = self._signed(
                order.finalize, payload, FinalizationFailed,
                'failed to finalize order', 'finalize'
            )
        except FinalizationFailed as e:
            current = self._already_finalized(order, e)
            if current is None:
                raise
        else:
            order_url = order.order_location or resp.headers.get('Location', '')
            current = ACMEOrder(resp, order_url=order_url)
        current = self._poll_order(current, current._resp)
        if not current.certificate:
            raise OrderDidNotFinalize(
                'order is valid but has no certificate url', response=current._resp
            )
        logger.info('order %s is valid', current.order_location)
        return self.download_certificate(current.certificate)

    def _already_finalized(self,
                           order: ACMEOrder,
                           error: FinalizationFailed) -> Optional[ACMEOrder]:
        """
        A csr sent to an order that left `ready` is refused with
        `orderNotReady`. That happens when an earlier finalize went through
        but its reply was lost, whether it was sent by a previous call or
        by a retry of this one. Return the order to poll if it is
        `processing` or `valid`, else None.
        """
        if not order.order_location or 'orderNotReady' not in error.body:
            return None
        current = self.fetch_order(order.order_location)
        if current.status not in (OrderStatus.PROCESSING, OrderStatus.VALID):
            return None
        logger.info(
            'order %s already finalized, status %s',
            current.order_location, current.status.value
        )
        return current

    def _poll_order(self,
                    order: ACMEOrder,
                    resp: requests.Response) -> ACMEOrder:
        for attempt in range(self.poll_attempts):
            if order.status is OrderStatus.VALID:
                return order
            if order.status is OrderStatus.INVALID:
                break
            if not order.order_location:
                raise OrderDidNotFinalize(
                    'order has no url to poll', response=resp
                )
            self.sleep(self._poll_delay(resp))
            logger.debug(
                'polling order %s, attempt %d', order.order_location, attempt + 1
            )
            order = self.fetch_order(order.order_location)
            resp = order._resp
        if order.status is OrderStatus.VALID:
            return order
        raise OrderDidNotFinalize(
            f'order {order.order_location} is {order.status.value} '
            f'after {self.poll_attempts} polls, error: {order.error}',
            response=resp
        )

    def _poll_delay(self, resp: requests.Response) -> float:
        """
        `Retry-After` in seconds, if the server sent one, else the fixed
        poll interval

        see https://tools.ietf.org/html/rfc8555#section-7.4 p48
        """
        retry_after = resp.headers.get('Retry-After', '')
        if retry_after.isdigit():
            return min(float(retry_after), settings.MAX_RETRY_AFTER)
        return self.poll_interval

    def download_certificate(self, cert_url: str) -> str:
        """
        download the certificate chain, leaf first.

        see https://tools.ietf.org/html/rfc8555#section-7.4.2
        """
        resp = self._signed(
            cert_url, '', CertificateDownloadFailed,
            f'failed to download certificate {cert_url}', 'certificate',
            headers={'Accept': ACMERequestActions.PEM_CHAIN_CONTENT_TYPE}
        )
        return resp.text

    def close(self) -> None:
        self.req_action.close()
