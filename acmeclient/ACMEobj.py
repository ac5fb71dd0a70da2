from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple
import requests

from acmeclient.base import _ACMERespObject
from acmeclient.exceptions import DirectoryIncomplete, MalformedResponse
from acmeclient.jwk import JWKEC


class OrderStatus(str, Enum):
    """see https://tools.ietf.org/html/rfc8555#section-7.1.6"""
    PENDING = 'pending'
    READY = 'ready'
    PROCESSING = 'processing'
    VALID = 'valid'
    INVALID = 'invalid'


class AuthorizationStatus(str, Enum):
    PENDING = 'pending'
    VALID = 'valid'
    INVALID = 'invalid'
    DEACTIVATED = 'deactivated'
    EXPIRED = 'expired'
    REVOKED = 'revoked'


class ChallengeStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    VALID = 'valid'
    INVALID = 'invalid'


class DirectoryMeta(NamedTuple):
    terms_of_service: Optional[str] = None
    website: Optional[str] = None
    caa_identities: Tuple[str, ...] = ()
    external_account_required: bool = False
    # profile name -> description, see draft-ietf-acme-profiles
    profiles: Mapping[str, str] = MappingProxyType({})


class Directory(NamedTuple):
    """
    acme server resources, fetched once per client;

    see https://tools.ietf.org/html/rfc8555#section-7.1.1
    """
    new_nonce: str
    new_account: str
    new_order: str
    revoke_cert: str
    key_change: str
    meta: DirectoryMeta

    # json field name -> attr name
    endpoints = (
        ('newNonce', 'new_nonce'),
        ('newAccount', 'new_account'),
        ('newOrder', 'new_order'),
        ('revokeCert', 'revoke_cert'),
        ('keyChange', 'key_change'),
    )

    @classmethod
    def from_json(cls,
                  data: Any,
                  resp: Optional[requests.Response] = None) -> 'Directory':
        if not isinstance(data, dict):
            raise DirectoryIncomplete(
                'directory is not a json object', response=resp
            )
        missing = [k for k, _ in cls.endpoints if not data.get(k)]
        if not isinstance(data.get('meta'), dict):
            missing.append('meta')
        if missing:
            raise DirectoryIncomplete(
                f'directory misses {", ".join(missing)}', response=resp
            )
        meta = data['meta']
        return cls(
            meta=DirectoryMeta(
                terms_of_service=meta.get('termsOfService'),
                website=meta.get('website'),
                caa_identities=tuple(meta.get('caaIdentities') or ()),
                external_account_required=bool(
                    meta.get('externalAccountRequired', False)
                ),
                profiles=dict(meta.get('profiles') or {}),
            ),
            **{attr: data[k] for k, attr in cls.endpoints}
        )


class ACMEAccount(NamedTuple):
    """
    the account url (`kid`) and the key that created it; storing the pair is
    left to the caller.
    """
    acct_location: str
    jwk: JWKEC


class ACMEChallenge:
    """
    see https://tools.ietf.org/html/rfc8555#section-8
    """

    def __init__(self,
                 chall_dict: Dict[str, Any],
                 resp: Optional[requests.Response] = None):
        try:
            self.type: str = chall_dict['type']
            self.url: str = chall_dict['url']
            self.status = ChallengeStatus(chall_dict['status'])
        except (KeyError, TypeError, ValueError):
            raise MalformedResponse(
                f'malformed challenge object {chall_dict!r}',
                response=resp, step='authorization'
            )
        self.token: str = chall_dict.get('token', '')
        self.validated: str = chall_dict.get('validated', '')
        self.error: Dict[str, Any] = chall_dict.get('error', {})

    def __str__(self):
        return f'ACMEChallenge(type={self.type!r}, status={self.status.value!r}, url={self.url!r})'

    __repr__ = __str__


class ACMEAuthorization(_ACMERespObject):
    """
    An acme authorization object, attr `auth_location` is added in addition
    to other rfc specified fields.

    see https://tools.ietf.org/html/rfc8555#section-7.1.4
    """

    step = 'authorization'

    def _update_attr(self, resp: requests.Response, *args, **kwargs) -> None:
        body = self._raw_resp_body
        self.auth_location: str = kwargs.get('auth_url', resp.url)
        self.status = self._status(AuthorizationStatus, body.get('status'))
        self.expires: str = body.get('expires', '')
        identifier = body.get('identifier')
        if not isinstance(identifier, dict) or 'value' not in identifier:
            raise self._malformed('authorization without identifier', resp)
        # {'type': 'dns', 'value': 'example.com'}
        self.identifier: Dict[str, str] = identifier
        self.wildcard: bool = bool(body.get('wildcard', False))
        self.challenges = [
            ACMEChallenge(c, resp) for c in body.get('challenges', [])
        ]

    @property
    def identifier_value(self) -> str:
        return self.identifier['value']

    def challenge(self, chall_type: str) -> Optional[ACMEChallenge]:
        for chall in self.challenges:
            if chall.type == chall_type:
                return chall
        return None


class ACMEOrder(_ACMERespObject):
    """
    An acme order object, attr `order_location` is added in addition to other
    rfc specified fields; it comes from the `Location` header of the
    newOrder response, or from the url the order was fetched from.

    see https://tools.ietf.org/html/rfc8555#section-7.1.3
    """

    step = 'order'

    def _update_attr(self, resp: requests.Response, *args, **kwargs) -> None:
        body = self._raw_resp_body
        self.order_location: str = kwargs.get('order_url') \
            or resp.headers.get('Location', '')
        self.status = self._status(OrderStatus, body.get('status'))
        self.expires: str = body.get('expires', '')
        # [{'type': 'dns', 'value': 'example.com'}, ...]
        self.identifiers: List[Dict[str, str]] = body.get('identifiers', [])
        self.authorizations: List[str] = body.get('authorizations', [])
        self.finalize: str = body.get('finalize', '')
        self.certificate: str = body.get('certificate', '')
        self.error: Dict[str, Any] = body.get('error', {})
        if not self.finalize:
            raise self._malformed('order without finalize url', resp)

    @property
    def domains(self) -> List[str]:
        return [i['value'] for i in self.identifiers if i.get('type') == 'dns']
