from typing import Dict, Any, Optional, Union
import base64
import hashlib
import json

import requests

from acmeclient.exceptions import MalformedResponse


def b64_encode(b: bytes) -> str:
    """urlsafe base64 without `=` padding, see rfc7515 section 2"""
    return str(base64.urlsafe_b64encode(b).strip(b'='), encoding='utf-8')


def json_dumps_canonical(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(',', ':'))


class _JWKBase:
    """JWK object is a memeber of protected header and then encoded by b64"""

    # members required for the thumbprint, see rfc7638 section 3.2
    required_members: tuple = ()

    def __init__(self, kty: str, **kwargs):
        # _container will be serialised by json then b64 encoded
        self._container: Dict[str, Any] = dict()
        self.kty = kty
        self._check_kty_param(kwargs)
        self.__dict__.update(kwargs)
        self._update_container()

    def _check_kty_param(self, kwargs: dict) -> None:
        raise NotImplementedError

    def _update_container(self) -> None:
        raise NotImplementedError

    def sign(self, data: bytes) -> bytes:
        """sign `data`, return signature bytes in the JWS form of the alg"""
        raise NotImplementedError

    @staticmethod
    def _b64_encode_int(i: int, length: Optional[int] = None) -> str:
        """
        encode an int using urlsafe base64; `length` left-pads the big endian
        bytes, required for EC coordinates, see rfc7518 section 6.2.1.2
        """
        if length is None:
            length = max(1, (i.bit_length() + 7) // 8)
        return b64_encode(i.to_bytes(length, 'big'))

    def thumbprint(self) -> str:
        """
        b64 encoded SHA-256 over the required members of the jwk, with sorted
        keys and no whitespace.

        see https://tools.ietf.org/html/rfc7638#section-3
        """
        members = {k: self._container[k] for k in self.required_members}
        digest = hashlib.sha256(
            json_dumps_canonical(members).encode('utf-8')
        ).digest()
        return b64_encode(digest)

    def __str__(self):
        return str(self._container)

    __repr__ = __str__


class _JWSBase:
    """
    Flattened JSON serialisation of a JWS, the body of every authenticated
    ACME request.

    see https://tools.ietf.org/html/rfc8555#section-6.2
    """

    alg = ''

    def __init__(self,
                 url: str,
                 nonce: str,
                 jwk: _JWKBase,
                 kid: str = '',
                 payload: Union[Dict[str, Any], list, str] = ''):
        # jwk and kid are exclusive in the protected header; jwk is always
        # given since it holds the private key
        self.jwk = jwk
        self.kid = kid
        self.url = url
        self.nonce = nonce

        self.protected: Dict[str, Any] = {
            'alg': self.alg,
            'nonce': nonce,
            'url': url,
        }
        if kid:
            self.protected['kid'] = kid
        else:
            self.protected['jwk'] = jwk._container

        # empty string for POST-as-GET and challenge response,
        # see rfc8555 section 6.3
        self.payload = payload
        self.signature = ''
        self.post_body: Dict[str, str] = dict()

    def get_sign_input(self) -> bytes:
        """
        see https://tools.ietf.org/html/rfc7515#section-2 Signing Input
        """
        protected_b64 = b64_encode(
            json_dumps_canonical(self.protected).encode('utf-8')
        )
        payload_b64 = ''
        if isinstance(self.payload, (dict, list)):
            payload_b64 = b64_encode(
                json_dumps_canonical(self.payload).encode('utf-8')
            )
        elif self.payload:
            payload_b64 = b64_encode(self.payload.encode('utf-8'))

        self.post_body['protected'] = protected_b64
        self.post_body['payload'] = payload_b64
        return f'{protected_b64}.{payload_b64}'.encode('ascii')

    def sign(self) -> Dict[str, str]:
        sign_input = self.get_sign_input()
        self.signature = b64_encode(self.jwk.sign(sign_input))
        self.post_body['signature'] = self.signature
        return self.post_body


class _ACMERespObject:
    """represent an object returned by an acme server"""

    # step of the issuance flow reported by `MalformedResponse`
    step = ''

    def __init__(self, resp: requests.Response, *args, **kwargs):
        self._set_initial(resp)
        self._update_attr(resp, *args, **kwargs)

    def _set_initial(self, resp: requests.Response) -> None:
        self._resp = resp
        self._raw_resp_body = self._parse_body(resp)

    def _malformed(self,
                   message: str,
                   resp: requests.Response) -> MalformedResponse:
        return MalformedResponse(message, response=resp, step=self.step)

    def _parse_body(self, resp: requests.Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            raise self._malformed(f'response from {resp.url} is not json', resp)
        if not isinstance(body, dict):
            raise self._malformed(
                f'response from {resp.url} is not a json object', resp
            )
        return body

    def _update_attr(self, resp: requests.Response, *args, **kwargs) -> None:
        raise NotImplementedError

    def _status(self, enum_type: type, value: Any):
        try:
            return enum_type(value)
        except ValueError:
            raise self._malformed(
                f'unknown {type(self).__name__} status {value!r}', self._resp
            )

    def __str__(self):
        cls = type(self).__name__
        _dict = {
            k : v for (k, v) in self.__dict__.items() if not k.startswith('_')
        }
        return f'{cls}({str(_dict)})'

    __repr__ = __str__
