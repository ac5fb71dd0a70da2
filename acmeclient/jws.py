from typing import Any, Dict, List, Union

from acmeclient.base import _JWSBase
from acmeclient.jwk import JWKEC


__all__ = ['JWSES256', 'sign_envelope']


class JWSES256(_JWSBase):

    alg = 'ES256'

    def __init__(self,
                 url: str,
                 nonce: str,
                 jwk: JWKEC,
                 kid: str = '',
                 payload: Union[Dict[str, Any], List[Any], str] = ''):
        if not isinstance(jwk, JWKEC):
            raise TypeError(
                f'jwk type "{type(jwk)}" not compatible with {self.alg}'
            )
        super().__init__(url, nonce, jwk, kid, payload)


def sign_envelope(payload: Union[Dict[str, Any], List[Any], str],
                  url: str,
                  nonce: str,
                  jwk: JWKEC,
                  kid: str = '') -> Dict[str, str]:
    """
    build the signed request body; `kid` selects the account key id header,
    without it the public key is embedded (newAccount only)
    """
    jws = JWSES256(url=url, nonce=nonce, jwk=jwk, kid=kid, payload=payload)
    return jws.sign()
