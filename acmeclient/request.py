from typing import Any, Dict, List, Optional, Union
import logging

import requests

from acmeclient import settings
from acmeclient.ACMEobj import Directory
from acmeclient.exceptions import DirectoryIncomplete, NonceUnavailable
from acmeclient.jwk import JWKEC
from acmeclient.jws import sign_envelope


logger = logging.getLogger(__name__)

Payload = Union[Dict[str, Any], List[Any], str]


class ACMERequestActions:
    """
    http layer of the client: directory lookup, Replay-Nonce retrieval and
    signed POST requests. Status codes are not checked here, callers decide
    which error a non-2xx response becomes.
    """

    # https://tools.ietf.org/html/rfc8555#section-6.2
    JOSE_CONTENT_TYPE = 'application/jose+json'
    REPLAY_NONCE_HEADER = 'Replay-Nonce'
    PEM_CHAIN_CONTENT_TYPE = 'application/pem-certificate-chain'

    def __init__(self,
                 dir_url: str,
                 verify_ssl: bool = True,
                 timeout: float = settings.REQUEST_TIMEOUT,
                 user_agent: str = settings.USER_AGENT):
        self.dir_url = dir_url
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.acme_dir: Optional[Directory] = None
        self.session = requests.Session()
        self.session.headers['User-Agent'] = user_agent

    def close(self) -> None:
        self.session.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault('timeout', self.timeout)
        kwargs['verify'] = self.verify_ssl
        logger.debug('sending %s request to %s', method, url)
        resp = self.session.request(method, url, **kwargs)
        logger.debug(
            'received HTTP %d from %s: %s', resp.status_code, url, resp.text
        )
        return resp

    def query_dir(self) -> Directory:
        """
        fetch acme server resources with a GET request, the result is kept as
        `acme_dir`

        see https://tools.ietf.org/html/rfc8555#section-7.1.1
        """
        resp = self._send(
            'GET', self.dir_url, headers={'Accept': 'application/json'}
        )
        if not resp.ok:
            raise DirectoryIncomplete(
                f'failed to fetch directory {self.dir_url}', response=resp
            )
        try:
            data = resp.json()
        except ValueError:
            raise DirectoryIncomplete('directory is not json', response=resp)
        self.acme_dir = Directory.from_json(data, resp)
        return self.acme_dir

    def new_nonce(self) -> str:
        """
        get a new nonce with a HEAD request to `newNonce`; nonces are never
        reused, every signed request gets its own

        see https://tools.ietf.org/html/rfc8555#section-7.2
        """
        if self.acme_dir is None:
            raise DirectoryIncomplete('directory not fetched yet')
        resp = self._send('HEAD', self.acme_dir.new_nonce)
        # `requests` headers are case insensitive
        nonce = resp.headers.get(self.REPLAY_NONCE_HEADER)
        if not nonce:
            raise NonceUnavailable(
                f'no {self.REPLAY_NONCE_HEADER} header from {resp.url}',
                response=resp
            )
        logger.debug('got nonce %s', nonce)
        return nonce

    def signed_request(self,
                       url: str,
                       payload: Payload,
                       jwk: JWKEC,
                       kid: str = '',
                       headers: Optional[Dict[str, str]] = None
                       ) -> requests.Response:
        """send request to arbitrary url with a freshly signed jws"""
        body = sign_envelope(
            payload=payload, url=url, nonce=self.new_nonce(), jwk=jwk, kid=kid
        )
        _headers = {'Content-Type': self.JOSE_CONTENT_TYPE}
        _headers.update(headers or {})
        return self._send('POST', url, json=body, headers=_headers)
