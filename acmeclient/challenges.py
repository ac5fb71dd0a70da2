"""
Challenge handlers publish the response to one challenge type before the
server is asked to validate it. Only dns-01 is implemented; another type is
added by subclassing `ChallengeHandler` and registering it on the client.
"""
import logging

from acmeclient.ACMEobj import ACMEAuthorization, ACMEChallenge
from acmeclient.dnsprovider.base import DNSProvider
from acmeclient.exceptions import ACMEError, NoDns01Challenge
from acmeclient.jwk import JWKEC
from acmeclient.util import dns01_record_name, get_dns_chall_txt_record


logger = logging.getLogger(__name__)


class ChallengeHandler:

    chall_type = ''
    # raised when an authorization offers no challenge of `chall_type`
    missing_error = ACMEError

    def perform(self,
                auth: ACMEAuthorization,
                chall: ACMEChallenge,
                jwk: JWKEC) -> None:
        raise NotImplementedError

    def cleanup(self, domain: str) -> None:
        raise NotImplementedError


class Dns01Handler(ChallengeHandler):
    """
    see https://tools.ietf.org/html/rfc8555#section-8.4
    """

    chall_type = 'dns-01'
    missing_error = NoDns01Challenge

    def __init__(self, dns_provider: DNSProvider):
        self.dns_provider = dns_provider

    def perform(self,
                auth: ACMEAuthorization,
                chall: ACMEChallenge,
                jwk: JWKEC) -> None:
        domain = auth.identifier_value
        record_name = dns01_record_name(domain)
        value = get_dns_chall_txt_record(chall.token, jwk)
        logger.info('set TXT record %s for %s', record_name, domain)
        self.dns_provider.set_record(domain, record_name, value)

    def cleanup(self, domain: str) -> None:
        if domain.startswith('*.'):
            domain = domain[2:]
        record_name = dns01_record_name(domain)
        logger.info('remove TXT record %s', record_name)
        self.dns_provider.remove_record(domain, record_name)
