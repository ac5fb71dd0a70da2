from typing import Any

from acmeclient.dnsprovider.base import DNSProvider
from acmeclient.dnsprovider.aliyun import AliyunDNSProvider


supported_provider = {
    'aliyun': AliyunDNSProvider,
}


def get_dns_provider(dnsprovider: str,
                     access_key: str,
                     secret: str,
                     **kwargs: Any) -> DNSProvider:
    """create the dns provider registered as `dnsprovider`"""
    if not dnsprovider in supported_provider:
        raise ValueError(f'dnsprovider {dnsprovider} not supported')
    return supported_provider[dnsprovider](access_key, secret, **kwargs)
