"""
Aliyun (Alibaba Cloud) DNS provider, needs the following packages:
`pip install aliyun-python-sdk-core`
`pip install aliyun-python-sdk-alidns`
"""
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

from aliyunsdkcore.client import AcsClient
from aliyunsdkcore.acs_exception.exceptions import ClientException
from aliyunsdkcore.acs_exception.exceptions import ServerException
from aliyunsdkalidns.request.v20150109.AddDomainRecordRequest \
    import AddDomainRecordRequest
from aliyunsdkalidns.request.v20150109.DescribeSubDomainRecordsRequest \
    import DescribeSubDomainRecordsRequest
from aliyunsdkalidns.request.v20150109.DeleteDomainRecordRequest \
    import DeleteDomainRecordRequest

from acmeclient.dnsprovider.base import DNSProvider
from acmeclient.exceptions import DNSProviderError


logger = logging.getLogger(__name__)

DEFAULT_REGION = 'cn-hangzhou'


def create_client(access_key: str, secret: str, r = DEFAULT_REGION) -> AcsClient:
    """
    provide access key, secret, return client object; key and secret
    usually from aliyun RAM; region uses default value `'cn-hangzhou'`
    """
    return AcsClient(access_key, secret, r)


def split_record_name(record_name: str,
                      primary: Optional[str] = None) -> Tuple[str, str]:
    """
    split `_acme-challenge.test.example.com` into the aliyun `RR`
    `_acme-challenge.test` and the primary domain `example.com`; without an
    explicit `primary` the last two labels are taken. Aliyun takes the
    literal (non-punycode) domain.
    """
    record_name = record_name.rstrip('.')
    if primary is None:
        primary = '.'.join(record_name.split('.')[-2:])
    if not record_name.endswith('.' + primary):
        raise ValueError(f'{record_name} is not under {primary}')
    rr = record_name[:-len(primary) - 1]
    return rr, primary.encode('utf-8').decode('idna')


class AliyunDNSProvider(DNSProvider):

    def __init__(self,
                 access_key: str,
                 secret: str,
                 region: str = DEFAULT_REGION,
                 primary_domain: Optional[str] = None,
                 client: Optional[AcsClient] = None):
        self.client = client or create_client(access_key, secret, region)
        self.primary_domain = primary_domain

    def _do(self, request: Any) -> Dict[str, Any]:
        request.set_accept_format('json')
        try:
            response = self.client.do_action_with_exception(request)
        except (ClientException, ServerException) as e:
            raise DNSProviderError(f'aliyun request failed: {e}')
        return json.loads(str(response, encoding='utf-8'))

    def _query_txt(self, rr: str, primary: str) -> List[Dict[str, Any]]:
        request = DescribeSubDomainRecordsRequest()
        request.set_SubDomain(f'{rr}.{primary}')
        request.set_Type('TXT')
        resp_dict = self._do(request)
        return resp_dict.get('DomainRecords', {}).get('Record', [])

    def set_record(self, domain: str, record_name: str, value: str) -> None:
        rr, primary = split_record_name(record_name, self.primary_domain)
        for record in self._query_txt(rr, primary):
            if record.get('Value') == value:
                logger.debug('aliyun TXT record %s already set', record_name)
                return
        request = AddDomainRecordRequest()
        request.set_DomainName(primary)
        request.set_RR(rr)
        request.set_Value(value)
        request.set_Type('TXT')
        resp_dict = self._do(request)
        logger.info(
            'aliyun dns record %s added for %s', resp_dict.get('RecordId'), domain
        )

    def remove_record(self, domain: str, record_name: str) -> None:
        rr, primary = split_record_name(record_name, self.primary_domain)
        for record in self._query_txt(rr, primary):
            request = DeleteDomainRecordRequest()
            request.set_RecordId(record['RecordId'])
            self._do(request)
            logger.info('aliyun dns record %s cleared', record['RecordId'])
