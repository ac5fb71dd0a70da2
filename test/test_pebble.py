"""
issue a certificate from pebble, with dns-01 answered by pebble-challtestsrv.

set `ACMECLIENT_PEBBLE_DIR` to a checkout of https://github.com/letsencrypt/pebble,
its `docker-compose.yml` is started for the tests and stopped afterwards.

see https://github.com/letsencrypt/pebble/blob/master/cmd/pebble-challtestsrv/README.md
"""
from pathlib import Path
import json
import os
import subprocess
import time

import pytest
import requests
from cryptography import x509

from acmeclient import settings
from acmeclient.actions import ACMEClient
from acmeclient.dnsprovider.base import DNSProvider
from acmeclient.util import generate_csr


PEBBLE_DIR = os.environ.get('ACMECLIENT_PEBBLE_DIR', '')
CHALLTEST_API = 'http://localhost:8055'
SLEEP_AFTER_DOCKER = 4

pytestmark = [
    pytest.mark.pebble,
    pytest.mark.skipif(not PEBBLE_DIR, reason='ACMECLIENT_PEBBLE_DIR not set'),
]


def _compose(*args: str) -> None:
    subprocess.run(
        ['docker-compose', '-f', str(Path(PEBBLE_DIR) / 'docker-compose.yml'), *args],
        capture_output=True,
        check=True
    )


class ChallTestDNSProvider(DNSProvider):
    """TXT records through the pebble-challtestsrv management api"""

    def set_record(self, domain: str, record_name: str, value: str) -> None:
        resp = requests.post(
            f'{CHALLTEST_API}/set-txt',
            data=json.dumps({'host': f'{record_name}.', 'value': value})
        )
        resp.raise_for_status()

    def remove_record(self, domain: str, record_name: str) -> None:
        resp = requests.post(
            f'{CHALLTEST_API}/clear-txt',
            data=json.dumps({'host': f'{record_name}.'})
        )
        resp.raise_for_status()


@pytest.fixture(scope='module')
def pebble():
    _compose('up', '-d')
    time.sleep(SLEEP_AFTER_DOCKER)
    yield
    _compose('down')


@pytest.fixture
def pebble_client(pebble):
    # pebble serves a self signed certificate
    client = ACMEClient(
        settings.PEBBLE_TEST,
        dns_provider=ChallTestDNSProvider(),
        poll_interval=1,
        verify_ssl=False,
    )
    yield client
    client.close()


@pytest.mark.parametrize('domains', [
    ['test.local'],
    ['a.test.local', 'b.test.local'],
    ['*.test.local', 'test.local'],
])
def test_issue(pebble_client: ACMEClient, domains):
    client = pebble_client
    client.init()
    client.create_account('admin@test.local')
    order = client.create_order(domains)
    try:
        client.complete_dns01_challenges(order)
        _, csr_pem = generate_csr(domains)
        fullchain = client.finalize(order, csr_pem)
    finally:
        client.cleanup_dns01_records(order)

    leaf = x509.load_pem_x509_certificate(fullchain.encode())
    san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    assert sorted(san.value.get_values_for_type(x509.DNSName)) == sorted(domains)


def test_bad_nonce_recovered(pebble_client: ACMEClient):
    # pebble rejects a share of valid nonces, PEBBLE_WFE_NONCEREJECT
    for _ in range(5):
        pebble_client.create_account('admin@test.local')
    assert pebble_client.account is not None
