import pytest

from pathlib import Path
import sys
sys.path.append(str(Path(__file__).parents[1].absolute()))

import responses
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric import ec

from acmeclient.actions import ACMEClient
from acmeclient.jwk import JWKEC

from test_common import *


# fixed private values, so that keys and thumbprints are the same every run
PRIVATE_VALUE_1 = 0x1f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a79881f2e3d4c5b6a7988
PRIVATE_VALUE_2 = 0x0102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f20


def _fixed_jwk(private_value: int) -> JWKEC:
    priv_key = ec.derive_private_key(
        private_value, ec.SECP256R1(), default_backend()
    )
    return JWKEC.from_private_key(priv_key)


@pytest.fixture(scope='session')
def jwk() -> JWKEC:
    return _fixed_jwk(PRIVATE_VALUE_1)


@pytest.fixture(scope='session')
def jwk_i() -> JWKEC:
    # a second key, independent of `jwk`
    return _fixed_jwk(PRIVATE_VALUE_2)


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as r:
        yield r


@pytest.fixture
def fake_ca(rsps) -> FakeCA:
    return FakeCA(rsps)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def dns_provider() -> RecordingDNSProvider:
    return RecordingDNSProvider()


@pytest.fixture
def client(fake_ca, fake_sleep, dns_provider) -> ACMEClient:
    c = ACMEClient(DIR_URL, dns_provider=dns_provider, sleep=fake_sleep)
    yield c
    c.close()


@pytest.fixture
def acct_client(client, jwk) -> ACMEClient:
    """client with a restored account"""
    client.restore_account(ACCT_URL, jwk)
    return client
