import pytest

from acmeclient.ACMEobj import ACMEOrder, OrderStatus
from acmeclient.actions import ACMEClient
from acmeclient.exceptions import DNSProviderNotSet, MalformedResponse
from acmeclient.exceptions import NoDns01Challenge, OrderCreationFailed
from acmeclient.jwk import JWKEC
from acmeclient.util import get_dns_chall_txt_record

from test_common import *


def _dns01_url(domain: str) -> str:
    return chall_url(domain) + '/dns-01'


class TestCreateOrder:

    def test_create(self, acct_client: ACMEClient, fake_ca: FakeCA):
        fake_ca.order_created(['example.com', 'www.example.com'])
        order = acct_client.create_order(['example.com', 'www.example.com'])
        assert order.order_location == ORDER_URL
        assert order.status is OrderStatus.PENDING
        assert order.finalize == FINALIZE_URL
        assert order.domains == ['example.com', 'www.example.com']
        assert order.authorizations == [
            authz_url('example.com'), authz_url('www.example.com')
        ]
        [req] = fake_ca.signed_to(DIRECTORY['newOrder'])
        assert req.payload == {'identifiers': [
            {'type': 'dns', 'value': 'example.com'},
            {'type': 'dns', 'value': 'www.example.com'},
        ]}
        assert req.protected['kid'] == ACCT_URL

    def test_profile(self, rsps, fake_sleep, jwk: JWKEC):
        directory = dict(DIRECTORY, meta={'profiles': {'shortlived': '6 days'}})
        fake_ca = FakeCA(rsps, directory)
        client = ACMEClient(DIR_URL, sleep=fake_sleep)
        client.restore_account(ACCT_URL, jwk)
        fake_ca.order_created(['example.com'])
        client.create_order(['example.com'], profile='shortlived')
        [req] = fake_ca.signed_to(DIRECTORY['newOrder'])
        assert req.payload['profile'] == 'shortlived'

    def test_unknown_profile(self, acct_client: ACMEClient, fake_ca: FakeCA):
        with pytest.raises(ValueError):
            acct_client.create_order(['example.com'], profile='shortlived')
        assert fake_ca.signed == []

    def test_rejected(self, acct_client: ACMEClient, fake_ca: FakeCA):
        fake_ca.reply(
            DIRECTORY['newOrder'],
            (400, {}, problem('Invalid identifiers requested', 'rejectedIdentifier'))
        )
        with pytest.raises(OrderCreationFailed) as excinfo:
            acct_client.create_order(['localhost'])
        assert excinfo.value.status_code == 400
        assert excinfo.value.step == 'order'
        assert 'rejectedIdentifier' in excinfo.value.body

    def test_no_finalize_url(self, acct_client: ACMEClient, fake_ca: FakeCA):
        body = order_body(['example.com'])
        del body['finalize']
        fake_ca.reply(DIRECTORY['newOrder'], (201, {'Location': ORDER_URL}, body))
        with pytest.raises(MalformedResponse) as excinfo:
            acct_client.create_order(['example.com'])
        assert excinfo.value.step == 'order'

    def test_order_not_json(self, acct_client: ACMEClient, fake_ca: FakeCA):
        fake_ca.reply(DIRECTORY['newOrder'], (201, {'Location': ORDER_URL}, 'not json'))
        with pytest.raises(MalformedResponse) as excinfo:
            acct_client.create_order(['example.com'])
        assert excinfo.value.step == 'order'
        assert excinfo.value.status_code == 201

    def test_unknown_order_status(self, acct_client: ACMEClient, fake_ca: FakeCA):
        fake_ca.reply(ORDER_URL, (200, {}, order_body(['example.com'], 'archived')))
        with pytest.raises(MalformedResponse) as excinfo:
            acct_client.fetch_order(ORDER_URL)
        assert excinfo.value.step == 'order'

    @pytest.mark.parametrize('body', [
        'not json',
        dict(authz_body('example.com'), status='archived'),
        dict(authz_body('example.com'), challenges=[{'type': 'dns-01'}]),
    ])
    def test_malformed_authorization(self, acct_client: ACMEClient, fake_ca: FakeCA, body):
        fake_ca.reply(authz_url('example.com'), (200, {}, body))
        with pytest.raises(MalformedResponse) as excinfo:
            acct_client.fetch_authorization(authz_url('example.com'))
        assert excinfo.value.step == 'authorization'

    def test_fetch_order(self, acct_client: ACMEClient, fake_ca: FakeCA):
        fake_ca.reply(ORDER_URL, (200, {}, order_body(['example.com'], 'ready')))
        order = acct_client.fetch_order(ORDER_URL)
        assert order.status is OrderStatus.READY
        assert order.order_location == ORDER_URL
        [req] = fake_ca.signed_to(ORDER_URL)
        assert req.payload is None


class TestDns01Challenges:

    def _order(self, acct_client: ACMEClient, fake_ca: FakeCA, domains) -> ACMEOrder:
        fake_ca.order_created(domains)
        return acct_client.create_order(domains)

    def test_pending_authorization(self,
                                   acct_client: ACMEClient,
                                   fake_ca: FakeCA,
                                   dns_provider: RecordingDNSProvider,
                                   jwk: JWKEC):
        order = self._order(acct_client, fake_ca, ['example.com'])
        fake_ca.authz('example.com')
        fake_ca.challenge_accepted('example.com')

        completed = acct_client.complete_dns01_challenges(order)

        assert completed == [authz_url('example.com')]
        expected = get_dns_chall_txt_record('token-example.com', jwk)
        assert dns_provider.calls == [(
            'set', 'example.com', '_acme-challenge.example.com', expected
        )]
        [fetch] = fake_ca.signed_to(authz_url('example.com'))
        assert fetch.payload is None
        [notify] = fake_ca.signed_to(_dns01_url('example.com'))
        assert notify.payload == {}
        assert notify.protected['kid'] == ACCT_URL

    def test_valid_authorization_skipped(self,
                                         acct_client: ACMEClient,
                                         fake_ca: FakeCA,
                                         dns_provider: RecordingDNSProvider):
        order = self._order(acct_client, fake_ca, ['example.com'])
        fake_ca.authz('example.com', status='valid')

        completed = acct_client.complete_dns01_challenges(order)

        assert completed == [authz_url('example.com')]
        assert dns_provider.calls == []
        assert fake_ca.signed_to(_dns01_url('example.com')) == []

    def test_authorizations_in_order(self,
                                     acct_client: ACMEClient,
                                     fake_ca: FakeCA,
                                     dns_provider: RecordingDNSProvider):
        domains = ['b.example.com', 'a.example.com', 'c.example.com']
        order = self._order(acct_client, fake_ca, domains)
        fake_ca.authz('b.example.com')
        fake_ca.authz('a.example.com', status='valid')
        fake_ca.authz('c.example.com')
        fake_ca.challenge_accepted('b.example.com')
        fake_ca.challenge_accepted('c.example.com')

        completed = acct_client.complete_dns01_challenges(order)

        assert completed == [authz_url(d) for d in domains]
        assert [c[1] for c in dns_provider.calls] == [
            'b.example.com', 'c.example.com'
        ]
        notified = [
            s.url for s in fake_ca.signed if s.url.startswith(f'{CA}/chall/')
        ]
        assert notified == [
            _dns01_url('b.example.com'), _dns01_url('c.example.com')
        ]

    def test_no_dns01_challenge(self,
                                acct_client: ACMEClient,
                                fake_ca: FakeCA,
                                dns_provider: RecordingDNSProvider):
        order = self._order(acct_client, fake_ca, ['example.com'])
        fake_ca.authz('example.com', chall_types=('http-01', 'tls-alpn-01'))
        with pytest.raises(NoDns01Challenge) as excinfo:
            acct_client.complete_dns01_challenges(order)
        assert excinfo.value.step == 'authorization'
        assert excinfo.value.status_code == 200
        assert dns_provider.calls == []

    def test_dns_provider_not_set(self, fake_ca: FakeCA, fake_sleep, jwk: JWKEC):
        client = ACMEClient(DIR_URL, sleep=fake_sleep)
        client.restore_account(ACCT_URL, jwk)
        fake_ca.order_created(['example.com'])
        order = client.create_order(['example.com'])
        with pytest.raises(DNSProviderNotSet):
            client.complete_dns01_challenges(order)

    def test_set_dns_provider_later(self, fake_ca: FakeCA, fake_sleep, jwk: JWKEC):
        client = ACMEClient(DIR_URL, sleep=fake_sleep)
        client.restore_account(ACCT_URL, jwk)
        provider = RecordingDNSProvider()
        client.set_dns_provider(provider)
        fake_ca.order_created(['example.com'])
        fake_ca.authz('example.com')
        fake_ca.challenge_accepted('example.com')
        client.complete_dns01_challenges(client.create_order(['example.com']))
        assert '_acme-challenge.example.com' in provider.records

    def test_unknown_challenge_type(self, acct_client: ACMEClient, fake_ca: FakeCA):
        order = self._order(acct_client, fake_ca, ['example.com'])
        with pytest.raises(ValueError):
            acct_client.complete_challenges(order, 'http-01')

    def test_wildcard(self,
                      acct_client: ACMEClient,
                      fake_ca: FakeCA,
                      dns_provider: RecordingDNSProvider):
        # the server reports the base domain, with wildcard set
        fake_ca.reply(
            DIRECTORY['newOrder'],
            (201, {'Location': ORDER_URL}, dict(
                order_body(['*.example.com']),
                authorizations=[authz_url('example.com')],
            ))
        )
        order = acct_client.create_order(['*.example.com'])
        fake_ca.authz('example.com', chall_types=('dns-01',), wildcard=True)
        fake_ca.challenge_accepted('example.com')
        acct_client.complete_dns01_challenges(order)
        assert dns_provider.calls[0][2] == '_acme-challenge.example.com'

    def test_cleanup(self,
                     acct_client: ACMEClient,
                     fake_ca: FakeCA,
                     dns_provider: RecordingDNSProvider):
        order = self._order(acct_client, fake_ca, ['example.com', '*.example.org'])
        dns_provider.records['_acme-challenge.example.com'] = 'x'
        acct_client.cleanup_dns01_records(order)
        assert dns_provider.calls == [
            ('remove', 'example.com', '_acme-challenge.example.com'),
            ('remove', 'example.org', '_acme-challenge.example.org'),
        ]
        assert dns_provider.records == {}
