import httpx
import pytest

import luminila.routes.payments as pay_routes
from luminila.integrations.phonepe import PhonePeClient
from tests.test_lifecycle_helpers import error_detail

PHONEPE_FIELDS = {'merchant_id': None, 'salt_key': None, 'salt_index': None, 'environment': None}


@pytest.fixture()
def configured_gateway(client, admin_headers, monkeypatch):
    """Stored PhonePe credentials plus a client whose HTTP calls never leave the process."""
    calls = []

    def handler(request):
        calls.append(request)
        if request.url.path.endswith('/pg/v1/pay'):
            return httpx.Response(200, json={
                'success': True, 'code': 'PAYMENT_INITIATED', 'message': 'ok',
                'data': {'instrumentResponse': {'redirectInfo': {'url': 'https://phonepe.test/pay/xyz'}}},
            })
        return httpx.Response(200, json={'success': True, 'code': 'PAYMENT_SUCCESS', 'message': 'paid',
                                         'data': {'transactionId': 'PP1', 'amount': 2_500}})

    monkeypatch.setattr(pay_routes, 'make_client',
                        lambda cfg: PhonePeClient(cfg, client=httpx.Client(transport=httpx.MockTransport(handler))))
    resp = client.patch('/settings/phonepe', json={
        'merchant_id': 'LUMINILA1', 'salt_key': 'super-secret-salt-9876', 'salt_index': '1', 'environment': 'UAT',
    }, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    yield calls
    client.patch('/settings/phonepe', json=PHONEPE_FIELDS, headers=admin_headers)


def test_unconfigured_gateway_is_503(client, admin_headers):
    resp = client.post('/payments/phonepe/initiate', json={'amount_paise': 1_000}, headers=admin_headers)
    assert resp.status_code == 503
    assert 'not configured' in error_detail(resp)
    assert client.get('/payments/phonepe/config', headers=admin_headers).get_json()['is_configured'] is False


def test_config_is_masked(client, admin_headers, configured_gateway):
    body = client.get('/payments/phonepe/config', headers=admin_headers).get_json()
    assert body['merchant_id'] == 'LUMINILA1'
    assert body['salt_key'] == '****9876'
    assert body['is_configured'] is True
    stored = client.get('/settings/phonepe', headers=admin_headers).get_json()['value']
    assert stored['salt_key'] == '****9876'


def test_initiate_and_status(client, admin_headers, configured_gateway):
    resp = client.post('/payments/phonepe/initiate', json={'amount_paise': 2_500, 'order_id': 'ORD_TEST'},
                       headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['redirect_url'] == 'https://phonepe.test/pay/xyz'
    assert body['order_id'] == 'ORD_TEST'
    assert body['amount_paise'] == 2_500
    txn = body['transaction_id']
    logs = client.get(f'/activity?action=PAYMENT.INITIATE&entity_id={txn}', headers=admin_headers).get_json()['data']
    assert logs[0]['meta']['order_id'] == 'ORD_TEST'

    resp = client.get(f'/payments/phonepe/status/{txn}', headers=admin_headers)
    assert resp.get_json()['code'] == 'PAYMENT_SUCCESS'
    assert len(configured_gateway) == 2


def test_initiate_validation(client, admin_headers, configured_gateway):
    resp = client.post('/payments/phonepe/initiate', json={}, headers=admin_headers)
    assert error_detail(resp) == 'amount_paise required'
    resp = client.post('/payments/phonepe/initiate', json={'amount_paise': 0}, headers=admin_headers)
    assert error_detail(resp) == 'amount_paise must be >= 1'
    resp = client.post('/payments/phonepe/initiate', json={'amount_paise': 10, 'sale_id': 987654},
                       headers=admin_headers)
    assert error_detail(resp) == 'sale not found'
    assert configured_gateway == []
