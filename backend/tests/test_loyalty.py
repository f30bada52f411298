import pytest

from luminila.services.loyalty import max_redeemable_points, points_for_amount, redemption_value_paise
from luminila.services.settings_store import DEFAULTS
from tests.test_utils_seed import ensure_customer, unique_phone
from tests.test_lifecycle_helpers import error_detail

CFG = dict(DEFAULTS['loyalty'])


@pytest.mark.parametrize('amount,points', [(0, 0), (9_999, 0), (10_000, 1), (206_000, 20), (-500, 0)])
def test_points_for_amount_counts_full_hundreds(amount, points):
    assert points_for_amount(amount, CFG) == points


def test_redemption_value_and_cap():
    assert redemption_value_paise(150, CFG) == 15_000
    # 20% of 1,00,000 paise is 20,000 paise = 200 points
    assert max_redeemable_points(500, 100_000, CFG) == 200
    assert max_redeemable_points(120, 100_000, CFG) == 120
    assert max_redeemable_points(-5, 100_000, CFG) == 0
    assert max_redeemable_points(500, 100_000, dict(CFG, redemption_value_paise=0)) == 0


def _account_url(client, headers):
    customer = ensure_customer('Loyal', phone=unique_phone())
    return customer, f'/loyalty/customers/{customer.id}'


def test_account_opened_on_first_access(client, admin_headers):
    customer, url = _account_url(client, admin_headers)
    resp = client.get(url, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['customer_id'] == customer.id
    assert body['current_balance'] == 0
    assert body['redemption_value_paise'] == 0
    assert client.get('/loyalty/customers/999999', headers=admin_headers).status_code == 404


def test_earn_and_history(client, admin_headers):
    _, url = _account_url(client, admin_headers)
    resp = client.post(f'{url}/earn', json={'amount_paise': 250_000}, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['points'] == 25
    assert resp.get_json()['balance_after'] == 25

    resp = client.post(f'{url}/earn', json={'amount_paise': 5_000}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'points': 0, 'balance_after': 25}

    account = client.get(url, headers=admin_headers).get_json()
    assert account['lifetime_value_paise'] == 255_000
    history = client.get(f'{url}/history', headers=admin_headers).get_json()['data']
    assert [t['type'] for t in history] == ['earn']
    assert client.get(f'{url}/history?type=stolen', headers=admin_headers).status_code == 400


def test_redeem_rules(client, admin_headers):
    _, url = _account_url(client, admin_headers)
    resp = client.post(f'{url}/redeem', json={'points': 100, 'order_total_paise': 100_000}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'Customer has no active loyalty account'

    client.post(f'{url}/adjust', json={'points': 400, 'description': 'festival bonus', 'type': 'bonus'},
                headers=admin_headers)
    resp = client.post(f'{url}/redeem', json={'points': 50, 'order_total_paise': 100_000}, headers=admin_headers)
    assert error_detail(resp) == 'Minimum 100 points required to redeem'
    resp = client.post(f'{url}/redeem', json={'points': 300, 'order_total_paise': 100_000}, headers=admin_headers)
    assert error_detail(resp) == 'At most 200 points can be redeemed on this order'

    resp = client.post(f'{url}/redeem', json={'points': 200, 'order_total_paise': 100_000}, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json() == {'points': 200, 'discount_paise': 20_000, 'balance_after': 200}
    account = client.get(url, headers=admin_headers).get_json()
    assert account['total_points_redeemed'] == 200


def test_adjust_cannot_go_negative(client, admin_headers):
    _, url = _account_url(client, admin_headers)
    client.post(f'{url}/adjust', json={'points': 10}, headers=admin_headers)
    resp = client.post(f'{url}/adjust', json={'points': -11}, headers=admin_headers)
    assert resp.status_code == 409
    assert error_detail(resp) == 'Adjustment would make balance negative'
    resp = client.post(f'{url}/adjust', json={'points': 0}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.post(f'{url}/adjust', json={'points': -10}, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.get_json()['balance_after'] == 0


def test_program_settings_visible(client, admin_headers):
    resp = client.get('/loyalty/settings', headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['points_per_100'] == 1
    assert body['max_redemption_percent'] == 20
