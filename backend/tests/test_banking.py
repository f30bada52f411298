import uuid

from tests.test_lifecycle_helpers import create_resource_and_assert, error_detail, jwt_headers
from tests.test_utils_seed import seed_user_with_permissions


def _account(client, headers, opening=0, **extra):
    payload = {'account_name': f'Acct {uuid.uuid4().hex[:6]}', 'opening_balance_paise': opening}
    payload.update(extra)
    return create_resource_and_assert(client, '/banking/accounts', payload, headers)


def _balance(client, headers, account_id):
    return client.get(f'/banking/accounts/{account_id}', headers=headers).get_json()['current_balance_paise']


def test_account_create_and_validation(client, admin_headers):
    acct = _account(client, admin_headers, opening=10_000, bank_name='HDFC')
    assert acct['current_balance_paise'] == 10_000
    assert acct['currency'] == 'INR'
    resp = client.post('/banking/accounts', json={'account_name': 'Red', 'opening_balance_paise': -1},
                       headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'opening_balance_paise must be >= 0'
    resp = client.post('/banking/accounts', json={}, headers=admin_headers)
    assert error_detail(resp) == 'account_name required'


def test_balances_change_through_transactions_only(client, admin_headers):
    acct = _account(client, admin_headers)
    resp = client.patch(f"/banking/accounts/{acct['id']}", json={'current_balance_paise': 1},
                        headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'balances change through transactions only'
    resp = client.patch(f"/banking/accounts/{acct['id']}", json={'bank_name': 'SBI'}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['bank_name'] == 'SBI'


def test_deposits_and_withdrawals_are_signed(client, admin_headers):
    acct = _account(client, admin_headers)
    url = f"/banking/accounts/{acct['id']}/transactions"
    resp = client.post(url, json={'type': 'deposit', 'amount_paise': 50_000, 'reference_number': 'UTR1'},
                       headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['amount_paise'] == 50_000
    resp = client.post(url, json={'type': 'withdrawal', 'amount_paise': 20_000}, headers=admin_headers)
    body = resp.get_json()
    assert body['amount_paise'] == -20_000
    assert body['balance_after_paise'] == 30_000
    assert _balance(client, admin_headers, acct['id']) == 30_000

    resp = client.post(url, json={'type': 'withdrawal', 'amount_paise': 30_001}, headers=admin_headers)
    assert resp.status_code == 409
    assert error_detail(resp) == 'Insufficient account balance'
    assert _balance(client, admin_headers, acct['id']) == 30_000

    assert client.post(url, json={'type': 'transfer', 'amount_paise': 1}, headers=admin_headers).status_code == 400
    resp = client.post(url, json={'type': 'deposit', 'amount_paise': 0}, headers=admin_headers)
    assert error_detail(resp) == 'amount_paise must be >= 1'

    listed = client.get(f'{url}?type=withdrawal', headers=admin_headers).get_json()['data']
    assert [t['amount_paise'] for t in listed] == [-20_000]


def test_overdraft_allowed_when_flagged(client, admin_headers):
    acct = _account(client, admin_headers, allow_overdraft=True)
    resp = client.post(f"/banking/accounts/{acct['id']}/transactions",
                       json={'type': 'withdrawal', 'amount_paise': 5_000}, headers=admin_headers)
    assert resp.status_code == 201
    assert _balance(client, admin_headers, acct['id']) == -5_000
    resp = client.patch(f"/banking/accounts/{acct['id']}", json={'allow_overdraft': False}, headers=admin_headers)
    assert error_detail(resp) == 'account is overdrawn'


def test_transfer_moves_both_sides(client, admin_headers):
    source = _account(client, admin_headers, opening=100_000)
    target = _account(client, admin_headers)
    resp = client.post('/banking/transfers', json={
        'from_account_id': source['id'], 'to_account_id': target['id'], 'amount_paise': 40_000,
    }, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    legs = resp.get_json()['transactions']
    assert [t['amount_paise'] for t in legs] == [-40_000, 40_000]
    assert {t['type'] for t in legs} == {'transfer'}
    assert _balance(client, admin_headers, source['id']) == 60_000
    assert _balance(client, admin_headers, target['id']) == 40_000

    resp = client.post('/banking/transfers', json={
        'from_account_id': source['id'], 'to_account_id': source['id'], 'amount_paise': 1,
    }, headers=admin_headers)
    assert error_detail(resp) == 'cannot transfer to the same account'
    resp = client.post('/banking/transfers', json={
        'from_account_id': target['id'], 'to_account_id': source['id'], 'amount_paise': 40_001,
    }, headers=admin_headers)
    assert resp.status_code == 409
    assert _balance(client, admin_headers, source['id']) == 60_000


def test_stats_cover_active_accounts(client, admin_headers):
    acct = _account(client, admin_headers, opening=1_000)
    client.post(f"/banking/accounts/{acct['id']}/transactions", json={'type': 'deposit', 'amount_paise': 500},
                headers=admin_headers)
    stats = client.get('/banking/stats', headers=admin_headers).get_json()
    row = next(r for r in stats['per_account'] if r['id'] == acct['id'])
    assert row == {'id': acct['id'], 'account_name': acct['account_name'], 'current_balance_paise': 1_500,
                   'inflow_paise': 500, 'outflow_paise': 0, 'transactions': 1}
    assert stats['total_balance_paise'] >= 1_500

    client.delete(f"/banking/accounts/{acct['id']}", headers=admin_headers)
    stats = client.get('/banking/stats', headers=admin_headers).get_json()
    assert acct['id'] not in [r['id'] for r in stats['per_account']]
    resp = client.post(f"/banking/accounts/{acct['id']}/transactions", json={'type': 'deposit', 'amount_paise': 1},
                       headers=admin_headers)
    assert resp.status_code == 404


def test_bank_paid_expense_lifecycle(client, admin_headers):
    acct = _account(client, admin_headers, opening=20_000)
    category = f'Rent {uuid.uuid4().hex[:6]}'
    resp = client.post('/banking/expenses', json={
        'category': category, 'amount_paise': 15_000, 'payment_method': 'bank_transfer',
        'bank_account_id': acct['id'], 'expense_date': '2026-03-01',
    }, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    expense = resp.get_json()
    assert expense['bank_transaction_id'] is not None
    assert _balance(client, admin_headers, acct['id']) == 5_000

    resp = client.patch(f"/banking/expenses/{expense['id']}", json={'amount_paise': 10_000}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.patch(f"/banking/expenses/{expense['id']}", json={'description': 'March rent'},
                        headers=admin_headers)
    assert resp.get_json()['description'] == 'March rent'

    summary = client.get('/banking/expenses/summary?date_from=2026-03-01&date_to=2026-03-31',
                         headers=admin_headers).get_json()
    assert {'category': category, 'amount_paise': 15_000, 'count': 1} in summary['by_category']

    resp = client.delete(f"/banking/expenses/{expense['id']}", headers=admin_headers)
    assert resp.get_json()['refunded_paise'] == 15_000
    assert _balance(client, admin_headers, acct['id']) == 20_000
    assert client.delete(f"/banking/expenses/{expense['id']}", headers=admin_headers).status_code == 404


def test_expense_short_account_and_cash(client, admin_headers):
    acct = _account(client, admin_headers, opening=100)
    resp = client.post('/banking/expenses', json={
        'category': 'Packaging', 'amount_paise': 101, 'bank_account_id': acct['id'],
    }, headers=admin_headers)
    assert resp.status_code == 409
    listed = client.get('/banking/expenses?category=Packaging', headers=admin_headers).get_json()['data']
    assert all(e['amount_paise'] != 101 for e in listed)

    resp = client.post('/banking/expenses', json={'category': 'Tea', 'amount_paise': 40}, headers=admin_headers)
    assert resp.status_code == 201
    cash = resp.get_json()
    assert cash['payment_method'] == 'cash'
    assert client.delete(f"/banking/expenses/{cash['id']}", headers=admin_headers).get_json()['refunded_paise'] == 0
    resp = client.post('/banking/expenses', json={'category': 'Tea', 'amount_paise': 40, 'payment_method': 'ious'},
                       headers=admin_headers)
    assert error_detail(resp) == 'payment_method invalid'


def test_transactions_export_csv(client, admin_headers):
    acct = _account(client, admin_headers)
    client.post(f"/banking/accounts/{acct['id']}/transactions", json={'type': 'deposit', 'amount_paise': 777},
                headers=admin_headers)
    resp = client.get(f"/banking/transactions/export?account_id={acct['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers['Content-Type'].startswith('text/csv')
    lines = resp.get_data(as_text=True).strip().splitlines()
    assert lines[0].startswith('id,transaction_date,type,amount_paise')
    assert len(lines) == 2
    assert ',deposit,777,777,' in lines[1]


def test_banking_permissions(client, app_instance):
    reader = seed_user_with_permissions('bank-reader@test.local', {'reports': ['read']})
    headers = jwt_headers(app_instance, reader.id)
    assert client.get('/banking/accounts', headers=headers).status_code == 200
    resp = client.post('/banking/accounts', json={'account_name': 'Nope'}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['resource'] == 'settings'
    assert client.get('/banking/transactions/export', headers=headers).status_code == 403
