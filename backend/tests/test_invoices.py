import uuid

from tests.test_utils_seed import ensure_product, ensure_customer, seed_user_with_permissions, unique_phone
from tests.test_lifecycle_helpers import assert_transition, create_resource_and_assert, error_detail, jwt_headers


def _sku():
    return f'INV-{uuid.uuid4().hex[:8].upper()}'


def _sale(client, headers, customer=None, qty=2, price=100_000):
    _, variant = ensure_product(_sku(), base_price_paise=price, stock=10)
    payload = {'items': [{'variant_id': variant.id, 'quantity': qty}]}
    if customer is not None:
        payload['customer_id'] = customer.id
    resp = client.post('/sales', json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _bank_account(client, headers, opening=0):
    return create_resource_and_assert(client, '/banking/accounts', {
        'account_name': f'Current {uuid.uuid4().hex[:6]}', 'opening_balance_paise': opening,
    }, headers)


def test_intra_state_invoice_from_sale(client, admin_headers):
    customer = ensure_customer('Kavya', phone=unique_phone(), state_code='27')
    sale = _sale(client, admin_headers, customer)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id']}, admin_headers,
                                     expected_initial_status='ISSUED')
    assert inv['invoice_number'].startswith('INV-')
    assert inv['buyer_name'] == 'Kavya'
    assert inv['is_inter_state'] is False
    assert (inv['cgst_paise'], inv['sgst_paise'], inv['igst_paise']) == (3_000, 3_000, 0)
    assert inv['grand_total_paise'] == 206_000
    assert inv['balance_due_paise'] == 206_000
    assert inv['amount_in_words'] == 'Two Thousand Sixty Rupees Only'
    assert [i['sr_no'] for i in inv['items']] == [1]


def test_inter_state_invoice_uses_igst(client, admin_headers):
    customer = ensure_customer('Rhea', phone=unique_phone(), state_code='29')
    sale = _sale(client, admin_headers, customer)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_gstin': '29AAAAA0000A1Z5'},
                                     admin_headers)
    assert inv['is_inter_state'] is True
    assert (inv['cgst_paise'], inv['sgst_paise'], inv['igst_paise']) == (0, 0, 6_000)
    assert inv['seller_state_code'] == '27'
    assert inv['buyer_state_code'] == '29'
    assert inv['buyer_gstin'] == '29AAAAA0000A1Z5'


def test_invoice_from_items_needs_buyer(client, admin_headers):
    _, variant = ensure_product(_sku(), base_price_paise=50_000)
    items = [{'variant_id': variant.id, 'quantity': 1}]
    resp = client.post('/invoices', json={'items': items}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'buyer_name required'
    inv = create_resource_and_assert(client, '/invoices', {
        'items': items, 'buyer_name': 'Walk-in', 'buyer_state_code': '07',
    }, admin_headers)
    assert inv['is_inter_state'] is True
    assert inv['grand_total_paise'] == 51_500


def test_sale_cannot_be_invoiced_twice(client, admin_headers):
    sale = _sale(client, admin_headers)
    first = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Once'}, admin_headers)
    resp = client.post('/invoices', json={'sale_id': sale['id'], 'buyer_name': 'Twice'}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == f"sale already invoiced as {first['invoice_number']}"


def test_cancelled_sale_cannot_be_invoiced(client, admin_headers):
    sale = _sale(client, admin_headers)
    client.post(f"/sales/{sale['id']}/cancel", headers=admin_headers)
    resp = client.post('/invoices', json={'sale_id': sale['id'], 'buyer_name': 'Late'}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'sale is cancelled'


def test_payments_move_status_and_reject_overpayment(client, admin_headers):
    sale = _sale(client, admin_headers)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Payer'}, admin_headers)
    url = f"/invoices/{inv['id']}/payments"
    resp = client.post(url, json={'amount_paise': 100_000, 'method': 'upi'}, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'PARTIALLY_PAID'
    assert body['balance_due_paise'] == 106_000

    resp = client.post(url, json={'amount_paise': 106_001}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'amount exceeds balance due of 106000'
    resp = client.post(url, json={'amount_paise': 10, 'method': 'seashells'}, headers=admin_headers)
    assert resp.status_code == 400

    resp = client.post(url, json={'amount_paise': 106_000, 'method': 'cash'}, headers=admin_headers)
    body = resp.get_json()
    assert body['status'] == 'PAID'
    assert body['paid_paise'] == 206_000
    assert len(body['payments']) == 2
    resp = client.post(url, json={'amount_paise': 1}, headers=admin_headers)
    assert resp.status_code == 400


def test_payment_into_bank_account(client, admin_headers):
    sale = _sale(client, admin_headers)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Banked'}, admin_headers)
    account = _bank_account(client, admin_headers)
    resp = client.post(f"/invoices/{inv['id']}/payments", json={
        'amount_paise': 50_000, 'method': 'bank_transfer', 'bank_account_id': account['id'],
    }, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    acct = client.get(f"/banking/accounts/{account['id']}", headers=admin_headers).get_json()
    assert acct['current_balance_paise'] == 50_000
    txs = client.get(f"/banking/accounts/{account['id']}/transactions", headers=admin_headers).get_json()['data']
    assert txs[0]['related_entity_type'] == 'invoice'
    assert txs[0]['related_entity_id'] == str(inv['id'])


def test_print_counts_and_cancel_rules(client, admin_headers):
    sale = _sale(client, admin_headers)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Printer'}, admin_headers)
    for expected in (1, 2):
        resp = client.post(f"/invoices/{inv['id']}/print", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()['print_count'] == expected

    paid = create_resource_and_assert(client, '/invoices', {
        'sale_id': _sale(client, admin_headers)['id'], 'buyer_name': 'Paid Up',
    }, admin_headers)
    client.post(f"/invoices/{paid['id']}/payments", json={'amount_paise': 1_000}, headers=admin_headers)
    resp = assert_transition(client, f"/invoices/{paid['id']}/cancel", admin_headers, 400)
    assert error_detail(resp) == 'invoice has payments; issue a credit note instead'

    assert_transition(client, f"/invoices/{inv['id']}/cancel", admin_headers, 200, expected_body_value='CANCELLED')
    assert_transition(client, f"/invoices/{inv['id']}/print", admin_headers, 400)
    # a cancelled invoice frees its sale for re-invoicing
    create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Again'}, admin_headers)


def test_print_needs_print_permission(client, app_instance, admin_headers):
    sale = _sale(client, admin_headers)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': 'Guarded'}, admin_headers)
    user = seed_user_with_permissions('invoice-reader@test.local', {'invoices': ['read']})
    headers = jwt_headers(app_instance, user.id)
    assert client.get(f"/invoices/{inv['id']}", headers=headers).status_code == 200
    resp = client.post(f"/invoices/{inv['id']}/print", headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['action'] == 'print'


def test_list_filters(client, admin_headers):
    name = f'Filter Buyer {uuid.uuid4().hex[:6]}'
    sale = _sale(client, admin_headers)
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id'], 'buyer_name': name}, admin_headers)
    resp = client.get(f'/invoices?q={name}', headers=admin_headers)
    assert [i['id'] for i in resp.get_json()['data']] == [inv['id']]
    assert client.get('/invoices?status=LOST', headers=admin_headers).status_code == 400
