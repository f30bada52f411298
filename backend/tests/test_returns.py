import uuid

from tests.test_utils_seed import ensure_product, ensure_customer, stock_of, unique_phone
from tests.test_lifecycle_helpers import assert_transition, create_resource_and_assert, error_detail


def _invoiced_sale(client, headers, qty=3, state_code='27'):
    _, variant = ensure_product(f'RET-{uuid.uuid4().hex[:8].upper()}', base_price_paise=100_000, stock=10)
    customer = ensure_customer('Returner', phone=unique_phone(), state_code=state_code)
    sale = client.post('/sales', json={
        'customer_id': customer.id, 'items': [{'variant_id': variant.id, 'quantity': qty}],
    }, headers=headers).get_json()
    inv = create_resource_and_assert(client, '/invoices', {'sale_id': sale['id']}, headers)
    return variant, inv


def test_credit_note_lifecycle_restocks(client, admin_headers):
    variant, inv = _invoiced_sale(client, admin_headers)
    assert stock_of(variant.id) == 7
    line = inv['items'][0]
    cn = create_resource_and_assert(client, '/returns', {
        'invoice_id': inv['id'], 'reason': 'clasp broken',
        'items': [{'invoice_item_id': line['id'], 'quantity': 2}],
    }, admin_headers, expected_initial_status='PENDING')
    assert cn['credit_note_number'].startswith('CN-')
    assert cn['taxable_paise'] == 200_000
    assert cn['tax_paise'] == 6_000
    assert cn['total_paise'] == 206_000
    assert cn['items'][0]['variant_id'] == variant.id

    resp = assert_transition(client, f"/returns/{cn['id']}/refund", admin_headers, 400, payload={'refund_method': 'cash'})
    assert 'PENDING -> REFUNDED' in error_detail(resp)
    assert_transition(client, f"/returns/{cn['id']}/approve", admin_headers, 200, expected_body_value='APPROVED')
    resp = assert_transition(client, f"/returns/{cn['id']}/refund", admin_headers, 400)
    assert error_detail(resp) == 'refund_method required'
    resp = assert_transition(client, f"/returns/{cn['id']}/refund", admin_headers, 200,
                             expected_body_value='REFUNDED', payload={'refund_method': 'cash'})
    assert resp.get_json()['restocked_units'] == 2
    assert stock_of(variant.id) == 9


def test_cannot_return_more_than_invoiced(client, admin_headers):
    _, inv = _invoiced_sale(client, admin_headers, qty=2)
    item_id = inv['items'][0]['id']
    create_resource_and_assert(client, '/returns', {
        'invoice_id': inv['id'], 'reason': 'first', 'items': [{'invoice_item_id': item_id, 'quantity': 1}],
    }, admin_headers)
    resp = client.post('/returns', json={
        'invoice_id': inv['id'], 'reason': 'second', 'items': [{'invoice_item_id': item_id, 'quantity': 2}],
    }, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'items[1] only 1 unit(s) left to return'


def test_rejected_return_frees_units(client, admin_headers):
    variant, inv = _invoiced_sale(client, admin_headers, qty=1)
    item_id = inv['items'][0]['id']
    payload = {'invoice_id': inv['id'], 'reason': 'changed mind', 'items': [{'invoice_item_id': item_id, 'quantity': 1}]}
    cn = create_resource_and_assert(client, '/returns', payload, admin_headers)
    assert_transition(client, f"/returns/{cn['id']}/reject", admin_headers, 200, expected_body_value='REJECTED')
    assert_transition(client, f"/returns/{cn['id']}/approve", admin_headers, 400)
    create_resource_and_assert(client, '/returns', payload, admin_headers)
    assert stock_of(variant.id) == 9


def test_no_restock_and_bank_refund(client, admin_headers):
    variant, inv = _invoiced_sale(client, admin_headers, qty=1, state_code='29')
    account = create_resource_and_assert(client, '/banking/accounts', {
        'account_name': f'Refunds {uuid.uuid4().hex[:6]}', 'opening_balance_paise': 500_000,
    }, admin_headers)
    cn = create_resource_and_assert(client, '/returns', {
        'invoice_id': inv['id'], 'reason': 'damaged in transit', 'restock': False,
        'refund_method': 'bank_transfer', 'items': [{'invoice_item_id': inv['items'][0]['id'], 'quantity': 1}],
    }, admin_headers)
    assert cn['tax_paise'] == 3_000
    client.post(f"/returns/{cn['id']}/approve", headers=admin_headers)
    resp = client.post(f"/returns/{cn['id']}/refund", json={'bank_account_id': account['id']}, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['restocked_units'] == 0
    assert stock_of(variant.id) == 9
    acct = client.get(f"/banking/accounts/{account['id']}", headers=admin_headers).get_json()
    assert acct['current_balance_paise'] == 500_000 - 103_000


def test_return_validation(client, admin_headers):
    _, inv = _invoiced_sale(client, admin_headers, qty=1)
    _, other = _invoiced_sale(client, admin_headers, qty=1)
    resp = client.post('/returns', json={'invoice_id': inv['id'], 'reason': 'x', 'items': []}, headers=admin_headers)
    assert error_detail(resp) == 'items required'
    resp = client.post('/returns', json={
        'invoice_id': inv['id'], 'reason': 'x', 'items': [{'invoice_item_id': other['items'][0]['id'], 'quantity': 1}],
    }, headers=admin_headers)
    assert resp.status_code == 400
    assert 'is not a line of invoice' in error_detail(resp)
    resp = client.post('/returns', json={'invoice_id': inv['id'], 'items': [{}]}, headers=admin_headers)
    assert error_detail(resp) == 'reason required'
    resp = client.post('/returns', json={
        'invoice_id': inv['id'], 'reason': 'x', 'refund_method': 'gold bars',
        'items': [{'invoice_item_id': inv['items'][0]['id'], 'quantity': 1}],
    }, headers=admin_headers)
    assert error_detail(resp) == 'refund_method invalid'


def test_list_returns_for_invoice(client, admin_headers):
    _, inv = _invoiced_sale(client, admin_headers, qty=1)
    cn = create_resource_and_assert(client, '/returns', {
        'invoice_id': inv['id'], 'reason': 'size', 'items': [{'invoice_item_id': inv['items'][0]['id'], 'quantity': 1}],
    }, admin_headers)
    listed = client.get(f"/returns?invoice_id={inv['id']}", headers=admin_headers).get_json()['data']
    assert [c['id'] for c in listed] == [cn['id']]
    detail = client.get(f"/returns/{cn['id']}", headers=admin_headers).get_json()
    assert len(detail['items']) == 1
