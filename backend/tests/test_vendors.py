import uuid

from tests.test_utils_seed import ensure_product, seed_user_with_permissions
from tests.test_lifecycle_helpers import create_resource_and_assert, error_detail, jwt_headers


def _name(prefix='Vendor'):
    return f'{prefix} {uuid.uuid4().hex[:6]}'


def test_vendor_crud_and_duplicates(client, admin_headers):
    name = _name()
    v = create_resource_and_assert(client, '/po/vendors', {
        'name': name, 'email': 'sales@silverline.test', 'gstin': '27ABCDE1234F1Z5', 'payment_terms': 'NET30',
    }, admin_headers, expected_initial_status='ACTIVE')
    resp = client.post('/po/vendors', json={'name': name}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'vendor name exists'

    resp = client.get(f"/po/vendors/{v['id']}", headers=admin_headers)
    assert resp.headers.get('ETag')
    resp = client.patch(f"/po/vendors/{v['id']}", json={'email': 'orders@silverline.test'}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['email'] == 'orders@silverline.test'
    resp = client.patch(f"/po/vendors/{v['id']}", json={'name': ''}, headers=admin_headers)
    assert error_detail(resp) == 'name cannot be empty'
    resp = client.patch(f"/po/vendors/{v['id']}", json={'email': 'x@y.test'},
                        headers={**admin_headers, 'If-Match': '"deadbeef"'})
    assert resp.status_code == 412

    logs = client.get(f"/activity?action=VENDOR.UPDATE&entity_id={v['id']}", headers=admin_headers).get_json()['data']
    assert logs[-1]['meta']['changes']['email'] == {'before': 'sales@silverline.test', 'after': 'orders@silverline.test'}


def test_activate_deactivate(client, admin_headers):
    v = create_resource_and_assert(client, '/po/vendors', {'name': _name()}, admin_headers)
    url = f"/po/vendors/{v['id']}"
    resp = client.post(f'{url}/activate', headers=admin_headers)
    assert error_detail(resp) == 'already active'
    resp = client.post(f'{url}/deactivate', headers=admin_headers)
    assert resp.get_json()['status'] == 'INACTIVE'
    listed = client.get(f"/po/vendors?status=INACTIVE&name={v['name']}", headers=admin_headers).get_json()['data']
    assert [x['id'] for x in listed] == [v['id']]
    assert client.post(f'{url}/activate', headers=admin_headers).get_json()['status'] == 'ACTIVE'


def test_supplier_mapping_prefers_one_vendor(client, admin_headers):
    _, variant = ensure_product(f'VND-{uuid.uuid4().hex[:8].upper()}')
    a = create_resource_and_assert(client, '/po/vendors', {'name': _name('Alpha')}, admin_headers)
    b = create_resource_and_assert(client, '/po/vendors', {'name': _name('Beta')}, admin_headers)

    resp = client.put(f"/po/vendors/{a['id']}/products/{variant.id}",
                      json={'cost_price_paise': 9_000, 'vendor_sku': 'A-1', 'is_preferred': True}, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    resp = client.put(f"/po/vendors/{b['id']}/products/{variant.id}",
                      json={'cost_price_paise': 8_000}, headers=admin_headers)
    assert resp.status_code == 201

    suppliers = client.get(f'/po/suppliers/{variant.id}', headers=admin_headers).get_json()['data']
    assert [s['vendor_id'] for s in suppliers] == [a['id'], b['id']]

    resp = client.put(f"/po/vendors/{b['id']}/products/{variant.id}", json={'is_preferred': True}, headers=admin_headers)
    assert resp.status_code == 200
    suppliers = client.get(f'/po/suppliers/{variant.id}', headers=admin_headers).get_json()['data']
    assert [(s['vendor_id'], s['is_preferred']) for s in suppliers] == [(b['id'], True), (a['id'], False)]

    client.post(f"/po/vendors/{b['id']}/deactivate", headers=admin_headers)
    suppliers = client.get(f'/po/suppliers/{variant.id}', headers=admin_headers).get_json()['data']
    assert [s['vendor_name'] for s in suppliers] == [a['name']]

    resp = client.delete(f"/po/vendors/{a['id']}/products/{variant.id}", headers=admin_headers)
    assert resp.status_code == 200
    assert client.delete(f"/po/vendors/{a['id']}/products/{variant.id}", headers=admin_headers).status_code == 404
    assert client.put(f"/po/vendors/{a['id']}/products/987654", json={}, headers=admin_headers).status_code == 404


def test_vendor_permissions(client, app_instance):
    user = seed_user_with_permissions('vendor-reader@test.local', {'vendors': ['read']})
    headers = jwt_headers(app_instance, user.id)
    assert client.get('/po/vendors', headers=headers).status_code == 200
    resp = client.post('/po/vendors', json={'name': _name()}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['action'] == 'create'
