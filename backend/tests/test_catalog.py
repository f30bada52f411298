import uuid

from tests.test_utils_seed import ensure_product, seed_user_with_permissions, stock_of
from tests.test_lifecycle_helpers import jwt_headers, error_detail


def _sku(prefix='LUM'):
    return f'{prefix}-{uuid.uuid4().hex[:8].upper()}'


def _create(client, headers, **overrides):
    payload = {'sku': _sku(), 'name': 'Kundan Jhumka', 'base_price_paise': 149_900, 'stock_level': 4}
    payload.update(overrides)
    resp = client.post('/catalog/products', json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_product_with_default_variant(client, admin_headers):
    body = _create(client, admin_headers, cost_price_paise=80_000)
    assert body['gst_rate_bp'] == 300
    assert body['cost_price_paise'] == 80_000
    assert len(body['variants']) == 1
    v = body['variants'][0]
    assert v['variant_name'] == 'Default'
    assert v['stock_level'] == 4
    assert v['unit_price_paise'] == 149_900


def test_create_product_with_variants(client, admin_headers):
    body = _create(client, admin_headers, variants=[
        {'variant_name': 'Gold', 'stock_level': 2, 'price_adjustment_paise': 10_000, 'sku_suffix': 'G'},
        {'variant_name': 'Silver', 'stock_level': 5, 'color': 'silver'},
    ])
    by_name = {v['variant_name']: v for v in body['variants']}
    assert by_name['Gold']['unit_price_paise'] == 159_900
    assert by_name['Silver']['color'] == 'silver'
    resp = client.post('/catalog/products', json={
        'sku': _sku(), 'name': 'Dup', 'base_price_paise': 100,
        'variants': [{'variant_name': 'A'}, {'variant_name': 'A'}],
    }, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'variant names must be unique'


def test_create_product_validation(client, admin_headers):
    existing = _create(client, admin_headers)
    resp = client.post('/catalog/products', json={'sku': existing['sku'], 'name': 'x', 'base_price_paise': 100},
                       headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'sku in use'
    resp = client.post('/catalog/products', json={'sku': _sku(), 'name': 'x', 'base_price_paise': 0},
                       headers=admin_headers)
    assert resp.status_code == 400
    resp = client.post('/catalog/products', json={'name': 'x'}, headers=admin_headers)
    assert resp.status_code == 400
    assert 'sku' in error_detail(resp)


def test_get_update_and_if_match(client, admin_headers):
    created = _create(client, admin_headers)
    resp = client.get(f"/catalog/products/{created['id']}", headers=admin_headers)
    assert resp.status_code == 200
    etag = resp.headers['ETag']

    stale = client.patch(f"/catalog/products/{created['id']}", json={'name': 'Stale'},
                         headers={**admin_headers, 'If-Match': '"deadbeef"'})
    assert stale.status_code == 412

    resp = client.patch(f"/catalog/products/{created['id']}", json={'name': 'Temple Necklace', 'gst_rate_bp': 500},
                        headers={**admin_headers, 'If-Match': etag})
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['name'] == 'Temple Necklace'
    assert resp.get_json()['gst_rate_bp'] == 500


def test_soft_delete_hides_product_from_default_list(client, admin_headers):
    created = _create(client, admin_headers, name='Retired Bangle')
    resp = client.delete(f"/catalog/products/{created['id']}", headers=admin_headers)
    assert resp.get_json() == {'id': created['id'], 'is_active': False}
    listed = client.get(f"/catalog/products?sku={created['sku']}", headers=admin_headers).get_json()
    assert listed['pagination']['total'] == 0
    listed = client.get(f"/catalog/products?sku={created['sku']}&is_active=false", headers=admin_headers).get_json()
    assert listed['pagination']['total'] == 1


def test_list_filters_sort_and_conditional(client, admin_headers):
    tag = uuid.uuid4().hex[:6]
    _create(client, admin_headers, name=f'Anklet {tag}', base_price_paise=50_000)
    _create(client, admin_headers, name=f'Bracelet {tag}', base_price_paise=90_000)
    resp = client.get(f'/catalog/products?q={tag}&sort=-base_price_paise&include=variants', headers=admin_headers)
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert [p['name'] for p in data] == [f'Bracelet {tag}', f'Anklet {tag}']
    assert 'variants' in data[0]
    etag = resp.headers['ETag']
    again = client.get(f'/catalog/products?q={tag}&sort=-base_price_paise&include=variants',
                       headers={**admin_headers, 'If-None-Match': etag})
    assert again.status_code == 304

    resp = client.get(f'/catalog/products?q={tag}&min_price_paise=60000', headers=admin_headers)
    assert [p['name'] for p in resp.get_json()['data']] == [f'Bracelet {tag}']

    resp = client.get('/catalog/products?sort=colour', headers=admin_headers)
    assert resp.status_code == 400
    assert 'Invalid sort field' in error_detail(resp)


def test_variant_lifecycle(client, admin_headers):
    created = _create(client, admin_headers)
    pid = created['id']
    resp = client.post(f'/catalog/products/{pid}/variants', json={'variant_name': 'Rose Gold', 'stock_level': 3},
                       headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    vid = resp.get_json()['id']
    resp = client.post(f'/catalog/products/{pid}/variants', json={'variant_name': 'Rose Gold'}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'variant name in use'

    resp = client.patch(f'/catalog/variants/{vid}', json={'stock_level': 99}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.patch(f'/catalog/variants/{vid}', json={'size': 'M', 'low_stock_threshold': 1}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['size'] == 'M'

    assert client.delete(f'/catalog/variants/{vid}', headers=admin_headers).get_json()['is_active'] is False
    names = [v['variant_name'] for v in client.get(f'/catalog/products/{pid}', headers=admin_headers).get_json()['variants']]
    assert 'Rose Gold' not in names


def test_stock_adjustment_guards_floor(client, admin_headers):
    _, variant = ensure_product(_sku(), stock=3)
    resp = client.post(f'/catalog/variants/{variant.id}/stock', json={'delta': 2, 'reason': 'restock'},
                       headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['stock_level'] == 5
    resp = client.post(f'/catalog/variants/{variant.id}/stock', json={'delta': -6}, headers=admin_headers)
    assert resp.status_code == 409
    assert error_detail(resp) == f'Insufficient stock for variant {variant.id}'
    assert stock_of(variant.id) == 5
    resp = client.post(f'/catalog/variants/{variant.id}/stock', json={'delta': 0}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.post(f'/catalog/variants/{variant.id}/stock', json={'delta': 'many'}, headers=admin_headers)
    assert resp.status_code == 400


def test_low_stock_report(client, admin_headers):
    product, variant = ensure_product(_sku('LOW'), name='Nearly Gone Nath', stock=1)
    resp = client.get('/catalog/inventory/low-stock?limit=200', headers=admin_headers)
    assert resp.status_code == 200
    match = [v for v in resp.get_json()['data'] if v['id'] == variant.id]
    assert match and match[0]['product_name'] == 'Nearly Gone Nath'
    assert match[0]['sku'] == product.sku


def test_inventory_permission_is_separate_from_products(client, app_instance):
    user = seed_user_with_permissions('catalog-editor@test.local', {'products': ['read', 'update']})
    headers = jwt_headers(app_instance, user.id)
    _, variant = ensure_product(_sku())
    assert client.get('/catalog/products', headers=headers).status_code == 200
    resp = client.post(f'/catalog/variants/{variant.id}/stock', json={'delta': 1}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['resource'] == 'inventory'
