import uuid

import pytest
from sqlalchemy.exc import OperationalError

from luminila import get_db
from luminila.services.attributes import AttributeStore, checked_options, coerce_value
from luminila.services.local_cache import LocalCache, SOURCE_LOCAL_CACHE
from tests.test_utils_seed import ensure_product
from tests.test_lifecycle_helpers import error_detail


class DownSession:
    def execute(self, *a, **k):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    def rollback(self):
        pass


def _name(prefix):
    return f'{prefix} {uuid.uuid4().hex[:6]}'


def _attr(kind, **extra):
    return dict({'slug': 'purity', 'attribute_type': kind, 'options': []}, **extra)


@pytest.mark.parametrize('kind,raw,expected', [
    ('text', ' Kundan ', 'Kundan'),
    ('number', '22.5', '22.5'),
    ('boolean', 'Yes', 'true'),
    ('boolean', '0', 'false'),
    ('date', '2026-02-14', '2026-02-14'),
])
def test_coerce_value(kind, raw, expected):
    assert coerce_value(_attr(kind), raw) == expected


@pytest.mark.parametrize('kind,raw,detail', [
    ('number', 'heavy', 'purity must be a number'),
    ('boolean', 'maybe', 'purity must be true or false'),
    ('date', '14/02/2026', 'purity must be YYYY-MM-DD'),
])
def test_coerce_value_rejects(kind, raw, detail):
    with pytest.raises(ValueError) as exc:
        coerce_value(_attr(kind), raw)
    assert str(exc.value) == detail


def test_select_options():
    assert checked_options('select', [' 18K ', '22K']) == ['18K', '22K']
    assert checked_options('text', ['ignored']) is None
    with pytest.raises(ValueError):
        checked_options('select', [])
    with pytest.raises(ValueError):
        checked_options('colour', None)
    with pytest.raises(ValueError):
        coerce_value(_attr('select', options=['18K']), '24K')


def test_store_queues_when_database_down_and_replays(tmp_path):
    cache = LocalCache(str(tmp_path), 'attributes.json')
    name = _name('Stone')
    queued = AttributeStore(DownSession, cache).create({'name': name, 'attribute_type': 'text'})
    assert queued.degraded and queued.source == SOURCE_LOCAL_CACHE
    listed = AttributeStore(DownSession, cache).list()
    assert listed.degraded
    assert any(i['name'] == name for i in listed.items)

    result = AttributeStore(get_db, cache).sync()
    assert result.applied == 1 and result.remaining == 0
    names = [a['name'] for a in AttributeStore(get_db, cache).list().items]
    assert name in names


def test_attribute_routes_and_product_values(client, admin_headers):
    purity = client.post('/catalog/attributes', json={
        'name': _name('Purity'), 'attribute_type': 'select', 'options': ['18K', '22K'], 'is_filterable': True,
    }, headers=admin_headers)
    assert purity.status_code == 201, purity.get_json()
    purity = purity.get_json()
    assert purity['options'] == ['18K', '22K']
    weight = client.post('/catalog/attributes', json={'name': _name('Weight'), 'attribute_type': 'number'},
                         headers=admin_headers).get_json()
    resp = client.post('/catalog/attributes', json={'name': purity['name']}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == 'attribute slug in use'
    resp = client.post('/catalog/attributes', json={'name': _name('Bad'), 'attribute_type': 'select'},
                       headers=admin_headers)
    assert error_detail(resp) == 'select attributes need a non-empty options list'

    product, _ = ensure_product(f'ATR-{uuid.uuid4().hex[:8].upper()}')
    url = f'/catalog/products/{product.id}/attributes'
    resp = client.put(url, json={'values': {purity['slug']: '22K', weight['slug']: '12.4'}}, headers=admin_headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['values'] == {purity['slug']: '22K', weight['slug']: '12.4'}

    resp = client.put(url, json={'values': {purity['slug']: '24K'}}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put(url, json={'values': {'no-such-attribute': 'x'}}, headers=admin_headers)
    assert error_detail(resp) == "Unknown attributes: ['no-such-attribute']"

    resp = client.put(url, json={'values': {weight['slug']: None}}, headers=admin_headers)
    assert resp.get_json()['values'] == {purity['slug']: '22K'}

    client.patch(f"/catalog/attributes/{weight['id']}", json={'is_required': True}, headers=admin_headers)
    resp = client.put(url, json={'values': {purity['slug']: '18K'}}, headers=admin_headers)
    assert resp.status_code == 400
    assert error_detail(resp) == f"{weight['slug']} required"

    resp = client.delete(f"/catalog/attributes/{weight['id']}", headers=admin_headers)
    assert resp.get_json() == {'id': weight['id'], 'is_active': False}
    body = client.get(url, headers=admin_headers).get_json()
    assert weight['slug'] not in [a['slug'] for a in body['attributes']]

    listed = client.get('/catalog/attributes', headers=admin_headers)
    assert listed.headers['X-Data-Source'] == 'database'
    assert purity['id'] in [a['id'] for a in listed.get_json()['data']]


def test_attribute_routes_degrade_to_cache(client, admin_headers, monkeypatch):
    import luminila.routes.catalog as catalog_routes
    client.get('/catalog/attributes', headers=admin_headers)
    name = _name('Occasion')
    with monkeypatch.context() as m:
        m.setattr(catalog_routes, 'get_db', DownSession)
        resp = client.get('/catalog/attributes', headers=admin_headers)
        assert resp.headers['X-Degraded'] == 'true'
        assert client.get('/catalog/attributes?allow_stale=false', headers=admin_headers).status_code == 503
        resp = client.post('/catalog/attributes', json={'name': name}, headers=admin_headers)
        assert resp.status_code == 202
    resp = client.post('/catalog/attributes/sync', headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['remaining'] == 0
    assert name in [a['name'] for a in client.get('/catalog/attributes', headers=admin_headers).get_json()['data']]
