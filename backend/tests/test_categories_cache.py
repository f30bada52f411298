import uuid

import pytest
from sqlalchemy.exc import OperationalError

from luminila import get_db
from luminila.services.categories import (
    CategoryStore, LocalCache, build_category_tree, slugify, SOURCE_DATABASE, SOURCE_LOCAL_CACHE,
)


class DownSession:
    def execute(self, *a, **k):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    def get(self, *a, **k):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    def rollback(self):
        pass


def _name(prefix):
    return f'{prefix} {uuid.uuid4().hex[:6]}'


def test_slugify():
    assert slugify('Temple Jewellery') == 'temple-jewellery'
    assert slugify('  Ear--rings & Studs ') == 'ear-rings-studs'
    assert slugify('***') == 'category'


def test_build_tree_nests_and_sorts():
    rows = [
        {'id': 1, 'name': 'Necklaces', 'parent_id': None, 'sort_order': 2},
        {'id': 2, 'name': 'Earrings', 'parent_id': None, 'sort_order': 1},
        {'id': 3, 'name': 'Studs', 'parent_id': 2, 'sort_order': 0},
        {'id': 4, 'name': 'Orphan', 'parent_id': 99, 'sort_order': 0},
    ]
    tree = build_category_tree(rows)
    assert [n['name'] for n in tree] == ['Orphan', 'Earrings', 'Necklaces']
    earrings = tree[1]
    assert [c['name'] for c in earrings['children']] == ['Studs']


def test_store_reads_database_and_refreshes_cache(tmp_path):
    cache = LocalCache(str(tmp_path))
    store = CategoryStore(get_db, cache)
    name = _name('Rings')
    created = store.create({'name': name})
    get_db().commit()
    assert created.source == SOURCE_DATABASE and not created.degraded
    result = store.list()
    assert result.source == SOURCE_DATABASE
    assert result.headers() == {'X-Data-Source': 'database', 'X-Degraded': 'false'}
    assert any(i['name'] == name for i in cache.load()['items'])


def test_store_falls_back_to_cache_when_database_down(tmp_path):
    cache = LocalCache(str(tmp_path))
    CategoryStore(get_db, cache).list()
    snapshot = cache.load()['items']
    down = CategoryStore(DownSession, cache)
    result = down.list(include_inactive=True)
    assert result.degraded is True
    assert result.source == SOURCE_LOCAL_CACHE
    assert result.items == snapshot
    assert result.headers()['X-Degraded'] == 'true'


def test_empty_cache_when_never_loaded(tmp_path):
    result = CategoryStore(DownSession, LocalCache(str(tmp_path / 'fresh'))).list()
    assert result.items == []
    assert result.degraded is True


def test_degraded_write_is_queued_then_flushed(tmp_path):
    cache = LocalCache(str(tmp_path))
    name = _name('Maang Tikka')
    queued = CategoryStore(DownSession, cache).create({'name': name})
    assert queued.degraded
    assert queued.items[0]['id'] is None
    assert queued.items[0]['pending'] is True
    listed = CategoryStore(DownSession, cache).list()
    assert any(i['name'] == name and i.get('pending') for i in listed.items)
    assert len(listed.pending) == 1

    store = CategoryStore(get_db, cache)
    assert store.flush_pending() == 1
    get_db().commit()
    assert cache.load()['pending'] == []
    # replaying again applies nothing
    cache.queue('create', queued.pending[0]['payload'])
    assert store.flush_pending() == 0


def test_store_rejects_duplicate_slug(tmp_path):
    store = CategoryStore(get_db, LocalCache(str(tmp_path)))
    name = _name('Bangles')
    store.create({'name': name})
    get_db().commit()
    with pytest.raises(ValueError):
        store.create({'name': name})
    get_db().rollback()


def test_category_routes(client, admin_headers):
    name = _name('Chokers')
    resp = client.post('/catalog/categories', json={'name': name}, headers=admin_headers)
    assert resp.status_code == 201, resp.get_json()
    parent = resp.get_json()
    assert parent['slug'] == slugify(name)
    assert resp.headers['X-Data-Source'] == 'database'
    resp = client.post('/catalog/categories', json={'name': name}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'category slug in use'

    child_name = _name('Velvet Chokers')
    resp = client.post('/catalog/categories', json={'name': child_name, 'parent_id': parent['id']},
                       headers=admin_headers)
    assert resp.status_code == 201
    child = resp.get_json()

    resp = client.get('/catalog/categories?tree=true', headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['source'] == 'database' and body['degraded'] is False
    node = next(n for n in body['data'] if n['id'] == parent['id'])
    assert [c['id'] for c in node['children']] == [child['id']]

    resp = client.patch(f"/catalog/categories/{child['id']}", json={'parent_id': child['id']}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.delete(f"/catalog/categories/{child['id']}", headers=admin_headers)
    assert resp.get_json() == {'id': child['id'], 'is_active': False}
    ids = [c['id'] for c in client.get('/catalog/categories', headers=admin_headers).get_json()['data']]
    assert child['id'] not in ids


def test_category_routes_degrade_to_cache(client, admin_headers, monkeypatch):
    import luminila.routes.catalog as catalog_routes
    client.get('/catalog/categories', headers=admin_headers)  # warm the cache
    monkeypatch.setattr(catalog_routes, 'get_db', DownSession)
    resp = client.get('/catalog/categories', headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers['X-Data-Source'] == 'local_cache'
    assert resp.headers['X-Degraded'] == 'true'
    assert resp.get_json()['degraded'] is True
    assert client.get('/catalog/categories?allow_stale=false', headers=admin_headers).status_code == 503

    name = _name('Offline Category')
    resp = client.post('/catalog/categories', json={'name': name}, headers=admin_headers)
    assert resp.status_code == 202, resp.get_json()
    assert resp.get_json()['pending'] is True
    listed = client.get('/catalog/categories', headers=admin_headers).get_json()
    assert listed['pending'] >= 1


def test_failed_replay_keeps_queued_writes(tmp_path):
    cache = LocalCache(str(tmp_path))
    name = _name('Nose Pins')
    CategoryStore(DownSession, cache).create({'name': name})

    result = CategoryStore(DownSession, cache).sync()
    assert result.error == 'OperationalError'
    assert result.applied == 0
    assert [e['payload']['name'] for e in cache.load()['pending']] == [name]
    assert any(i.get('pending') and i['name'] == name for i in cache.load()['items'])

    result = CategoryStore(get_db, cache).sync()
    assert (result.applied, result.remaining, result.error) == (1, 0, None)
    assert cache.load()['pending'] == []
    assert not any(i.get('pending') for i in cache.load()['items'])
    # committed by the replay itself
    get_db().rollback()
    names = [c['name'] for c in CategoryStore(get_db, cache).list().items]
    assert name in names


def test_queued_writes_survive_a_cache_refresh(tmp_path):
    cache = LocalCache(str(tmp_path))
    name = _name('Toe Rings')
    CategoryStore(DownSession, cache).create({'name': name})
    CategoryStore(get_db, cache).list()
    assert len(cache.load()['pending']) == 1
    assert any(i['name'] == name and i.get('pending') for i in cache.load()['items'])


def test_category_sync_route(client, admin_headers, monkeypatch):
    import luminila.routes.catalog as catalog_routes
    name = _name('Synced Category')
    with monkeypatch.context() as m:
        m.setattr(catalog_routes, 'get_db', DownSession)
        assert client.post('/catalog/categories', json={'name': name}, headers=admin_headers).status_code == 202
        resp = client.post('/catalog/categories/sync', headers=admin_headers)
        assert resp.status_code == 503
        assert 'queued write(s) kept' in resp.get_json()['error']['detail']

    resp = client.post('/catalog/categories/sync', headers=admin_headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['applied'] >= 1 and body['remaining'] == 0
    listed = client.get('/catalog/categories', headers=admin_headers).get_json()
    assert listed['pending'] == 0
    assert any(c['name'] == name and c['id'] for c in listed['data'])
