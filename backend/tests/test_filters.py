import uuid

import pytest
from werkzeug.exceptions import BadRequest

from luminila.utils.filters import apply_filters
from tests.test_utils_seed import ensure_customer, ensure_product, unique_phone


class RecordingQuery:
    def __init__(self):
        self.applied = []

    def filter(self, value):
        self.applied.append(value)
        return self


SPECS = {
    'active': {'coerce': 'bool', 'op': lambda q, v: q.filter(('active', v))},
    'min': {'coerce': int, 'op': lambda q, v: q.filter(('min', v))},
    'status': {'op': lambda q, v: q.filter(('status', v)), 'validate': lambda v: v in ('A', 'B')},
}


def test_apply_filters_coerces_and_skips_blanks():
    q = apply_filters(RecordingQuery(), SPECS, {'active': 'Yes', 'min': '5', 'status': '', 'other': 'x'})
    assert q.applied == [('active', True), ('min', 5)]


@pytest.mark.parametrize('params,detail', [
    ({'active': 'maybe'}, 'active invalid'),
    ({'min': 'five'}, 'min invalid'),
    ({'status': 'Z'}, 'status invalid'),
])
def test_apply_filters_rejects_bad_values(params, detail):
    with pytest.raises(BadRequest) as exc:
        apply_filters(RecordingQuery(), SPECS, params)
    assert exc.value.description == detail


def test_customer_filters(client, admin_headers):
    tag = uuid.uuid4().hex[:6]
    ensure_customer(f'Filter {tag} One', phone=unique_phone())
    ensure_customer(f'Filter {tag} Two', phone=unique_phone())
    body = client.get(f'/customers?q={tag}', headers=admin_headers).get_json()
    assert body['pagination']['returned'] == 2
    resp = client.get('/customers?min_spent_paise=lots', headers=admin_headers)
    assert resp.status_code == 400


def test_catalog_filters(client, admin_headers):
    sku = f'FLT-{uuid.uuid4().hex[:8].upper()}'
    ensure_product(sku, name=f'Filter Anklet {sku}')
    body = client.get(f'/catalog/products?q={sku}', headers=admin_headers).get_json()
    assert [p['sku'] for p in body['data']] == [sku]
    resp = client.get('/catalog/products?is_active=perhaps', headers=admin_headers)
    assert resp.status_code == 400
