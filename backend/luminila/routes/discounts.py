from __future__ import annotations
from flask import Blueprint, request, abort

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.discount import Discount
from luminila.services import discounts
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, require_fields, parse_int, parse_date

discounts_bp = Blueprint('discounts', __name__)


def _discount_json(d: Discount):
    return {
        'id': d.id,
        'code': d.code,
        'name': d.name,
        'description': d.description,
        'discount_type': d.discount_type,
        'value': d.value,
        'max_discount_paise': d.max_discount_paise,
        'min_purchase_paise': d.min_purchase_paise,
        'min_items': d.min_items,
        'applies_to': d.applies_to,
        'applies_to_ids': d.applies_to_ids or [],
        'usage_limit': d.usage_limit,
        'per_customer_limit': d.per_customer_limit,
        'used_count': d.used_count,
        'start_date': d.start_date.isoformat() if d.start_date else None,
        'end_date': d.end_date.isoformat() if d.end_date else None,
        'is_active': bool(d.is_active),
    }


def _get_discount(session, discount_id: int) -> Discount:
    d = session.get(Discount, discount_id)
    if not d:
        abort(404, description='Discount not found')
    return d


def _prefetch_discount(discount_id: int):
    d = get_db().get(Discount, discount_id)
    if not d:
        return {}
    return {'value': d.value, 'is_active': bool(d.is_active)}


def _optional_int(data, name):
    return parse_int(data[name], name, minimum=0) if data.get(name) not in (None, '') else None


def _apply_fields(d: Discount, data):
    if 'name' in data:
        if not str(data['name'] or '').strip():
            abort(400, description='name required')
        d.name = data['name'].strip()
    if 'description' in data:
        d.description = data['description']
    if 'discount_type' in data:
        d.discount_type = validate_status(data['discount_type'], Discount.ALL_TYPES, 'discount_type')
    if 'value' in data:
        d.value = parse_int(data['value'], 'value', minimum=1)
    for name in ('max_discount_paise', 'usage_limit'):
        if name in data:
            setattr(d, name, _optional_int(data, name))
    for name in ('min_purchase_paise', 'min_items', 'per_customer_limit'):
        if name in data:
            setattr(d, name, parse_int(data[name], name, minimum=0, default=0))
    if 'applies_to' in data:
        d.applies_to = validate_status(data['applies_to'], Discount.ALL_APPLIES_TO, 'applies_to')
    if 'applies_to_ids' in data:
        ids = data['applies_to_ids'] or []
        if not isinstance(ids, list):
            abort(400, description='applies_to_ids must be a list')
        d.applies_to_ids = [str(i) for i in ids]
    for name in ('start_date', 'end_date'):
        if name in data:
            setattr(d, name, parse_date(data[name], name) if data[name] else None)
    if 'is_active' in data:
        d.is_active = bool(data['is_active'])
    if d.discount_type == Discount.TYPE_PERCENTAGE and d.value > 10_000:
        abort(400, description='percentage value must be <= 10000 basis points')
    if d.start_date and d.end_date and d.end_date < d.start_date:
        abort(400, description='end_date must not be before start_date')


@discounts_bp.get('')
@require_permission('sales', 'read')
def list_discounts():
    session = get_db()
    specs = {
        'is_active': {'coerce': 'bool', 'op': lambda q, v: q.filter(Discount.is_active.is_(v))},
        'discount_type': {'op': lambda q, v: q.filter(Discount.discount_type == v),
                          'validate': lambda v: v in Discount.ALL_TYPES},
        'code': {'op': lambda q, v: q.filter(Discount.code == discounts.normalise_code(v))},
    }
    q = apply_filters(session.query(Discount), specs, request.args)
    allowed = {'created_at': Discount.created_at, 'code': Discount.code, 'used_count': Discount.used_count,
               'end_date': Discount.end_date, 'id': Discount.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Discount.id, default='-created_at')
    return list_response(q, _discount_json)


@discounts_bp.get('/stats')
@require_permission('sales', 'read')
def stats():
    return discounts.discount_stats(get_db())


@discounts_bp.get('/<int:discount_id>')
@require_permission('sales', 'read')
def get_discount(discount_id: int):
    d = _get_discount(get_db(), discount_id)
    return entity_response(d.id, _discount_json(d), d.updated_at)


@discounts_bp.post('')
@require_permission('sales', 'create')
@activity_log('DISCOUNT.CREATE', entity='Discount', entity_id_key='id', meta_keys=['code', 'discount_type', 'value'])
def create_discount():
    session = get_db()
    data = json_body()
    require_fields(data, 'code', 'name', 'value')
    code = discounts.normalise_code(data['code'])
    if discounts.find_by_code(session, code):
        abort(400, description='discount code exists')
    d = Discount(code=code, discount_type=Discount.TYPE_PERCENTAGE, applies_to=Discount.APPLIES_ALL,
                 min_purchase_paise=0, min_items=0, per_customer_limit=0, used_count=0, is_active=True)
    _apply_fields(d, data)
    session.add(d)
    session.commit()
    return _discount_json(d), 201


@discounts_bp.patch('/<int:discount_id>')
@require_permission('sales', 'update')
@activity_log('DISCOUNT.UPDATE', entity='Discount', entity_id_key='id', diff_keys=['value', 'is_active'],
              pre_fetch=lambda a, kw: _prefetch_discount(kw.get('discount_id')))
def update_discount(discount_id: int):
    session = get_db()
    d = _get_discount(session, discount_id)
    check_if_match(d.id, d.updated_at)
    data = json_body()
    if 'code' in data and discounts.normalise_code(data['code']) != d.code:
        abort(400, description='code cannot change; create a new discount')
    _apply_fields(d, data)
    session.commit()
    return _discount_json(d)


@discounts_bp.delete('/<int:discount_id>')
@require_permission('sales', 'delete')
@activity_log('DISCOUNT.DELETE', entity='Discount', entity_id_arg='discount_id', meta_keys=['code'])
def delete_discount(discount_id: int):
    session = get_db()
    d = _get_discount(session, discount_id)
    if d.used_count:
        abort(400, description='discount has been used; deactivate it instead')
    code = d.code
    session.delete(d)
    session.commit()
    return {'status': 'deleted', 'code': code}


def _check_from(session, data):
    require_fields(data, 'code', 'order_value_paise')
    customer_id = parse_int(data['customer_id'], 'customer_id') if data.get('customer_id') not in (None, '') else None
    return discounts.check_discount(
        session, data['code'],
        parse_int(data['order_value_paise'], 'order_value_paise', minimum=0),
        parse_int(data.get('item_count'), 'item_count', minimum=0, default=0),
        customer_id=customer_id, customer_type=data.get('customer_type'),
    ), customer_id


@discounts_bp.post('/validate')
@require_permission('sales', 'read')
def validate_code():
    """Would `code` apply to this basket, and for how much."""
    check, _ = _check_from(get_db(), json_body())
    return check.as_dict()


@discounts_bp.post('/redeem')
@require_permission('sales', 'create')
@activity_log('DISCOUNT.REDEEM', entity='Discount', entity_id_key='discount_id',
              meta_keys=['code', 'discount_paise', 'sale_id'])
def redeem_code():
    session = get_db()
    data = json_body()
    check, customer_id = _check_from(session, data)
    if not check.valid:
        abort(400, description=check.error)
    sale_id = parse_int(data['sale_id'], 'sale_id') if data.get('sale_id') not in (None, '') else None
    invoice_id = parse_int(data['invoice_id'], 'invoice_id') if data.get('invoice_id') not in (None, '') else None
    usage = discounts.redeem(session, check.discount, check.discount_paise,
                             parse_int(data['order_value_paise'], 'order_value_paise', minimum=0),
                             customer_id=customer_id, sale_id=sale_id, invoice_id=invoice_id)
    session.commit()
    return dict(check.as_dict(), usage_id=usage.id, sale_id=sale_id), 201
