from __future__ import annotations
import re

from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.customer import Customer, CustomerInteraction
from luminila.models.loyalty import LoyaltyAccount
from luminila.models.sale import Sale
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, require_fields

cust_bp = Blueprint('customers', __name__)


def normalize_customer_phone(raw):
    """Last ten digits of an Indian mobile number; None when there is no number."""
    digits = re.sub(r'\D', '', raw or '')
    if not digits:
        return None
    return digits[-10:]


def _customer_json(c: Customer):
    return {
        'id': c.id,
        'name': c.name,
        'phone': c.phone,
        'email': c.email,
        'address': c.address,
        'state_code': c.state_code,
        'gstin': c.gstin,
        'total_spent_paise': c.total_spent_paise,
        'total_orders': c.total_orders,
        'notes': c.notes,
        'is_active': bool(c.is_active),
        'updated_at': c.updated_at.isoformat() if c.updated_at else None,
    }


def _interaction_json(i: CustomerInteraction):
    return {
        'id': i.id,
        'customer_id': i.customer_id,
        'kind': i.kind,
        'channel': i.channel,
        'contact': i.contact,
        'summary': i.summary,
        'created_by': i.created_by,
        'created_at': i.created_at.isoformat() if i.created_at else None,
    }


def _get_customer(session, customer_id: int) -> Customer:
    c = session.get(Customer, customer_id)
    if not c:
        abort(404, description='Customer not found')
    return c


def find_by_phone(session, phone):
    normalized = normalize_customer_phone(phone)
    if not normalized:
        return None
    return session.execute(select(Customer).where(Customer.phone == normalized)).scalar_one_or_none()


CUSTOMER_FILTERS = {
    'q': {'op': lambda q, v: q.filter((Customer.name.ilike(f'%{v}%')) | (Customer.phone.ilike(f'%{v}%')))},
    'email': {'op': lambda q, v: q.filter(Customer.email == v)},
    'is_active': {'coerce': 'bool', 'op': lambda q, v: q.filter(Customer.is_active.is_(v))},
    'min_spent_paise': {'coerce': int, 'op': lambda q, v: q.filter(Customer.total_spent_paise >= v)},
}

CUSTOMER_SORTS = {
    'name': Customer.name,
    'total_spent_paise': Customer.total_spent_paise,
    'total_orders': Customer.total_orders,
    'updated_at': Customer.updated_at,
    'id': Customer.id,
}


@cust_bp.get('')
@require_permission('customers', 'read')
def list_customers():
    session = get_db()
    q = session.query(Customer)
    if 'is_active' not in request.args:
        q = q.filter(Customer.is_active.is_(True))
    q = apply_filters(q, CUSTOMER_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), CUSTOMER_SORTS, Customer.id)
    return list_response(q, _customer_json)


@cust_bp.get('/lookup')
@require_permission('customers', 'read')
def lookup_customer():
    c = find_by_phone(get_db(), request.args.get('phone'))
    if not c:
        abort(404, description='Customer not found')
    return _customer_json(c)


@cust_bp.get('/<int:customer_id>')
@require_permission('customers', 'read')
def get_customer(customer_id: int):
    session = get_db()
    c = _get_customer(session, customer_id)
    body = _customer_json(c)
    acct = session.execute(select(LoyaltyAccount).where(LoyaltyAccount.customer_id == c.id)).scalar_one_or_none()
    body['loyalty_points'] = acct.current_balance if acct else 0
    return entity_response(c.id, body, c.updated_at)


@cust_bp.post('')
@require_permission('customers', 'create')
@activity_log('CUSTOMER.CREATE', entity='Customer', entity_id_key='id', meta_keys=['name', 'phone'])
def create_customer():
    data = json_body()
    require_fields(data, 'name')
    session = get_db()
    phone = normalize_customer_phone(data.get('phone'))
    if data.get('phone') and (phone is None or len(phone) != 10):
        abort(400, description='phone must have 10 digits')
    if phone and find_by_phone(session, phone):
        abort(400, description='phone in use')
    c = Customer(
        name=data['name'],
        phone=phone,
        email=data.get('email'),
        address=data.get('address'),
        state_code=data.get('state_code'),
        gstin=data.get('gstin'),
        notes=data.get('notes'),
        total_spent_paise=0,
        total_orders=0,
        is_active=True,
    )
    session.add(c)
    session.commit()
    return _customer_json(c), 201


@cust_bp.patch('/<int:customer_id>')
@require_permission('customers', 'update')
@activity_log('CUSTOMER.UPDATE', entity='Customer', entity_id_key='id')
def update_customer(customer_id: int):
    session = get_db()
    c = _get_customer(session, customer_id)
    check_if_match(c.id, c.updated_at)
    data = json_body()
    if 'phone' in data:
        phone = normalize_customer_phone(data['phone'])
        if phone:
            other = find_by_phone(session, phone)
            if other and other.id != c.id:
                abort(400, description='phone in use')
        c.phone = phone
    for key in ('name', 'email', 'address', 'state_code', 'gstin', 'notes', 'is_active'):
        if key in data:
            setattr(c, key, data[key])
    if not c.name:
        abort(400, description='name cannot be empty')
    session.commit()
    return _customer_json(c)


@cust_bp.delete('/<int:customer_id>')
@require_permission('customers', 'delete')
@activity_log('CUSTOMER.DEACTIVATE', entity='Customer', entity_id_key='id')
def delete_customer(customer_id: int):
    session = get_db()
    c = _get_customer(session, customer_id)
    c.is_active = False
    session.commit()
    return {'id': c.id, 'is_active': False}


@cust_bp.get('/<int:customer_id>/sales')
@require_permission('sales', 'read')
def customer_sales(customer_id: int):
    session = get_db()
    _get_customer(session, customer_id)
    q = session.query(Sale).filter(Sale.customer_id == customer_id).order_by(Sale.created_at.desc(), Sale.id.desc())
    return list_response(q, lambda s: {
        'id': s.id,
        'sale_number': s.sale_number,
        'channel': s.channel,
        'status': s.status,
        'total_paise': s.total_paise,
        'created_at': s.created_at.isoformat() if s.created_at else None,
    })


@cust_bp.get('/<int:customer_id>/interactions')
@require_permission('customers', 'read')
def list_interactions(customer_id: int):
    session = get_db()
    _get_customer(session, customer_id)
    q = session.query(CustomerInteraction).filter(CustomerInteraction.customer_id == customer_id) \
        .order_by(CustomerInteraction.id.desc())
    return list_response(q, _interaction_json, ts_attr='created_at')


@cust_bp.post('/<int:customer_id>/interactions')
@require_permission('customers', 'update')
@activity_log('CUSTOMER.INTERACTION.CREATE', entity='Customer', entity_id_key='customer_id', meta_keys=['kind'])
def add_interaction(customer_id: int):
    session = get_db()
    _get_customer(session, customer_id)
    data = json_body()
    require_fields(data, 'summary')
    kind = data.get('kind') or CustomerInteraction.KIND_NOTE
    if kind not in CustomerInteraction.ALL_KINDS:
        abort(400, description='kind invalid')
    i = CustomerInteraction(
        customer_id=customer_id,
        kind=kind,
        channel=data.get('channel'),
        summary=data['summary'],
        created_by=current_user_id(),
    )
    session.add(i)
    session.commit()
    return _interaction_json(i), 201
