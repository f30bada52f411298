from __future__ import annotations
from flask import Blueprint, request, abort

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.loyalty import LoyaltyAccount, LoyaltyTransaction
from luminila.services import loyalty
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response
from luminila.utils.validation import json_body, require_fields, parse_int

loyalty_bp = Blueprint('loyalty', __name__)


def _account_json(a: LoyaltyAccount):
    return {
        'id': a.id,
        'customer_id': a.customer_id,
        'current_balance': a.current_balance,
        'total_points_earned': a.total_points_earned,
        'total_points_redeemed': a.total_points_redeemed,
        'lifetime_value_paise': a.lifetime_value_paise,
        'is_active': bool(a.is_active),
    }


def _tx_json(t: LoyaltyTransaction):
    return {
        'id': t.id,
        'type': t.type,
        'points': t.points,
        'balance_after': t.balance_after,
        'reference_type': t.reference_type,
        'reference_id': t.reference_id,
        'description': t.description,
        'created_at': t.created_at.isoformat() if t.created_at else None,
    }


@loyalty_bp.get('/settings')
@require_permission('customers', 'read')
def program_settings():
    return loyalty.loyalty_settings(get_db())


@loyalty_bp.get('/customers/<int:customer_id>')
@require_permission('customers', 'read')
def get_customer_account(customer_id: int):
    """Account summary; an account is opened on first access."""
    session = get_db()
    acct = loyalty.get_account(session, customer_id)
    session.commit()
    cfg = loyalty.loyalty_settings(session)
    body = _account_json(acct)
    body['redemption_value_paise'] = loyalty.redemption_value_paise(acct.current_balance, cfg)
    return body


@loyalty_bp.get('/customers/<int:customer_id>/history')
@require_permission('customers', 'read')
def customer_history(customer_id: int):
    session = get_db()
    acct = loyalty.get_account(session, customer_id, create=False)
    if acct is None:
        abort(404, description='Loyalty account not found')
    q = session.query(LoyaltyTransaction).filter(LoyaltyTransaction.account_id == acct.id)
    specs = {'type': {'op': lambda qu, v: qu.filter(LoyaltyTransaction.type == v),
                      'validate': lambda v: v in LoyaltyTransaction.ALL_TYPES}}
    q = apply_filters(q, specs, request.args).order_by(LoyaltyTransaction.id.desc())
    return list_response(q, _tx_json, ts_attr='created_at')


@loyalty_bp.post('/customers/<int:customer_id>/earn')
@require_permission('customers', 'update')
@activity_log('LOYALTY.EARN', entity='Customer', entity_id_arg='customer_id', entity_id_key=None,
              meta_keys=['points', 'balance_after'])
def earn_points(customer_id: int):
    session = get_db()
    data = json_body()
    require_fields(data, 'amount_paise')
    tx = loyalty.earn(session, customer_id, parse_int(data['amount_paise'], 'amount_paise', minimum=1),
                      reference_type=data.get('reference_type') or 'manual',
                      reference_id=data.get('reference_id'), user_id=current_user_id())
    session.commit()
    if tx is None:
        return {'points': 0, 'balance_after': loyalty.get_account(session, customer_id).current_balance}
    return _tx_json(tx), 201


@loyalty_bp.post('/customers/<int:customer_id>/redeem')
@require_permission('customers', 'update')
@activity_log('LOYALTY.REDEEM', entity='Customer', entity_id_arg='customer_id', entity_id_key=None,
              meta_keys=['points', 'discount_paise'])
def redeem_points(customer_id: int):
    """Redeem against an order total; answers the discount the points are worth."""
    session = get_db()
    data = json_body()
    require_fields(data, 'points', 'order_total_paise')
    points = parse_int(data['points'], 'points', minimum=1)
    discount = loyalty.redeem(session, customer_id, points,
                              parse_int(data['order_total_paise'], 'order_total_paise', minimum=0),
                              reference_type=data.get('reference_type') or 'manual',
                              reference_id=data.get('reference_id'), user_id=current_user_id())
    session.commit()
    acct = loyalty.get_account(session, customer_id, create=False)
    return {'points': points, 'discount_paise': discount, 'balance_after': acct.current_balance}


@loyalty_bp.post('/customers/<int:customer_id>/adjust')
@require_permission('customers', 'update')
@activity_log('LOYALTY.ADJUST', entity='Customer', entity_id_arg='customer_id', entity_id_key=None,
              meta_keys=['type', 'points', 'balance_after'])
def adjust_points(customer_id: int):
    session = get_db()
    data = json_body()
    require_fields(data, 'points')
    tx = loyalty.adjust(session, customer_id, parse_int(data['points'], 'points'),
                        description=data.get('description'), user_id=current_user_id(),
                        kind=data.get('type') or LoyaltyTransaction.TYPE_ADJUST)
    session.commit()
    return _tx_json(tx), 201
