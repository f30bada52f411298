from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from flask import abort
from sqlalchemy import select

from luminila.models.customer import Customer
from luminila.models.loyalty import LoyaltyAccount, LoyaltyTransaction
from luminila.services.atomic import increment, increment_or_conflict
from luminila.services.settings_store import get_setting

logger = logging.getLogger(__name__)


def loyalty_settings(session) -> Dict[str, Any]:
    return get_setting(session, 'loyalty')


def get_account(session, customer_id: int, create: bool = True) -> Optional[LoyaltyAccount]:
    acct = session.execute(
        select(LoyaltyAccount).where(LoyaltyAccount.customer_id == customer_id)
    ).scalar_one_or_none()
    if acct is None and create:
        if session.get(Customer, customer_id) is None:
            abort(404, description='Customer not found')
        acct = LoyaltyAccount(customer_id=customer_id, current_balance=0, total_points_earned=0,
                              total_points_redeemed=0, lifetime_value_paise=0, is_active=True)
        session.add(acct)
        session.flush()
    return acct


def points_for_amount(amount_paise: int, cfg: Dict[str, Any]) -> int:
    """Whole points for a purchase: points_per_100 for every full 100 rupees."""
    if amount_paise <= 0:
        return 0
    return (int(amount_paise) * int(cfg.get('points_per_100') or 0)) // 10_000


def redemption_value_paise(points: int, cfg: Dict[str, Any]) -> int:
    return int(points) * int(cfg.get('redemption_value_paise') or 0)


def max_redeemable_points(balance: int, order_total_paise: int, cfg: Dict[str, Any]) -> int:
    value = int(cfg.get('redemption_value_paise') or 0)
    if value <= 0:
        return 0
    cap_paise = (int(order_total_paise) * int(cfg.get('max_redemption_percent') or 0)) // 100
    return max(0, min(int(balance), cap_paise // value))


def _record(session, acct: LoyaltyAccount, kind: str, points: int, reference_type=None,
            reference_id=None, description=None, user_id=None) -> LoyaltyTransaction:
    tx = LoyaltyTransaction(
        account_id=acct.id, type=kind, points=points, balance_after=acct.current_balance,
        reference_type=reference_type, reference_id=str(reference_id) if reference_id is not None else None,
        description=description, created_by=user_id,
    )
    session.add(tx)
    session.flush()
    return tx


def earn(session, customer_id: int, amount_paise: int, reference_type: str = 'sale',
         reference_id=None, user_id: Optional[int] = None) -> Optional[LoyaltyTransaction]:
    cfg = loyalty_settings(session)
    if not cfg.get('is_active'):
        return None
    acct = get_account(session, customer_id)
    if not acct.is_active:
        return None
    points = points_for_amount(amount_paise, cfg)
    increment(session, LoyaltyAccount, acct.id, 'lifetime_value_paise', int(amount_paise))
    if points <= 0:
        return None
    increment(session, LoyaltyAccount, acct.id, 'total_points_earned', points)
    acct = increment_or_conflict(session, LoyaltyAccount, acct.id, 'current_balance', points, floor=None)
    return _record(session, acct, LoyaltyTransaction.TYPE_EARN, points, reference_type, reference_id,
                   f'Earned on purchase of {amount_paise / 100:.2f}', user_id)


def redeem(session, customer_id: int, points: int, order_total_paise: int, reference_type: str = 'sale',
           reference_id=None, user_id: Optional[int] = None) -> int:
    """Deduct points against an order; returns the discount in paise."""
    cfg = loyalty_settings(session)
    if not cfg.get('is_active'):
        abort(400, description='Loyalty program is not active')
    if points <= 0:
        abort(400, description='points must be > 0')
    min_points = int(cfg.get('min_redemption_points') or 0)
    if points < min_points:
        abort(400, description=f'Minimum {min_points} points required to redeem')
    acct = get_account(session, customer_id, create=False)
    if acct is None or not acct.is_active:
        abort(400, description='Customer has no active loyalty account')
    cap = max_redeemable_points(acct.current_balance, order_total_paise, cfg)
    if points > cap:
        abort(400, description=f'At most {cap} points can be redeemed on this order')
    acct = increment_or_conflict(session, LoyaltyAccount, acct.id, 'current_balance', -points,
                                 floor=0, message='Insufficient loyalty points')
    increment(session, LoyaltyAccount, acct.id, 'total_points_redeemed', points)
    _record(session, acct, LoyaltyTransaction.TYPE_REDEEM, -points, reference_type, reference_id,
            'Redeemed on purchase', user_id)
    return redemption_value_paise(points, cfg)


def adjust(session, customer_id: int, points: int, description: Optional[str] = None,
           user_id: Optional[int] = None, kind: str = LoyaltyTransaction.TYPE_ADJUST) -> LoyaltyTransaction:
    if points == 0:
        abort(400, description='points must be non-zero')
    if kind not in (LoyaltyTransaction.TYPE_ADJUST, LoyaltyTransaction.TYPE_BONUS):
        abort(400, description='type invalid')
    acct = get_account(session, customer_id)
    acct = increment_or_conflict(session, LoyaltyAccount, acct.id, 'current_balance', points,
                                 floor=0, message='Adjustment would make balance negative')
    if points > 0:
        increment(session, LoyaltyAccount, acct.id, 'total_points_earned', points)
    logger.info('loyalty %s of %s points for customer %s', kind, points, customer_id)
    return _record(session, acct, kind, points, 'manual', None, description, user_id)
