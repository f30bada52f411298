"""Coupon checks and redemption.

A code is checked against its window, usage caps, minimum basket and
audience before any amount is worked out; the first failed rule is the
answer. Amounts are integer paise and percentage values are basis points.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import case, func, select

from luminila.models.discount import Discount, DiscountUsage
from luminila.services.atomic import increment_or_conflict
from luminila.services.totals import BP, round_div

logger = logging.getLogger(__name__)


@dataclass
class DiscountCheck:
    valid: bool
    discount_paise: int = 0
    error: Optional[str] = None
    discount: Optional[Discount] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'discount_paise': self.discount_paise,
            'error': self.error,
            'discount_id': self.discount.id if self.discount is not None else None,
            'code': self.discount.code if self.discount is not None else None,
        }


def normalise_code(code: Any) -> str:
    return str(code or '').strip().upper()


def find_by_code(session, code: Any) -> Optional[Discount]:
    return session.execute(select(Discount).where(Discount.code == normalise_code(code))).scalar_one_or_none()


def discount_amount(discount: Discount, order_value_paise: int) -> int:
    if discount.discount_type == Discount.TYPE_PERCENTAGE:
        amount = round_div(order_value_paise * discount.value, BP)
        if discount.max_discount_paise and amount > discount.max_discount_paise:
            amount = discount.max_discount_paise
        return amount
    return min(discount.value, order_value_paise)


def customer_usage_count(session, discount_id: int, customer_id: int) -> int:
    return session.execute(
        select(func.count(DiscountUsage.id))
        .where(DiscountUsage.discount_id == discount_id, DiscountUsage.customer_id == customer_id)
    ).scalar_one()


def check_discount(session, code: Any, order_value_paise: int, item_count: int,
                   customer_id: Optional[int] = None, customer_type: Optional[str] = None,
                   today: Optional[date] = None) -> DiscountCheck:
    discount = find_by_code(session, code)
    if discount is None:
        return DiscountCheck(False, error='Invalid discount code')
    today = today or date.today()

    def refuse(message: str) -> DiscountCheck:
        return DiscountCheck(False, error=message, discount=discount)

    if not discount.is_active:
        return refuse('This discount is no longer active')
    if discount.start_date and discount.start_date > today:
        return refuse('This discount is not yet valid')
    if discount.end_date and discount.end_date < today:
        return refuse('This discount has expired')
    if discount.usage_limit and discount.used_count >= discount.usage_limit:
        return refuse('This discount has reached its usage limit')
    if customer_id and discount.per_customer_limit > 0:
        if customer_usage_count(session, discount.id, customer_id) >= discount.per_customer_limit:
            return refuse('You have already used this discount')
    if order_value_paise < discount.min_purchase_paise:
        return refuse(f'Minimum order of {discount.min_purchase_paise} paise required')
    if item_count < discount.min_items:
        return refuse(f'Minimum {discount.min_items} items required')
    if discount.applies_to == Discount.APPLIES_CUSTOMER_TYPE and customer_type:
        if customer_type not in (discount.applies_to_ids or []):
            return refuse('This discount is not applicable for your account type')
    return DiscountCheck(True, discount_paise=discount_amount(discount, order_value_paise), discount=discount)


def redeem(session, discount: Discount, discount_paise: int, order_value_paise: int,
           customer_id: Optional[int] = None, sale_id: Optional[int] = None,
           invoice_id: Optional[int] = None) -> DiscountUsage:
    """Count one use of `discount`; 409 when its usage limit is already spent."""
    increment_or_conflict(session, Discount, discount.id, 'used_count', 1,
                          message='This discount has reached its usage limit',
                          ceiling=discount.usage_limit or None)
    usage = DiscountUsage(discount_id=discount.id, customer_id=customer_id, sale_id=sale_id,
                          invoice_id=invoice_id, discount_paise=discount_paise,
                          order_value_paise=order_value_paise)
    session.add(usage)
    session.flush()
    logger.info('discount %s redeemed for %s paise', discount.code, discount_paise)
    return usage


def discount_stats(session) -> Dict[str, int]:
    total, active = session.execute(
        select(func.count(Discount.id), func.coalesce(func.sum(case((Discount.is_active.is_(True), 1), else_=0)), 0))
    ).one()
    uses, savings = session.execute(
        select(func.count(DiscountUsage.id), func.coalesce(func.sum(DiscountUsage.discount_paise), 0))
    ).one()
    return {'total_discounts': total, 'active_count': int(active), 'usage_count': uses, 'total_savings_paise': int(savings)}
