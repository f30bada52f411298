"""Till shifts, from the opening float to the counted close.

    expected = opening + cash sales - cash refunds + cash added - cash removed

Sales totals come from the POS sales rung up against the shift, so they are
always recomputed rather than kept as running counters.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Optional

from flask import abort
from sqlalchemy import func, select

from luminila.models.register import DrawerOperation, RegisterShift
from luminila.models.sale import Sale
from luminila.services.atomic import increment

logger = logging.getLogger(__name__)

UPI_METHODS = ('upi', 'phonepe')


@dataclass
class ShiftSummary:
    transactions: int = 0
    cash_sales_paise: int = 0
    card_sales_paise: int = 0
    upi_sales_paise: int = 0
    cash_refunds_paise: int = 0
    net_cash_paise: int = 0
    expected_balance_paise: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def active_shift(session, user_id: int) -> Optional[RegisterShift]:
    """The user's open or suspended shift, if any."""
    return session.execute(
        select(RegisterShift)
        .where(RegisterShift.user_id == user_id,
               RegisterShift.status.in_((RegisterShift.STATUS_OPEN, RegisterShift.STATUS_SUSPENDED)))
        .order_by(RegisterShift.id.desc())
    ).scalars().first()


def open_shift_id(session, user_id: Optional[int]) -> Optional[int]:
    if user_id is None:
        return None
    return session.execute(
        select(RegisterShift.id)
        .where(RegisterShift.user_id == user_id, RegisterShift.status == RegisterShift.STATUS_OPEN)
    ).scalars().first()


def summarise(session, shift: RegisterShift) -> ShiftSummary:
    rows = session.execute(
        select(Sale.payment_method, Sale.status, func.count(Sale.id), func.coalesce(func.sum(Sale.total_paise), 0))
        .where(Sale.register_shift_id == shift.id, Sale.status != Sale.STATUS_CANCELLED)
        .group_by(Sale.payment_method, Sale.status)
    ).all()
    out = ShiftSummary()
    for method, status, count, total in rows:
        out.transactions += count
        if method == 'cash':
            out.cash_sales_paise += total
            if status == Sale.STATUS_REFUNDED:
                out.cash_refunds_paise += total
        elif method == 'card':
            out.card_sales_paise += total
        elif method in UPI_METHODS:
            out.upi_sales_paise += total
    out.net_cash_paise = out.cash_sales_paise - out.cash_refunds_paise
    out.expected_balance_paise = (shift.opening_balance_paise + out.net_cash_paise
                                  + shift.cash_added_paise - shift.cash_removed_paise)
    return out


def open_shift(session, user_id: int, opening_balance_paise: int, terminal_id: Optional[str] = None,
               notes: Optional[str] = None) -> RegisterShift:
    if active_shift(session, user_id) is not None:
        abort(400, description='You already have an open shift; close it before opening a new one')
    shift = RegisterShift(user_id=user_id, terminal_id=terminal_id, status=RegisterShift.STATUS_OPEN,
                          opening_balance_paise=opening_balance_paise, notes=notes)
    session.add(shift)
    session.flush()
    logger.info('register shift %s opened by user %s float=%s', shift.id, user_id, opening_balance_paise)
    return shift


def move_cash(session, shift: RegisterShift, kind: str, amount_paise: int, reason: Optional[str],
              user_id: Optional[int]) -> DrawerOperation:
    """Record a cash drop or payout; payouts cannot take more than the drawer holds."""
    if shift.status != RegisterShift.STATUS_OPEN:
        abort(400, description='shift is not open')
    if kind == DrawerOperation.TYPE_ADD:
        increment(session, RegisterShift, shift.id, 'cash_added_paise', amount_paise)
    else:
        if amount_paise > summarise(session, shift).expected_balance_paise:
            abort(409, description='Not enough cash in drawer')
        increment(session, RegisterShift, shift.id, 'cash_removed_paise', amount_paise)
    op = DrawerOperation(shift_id=shift.id, operation_type=kind, amount_paise=amount_paise, reason=reason,
                         performed_by=user_id)
    session.add(op)
    session.flush()
    return op


def close_shift(session, shift: RegisterShift, closing_balance_paise: int,
                variance_notes: Optional[str] = None) -> RegisterShift:
    if shift.status != RegisterShift.STATUS_OPEN:
        abort(400, description='shift is not open')
    summary = summarise(session, shift)
    shift.cash_sales_paise = summary.cash_sales_paise
    shift.card_sales_paise = summary.card_sales_paise
    shift.upi_sales_paise = summary.upi_sales_paise
    shift.cash_refunds_paise = summary.cash_refunds_paise
    shift.expected_balance_paise = summary.expected_balance_paise
    shift.closing_balance_paise = closing_balance_paise
    shift.variance_paise = closing_balance_paise - summary.expected_balance_paise
    shift.variance_notes = variance_notes
    shift.status = RegisterShift.STATUS_CLOSED
    shift.closed_at = datetime.now(timezone.utc)
    session.flush()
    if shift.variance_paise:
        logger.warning('register shift %s closed with variance %s', shift.id, shift.variance_paise)
    return shift
