from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, ForeignKey, DateTime, Text, func
from typing import Optional

from .authz import Base


class RegisterShift(Base):
    """One cashier's session at a till, from opening float to counted close."""
    __tablename__ = 'register_shifts'
    STATUS_OPEN = 'open'
    STATUS_SUSPENDED = 'suspended'
    STATUS_CLOSED = 'closed'
    ALL_STATUSES = (STATUS_OPEN, STATUS_SUSPENDED, STATUS_CLOSED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    terminal_id: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN, index=True)
    opening_balance_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cash_added_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cash_removed_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Filled from the shift's sales when it closes.
    cash_sales_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    card_sales_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    upi_sales_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cash_refunds_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expected_balance_paise: Mapped[Optional[int]] = mapped_column(Integer)
    closing_balance_paise: Mapped[Optional[int]] = mapped_column(Integer)
    variance_paise: Mapped[Optional[int]] = mapped_column(Integer)
    variance_notes: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    opened_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    closed_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DrawerOperation(Base):
    __tablename__ = 'drawer_operations'
    TYPE_ADD = 'add'
    TYPE_REMOVE = 'remove'
    ALL_TYPES = (TYPE_ADD, TYPE_REMOVE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shift_id: Mapped[int] = mapped_column(ForeignKey('register_shifts.id', ondelete='CASCADE'), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(8), nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    performed_by: Mapped[Optional[int]] = mapped_column(Integer)
    performed_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = ['RegisterShift', 'DrawerOperation']
