from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Text, func
from typing import Optional

from .authz import Base


class Customer(Base):
    __tablename__ = 'customers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(150), index=True)
    address: Mapped[Optional[str]] = mapped_column(Text)
    state_code: Mapped[Optional[str]] = mapped_column(String(2))
    gstin: Mapped[Optional[str]] = mapped_column(String(15))
    total_spent_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CustomerInteraction(Base):
    __tablename__ = 'customer_interactions'
    KIND_NOTE = 'note'
    KIND_CALL = 'call'
    KIND_MESSAGE = 'message'
    KIND_VISIT = 'visit'
    ALL_KINDS = (KIND_NOTE, KIND_CALL, KIND_MESSAGE, KIND_VISIT)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='CASCADE'), index=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=KIND_NOTE)
    channel: Mapped[Optional[str]] = mapped_column(String(32))
    # Sender address for inbound messages that do not match a known customer.
    contact: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = ['Customer', 'CustomerInteraction']
