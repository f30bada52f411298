from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Date, Text, JSON, func
from typing import List, Optional

from .authz import Base


class Discount(Base):
    """Coupon code; `value` is basis points for percentage codes, paise for fixed ones."""
    __tablename__ = 'discounts'
    TYPE_PERCENTAGE = 'percentage'
    TYPE_FIXED = 'fixed'
    ALL_TYPES = (TYPE_PERCENTAGE, TYPE_FIXED)

    APPLIES_ALL = 'all'
    APPLIES_CATEGORY = 'category'
    APPLIES_PRODUCT = 'product'
    APPLIES_CUSTOMER_TYPE = 'customer_type'
    ALL_APPLIES_TO = (APPLIES_ALL, APPLIES_CATEGORY, APPLIES_PRODUCT, APPLIES_CUSTOMER_TYPE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False, default=TYPE_PERCENTAGE)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    max_discount_paise: Mapped[Optional[int]] = mapped_column(Integer)
    min_purchase_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    applies_to: Mapped[str] = mapped_column(String(16), nullable=False, default=APPLIES_ALL)
    applies_to_ids: Mapped[Optional[List[str]]] = mapped_column(JSON)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer)
    per_customer_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[Optional[str]] = mapped_column(Date)
    end_date: Mapped[Optional[str]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DiscountUsage(Base):
    __tablename__ = 'discount_usage'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    discount_id: Mapped[int] = mapped_column(ForeignKey('discounts.id', ondelete='CASCADE'), nullable=False, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='SET NULL'), index=True)
    sale_id: Mapped[Optional[int]] = mapped_column(ForeignKey('sales.id', ondelete='SET NULL'))
    invoice_id: Mapped[Optional[int]] = mapped_column(ForeignKey('invoices.id', ondelete='SET NULL'))
    discount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    order_value_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


__all__ = ['Discount', 'DiscountUsage']
