from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, ForeignKey, DateTime, Text, UniqueConstraint, func
from typing import Optional

from .authz import Base


class Sale(Base):
    __tablename__ = 'sales'
    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_SHIPPED = 'shipped'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_REFUNDED = 'refunded'
    ALL_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_SHIPPED, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_REFUNDED)

    CHANNEL_POS = 'pos'
    CHANNEL_SHOPIFY = 'shopify'
    CHANNEL_WHATSAPP = 'whatsapp'
    ALL_CHANNELS = (CHANNEL_POS, CHANNEL_SHOPIFY, CHANNEL_WHATSAPP)

    PAYMENT_METHODS = ('cash', 'card', 'upi', 'phonepe', 'bank_transfer', 'online')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    channel: Mapped[str] = mapped_column(String(16), nullable=False, default=CHANNEL_POS, index=True)
    channel_order_id: Mapped[Optional[str]] = mapped_column(String(64))
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='SET NULL'), index=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(150))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20))
    shipping_address: Mapped[Optional[str]] = mapped_column(Text)
    subtotal_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loyalty_points_redeemed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loyalty_discount_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default='cash')
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_COMPLETED, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    # POS sales ring up against the cashier's open register shift.
    register_shift_id: Mapped[Optional[int]] = mapped_column(ForeignKey('register_shifts.id', ondelete='SET NULL'), index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan', order_by='SaleItem.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (UniqueConstraint('channel', 'channel_order_id', name='uq_sale_channel_order'),)


class SaleItem(Base):
    __tablename__ = 'sale_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variants.id', ondelete='SET NULL'))
    description: Mapped[Optional[str]] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    line_total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sale = relationship('Sale', back_populates='items')
