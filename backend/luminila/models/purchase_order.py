from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, ForeignKey, DateTime, Date, Text, func
from typing import Optional

from .authz import Base


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'
    # Status constants
    STATUS_DRAFT = 'DRAFT'
    STATUS_ORDERED = 'ORDERED'
    STATUS_RECEIVED = 'RECEIVED'
    STATUS_CLOSED = 'CLOSED'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_ORDERED, STATUS_RECEIVED, STATUS_CLOSED, STATUS_CANCELLED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    po_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey('vendors.id'), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_DRAFT, index=True)
    expected_date: Mapped[Optional[str]] = mapped_column(Date)
    subtotal_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    items = relationship('PurchaseOrderItem', back_populates='purchase_order', cascade='all, delete-orphan', order_by='PurchaseOrderItem.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PurchaseOrderItem(Base):
    __tablename__ = 'purchase_order_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey('product_variants.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    received_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_cost_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    line_total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_order = relationship('PurchaseOrder', back_populates='items')
