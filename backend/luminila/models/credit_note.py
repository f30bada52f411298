from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Text, func
from typing import Optional

from .authz import Base


class CreditNote(Base):
    """A customer return against an issued invoice."""
    __tablename__ = 'credit_notes'
    STATUS_PENDING = 'PENDING'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REFUNDED = 'REFUNDED'
    STATUS_REJECTED = 'REJECTED'
    ALL_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REFUNDED, STATUS_REJECTED)

    REFUND_METHODS = ('cash', 'bank_transfer', 'store_credit', 'original_method')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    credit_note_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey('invoices.id'), nullable=False, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='SET NULL'), index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    refund_method: Mapped[Optional[str]] = mapped_column(String(16))
    restock: Mapped[bool] = mapped_column(Boolean, default=True)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    items = relationship('CreditNoteItem', back_populates='credit_note', cascade='all, delete-orphan', order_by='CreditNoteItem.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CreditNoteItem(Base):
    __tablename__ = 'credit_note_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    credit_note_id: Mapped[int] = mapped_column(ForeignKey('credit_notes.id', ondelete='CASCADE'), nullable=False, index=True)
    invoice_item_id: Mapped[int] = mapped_column(ForeignKey('invoice_items.id'), nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variants.id', ondelete='SET NULL'))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    credit_note = relationship('CreditNote', back_populates='items')
