from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Date, Text, func
from typing import Optional

from .authz import Base


class Invoice(Base):
    __tablename__ = 'invoices'
    STATUS_DRAFT = 'DRAFT'
    STATUS_ISSUED = 'ISSUED'
    STATUS_PARTIALLY_PAID = 'PARTIALLY_PAID'
    STATUS_PAID = 'PAID'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_ISSUED, STATUS_PARTIALLY_PAID, STATUS_PAID, STATUS_CANCELLED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    invoice_date: Mapped[str] = mapped_column(Date, nullable=False)
    sale_id: Mapped[Optional[int]] = mapped_column(ForeignKey('sales.id', ondelete='SET NULL'), index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='SET NULL'), index=True)
    buyer_name: Mapped[str] = mapped_column(String(150), nullable=False)
    buyer_address: Mapped[Optional[str]] = mapped_column(Text)
    buyer_gstin: Mapped[Optional[str]] = mapped_column(String(15))
    buyer_state_code: Mapped[Optional[str]] = mapped_column(String(2))
    seller_state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    is_inter_state: Mapped[bool] = mapped_column(Boolean, default=False)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    igst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    grand_total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_in_words: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ISSUED, index=True)
    print_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    items = relationship('InvoiceItem', back_populates='invoice', cascade='all, delete-orphan', order_by='InvoiceItem.sr_no')
    payments = relationship('InvoicePayment', back_populates='invoice', cascade='all, delete-orphan', order_by='InvoicePayment.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def balance_due_paise(self) -> int:
        return int(self.grand_total_paise) - int(self.paid_paise)


class InvoiceItem(Base):
    __tablename__ = 'invoice_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    sr_no: Mapped[int] = mapped_column(Integer, nullable=False)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variants.id', ondelete='SET NULL'))
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(16))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    igst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice = relationship('Invoice', back_populates='items')


class InvoicePayment(Base):
    __tablename__ = 'invoice_payments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False, index=True)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False, default='cash')
    reference: Mapped[Optional[str]] = mapped_column(String(64))
    bank_account_id: Mapped[Optional[int]] = mapped_column(ForeignKey('bank_accounts.id', ondelete='SET NULL'))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    invoice = relationship('Invoice', back_populates='payments')
