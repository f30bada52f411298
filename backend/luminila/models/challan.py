from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, ForeignKey, DateTime, Date, Text, func
from typing import Optional

from .authz import Base


class DeliveryChallan(Base):
    """Goods sent out without a sale: job work, approval, exhibition, transfers."""
    __tablename__ = 'delivery_challans'
    TYPE_JOB_WORK = 'job_work'
    TYPE_STOCK_TRANSFER = 'stock_transfer'
    TYPE_SALE_RETURN = 'sale_return'
    TYPE_EXHIBITION = 'exhibition'
    TYPE_APPROVAL = 'approval'
    TYPE_OTHER = 'other'
    ALL_TYPES = (TYPE_JOB_WORK, TYPE_STOCK_TRANSFER, TYPE_SALE_RETURN, TYPE_EXHIBITION, TYPE_APPROVAL, TYPE_OTHER)

    STATUS_DRAFT = 'draft'
    STATUS_ISSUED = 'issued'
    STATUS_IN_TRANSIT = 'in_transit'
    STATUS_DELIVERED = 'delivered'
    STATUS_RETURNED = 'returned'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (STATUS_DRAFT, STATUS_ISSUED, STATUS_IN_TRANSIT, STATUS_DELIVERED, STATUS_RETURNED, STATUS_CANCELLED)

    TRANSPORT_MODES = ('road', 'rail', 'air', 'ship', 'hand')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    challan_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    challan_date: Mapped[str] = mapped_column(Date, nullable=False)
    challan_type: Mapped[str] = mapped_column(String(24), nullable=False, default=TYPE_OTHER, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_DRAFT, index=True)
    consignor_name: Mapped[str] = mapped_column(String(150), nullable=False)
    consignor_gstin: Mapped[Optional[str]] = mapped_column(String(15))
    consignor_address: Mapped[Optional[str]] = mapped_column(Text)
    consignor_state_code: Mapped[Optional[str]] = mapped_column(String(2))
    consignee_id: Mapped[Optional[int]] = mapped_column(ForeignKey('customers.id', ondelete='SET NULL'), index=True)
    consignee_name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    consignee_gstin: Mapped[Optional[str]] = mapped_column(String(15))
    consignee_address: Mapped[Optional[str]] = mapped_column(Text)
    consignee_state_code: Mapped[Optional[str]] = mapped_column(String(2))
    sale_id: Mapped[Optional[int]] = mapped_column(ForeignKey('sales.id', ondelete='SET NULL'), index=True)
    invoice_id: Mapped[Optional[int]] = mapped_column(ForeignKey('invoices.id', ondelete='SET NULL'))
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(20))
    transporter_name: Mapped[Optional[str]] = mapped_column(String(150))
    driver_name: Mapped[Optional[str]] = mapped_column(String(100))
    driver_phone: Mapped[Optional[str]] = mapped_column(String(20))
    transport_mode: Mapped[str] = mapped_column(String(8), nullable=False, default='road')
    eway_bill_number: Mapped[Optional[str]] = mapped_column(String(20))
    eway_bill_date: Mapped[Optional[str]] = mapped_column(Date)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sgst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    igst_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text)
    expected_delivery_date: Mapped[Optional[str]] = mapped_column(Date)
    delivered_at: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    items = relationship('DeliveryChallanItem', back_populates='challan', cascade='all, delete-orphan',
                         order_by='DeliveryChallanItem.sr_no')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DeliveryChallanItem(Base):
    __tablename__ = 'delivery_challan_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    challan_id: Mapped[int] = mapped_column(ForeignKey('delivery_challans.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id: Mapped[Optional[int]] = mapped_column(ForeignKey('product_variants.id', ondelete='SET NULL'))
    sr_no: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    hsn_code: Mapped[str] = mapped_column(String(16), nullable=False, default='7113')
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit: Mapped[str] = mapped_column(String(8), nullable=False, default='PCS')
    unit_price_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    taxable_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    line_total_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remarks: Mapped[Optional[str]] = mapped_column(String(255))
    challan = relationship('DeliveryChallan', back_populates='items')


__all__ = ['DeliveryChallan', 'DeliveryChallanItem']
