from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Text, UniqueConstraint, func
from typing import Optional

from .authz import Base


class Vendor(Base):
    __tablename__ = 'vendors'
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_INACTIVE = 'INACTIVE'
    ALL_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True, unique=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(150))
    email: Mapped[Optional[str]] = mapped_column(String(150), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    gstin: Mapped[Optional[str]] = mapped_column(String(15))
    address: Mapped[Optional[str]] = mapped_column(Text)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_ACTIVE, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class VendorProduct(Base):
    """Which vendor supplies which variant, at what cost."""
    __tablename__ = 'vendor_products'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id: Mapped[int] = mapped_column(ForeignKey('product_variants.id', ondelete='CASCADE'), nullable=False, index=True)
    vendor_sku: Mapped[Optional[str]] = mapped_column(String(64))
    cost_price_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lead_time_days: Mapped[Optional[int]] = mapped_column(Integer)
    is_preferred: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (UniqueConstraint('vendor_id', 'variant_id', name='uq_vendor_variant'),)


__all__ = ['Vendor', 'VendorProduct']
