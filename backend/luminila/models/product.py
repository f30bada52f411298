from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Text, JSON, UniqueConstraint, func
from typing import List, Optional

from .authz import Base


class Category(Base):
    __tablename__ = 'categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey('categories.id', ondelete='SET NULL'), index=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Product(Base):
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey('categories.id', ondelete='SET NULL'), index=True)
    base_price_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_price_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # GST rate in basis points (300 = 3%)
    gst_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(16))
    barcode: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan', order_by='ProductVariant.id')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProductVariant(Base):
    __tablename__ = 'product_variants'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_name: Mapped[str] = mapped_column(String(120), nullable=False)
    sku_suffix: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    price_adjustment_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    size: Mapped[Optional[str]] = mapped_column(String(32))
    color: Mapped[Optional[str]] = mapped_column(String(32))
    material: Mapped[Optional[str]] = mapped_column(String(64))
    shopify_inventory_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    product = relationship('Product', back_populates='variants')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (UniqueConstraint('product_id', 'variant_name', name='uq_variant_name'),)

    @property
    def unit_price_paise(self) -> int:
        return int(self.product.base_price_paise) + int(self.price_adjustment_paise or 0)


class ProductAttribute(Base):
    """A store-defined custom product field (metal purity, stone, occasion...)."""
    __tablename__ = 'product_attributes'
    TYPES = ('text', 'select', 'number', 'boolean', 'date')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    attribute_type: Mapped[str] = mapped_column(String(16), nullable=False, default='text')
    # choices for select attributes
    options: Mapped[Optional[List[str]]] = mapped_column(JSON)
    default_value: Mapped[Optional[str]] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_filterable: Mapped[bool] = mapped_column(Boolean, default=False)
    is_visible_on_product: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProductAttributeValue(Base):
    __tablename__ = 'product_attribute_values'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    attribute_id: Mapped[int] = mapped_column(ForeignKey('product_attributes.id', ondelete='CASCADE'), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    __table_args__ = (UniqueConstraint('product_id', 'attribute_id', name='uq_product_attribute'),)


__all__ = ['Category', 'Product', 'ProductVariant', 'ProductAttribute', 'ProductAttributeValue']
