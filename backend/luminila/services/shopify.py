"""Shopify webhook processing: signature check, order upsert, inventory sync."""
from __future__ import annotations
import base64
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select

from luminila.models.product import Product, ProductVariant
from luminila.models.sale import Sale, SaleItem
from luminila.services.atomic import clamp_stock_decrement
from luminila.services.numbering import next_number
from luminila.services.totals import to_paise

logger = logging.getLogger(__name__)

TOPIC_ORDER_CREATE = 'orders/create'
TOPIC_ORDER_UPDATED = 'orders/updated'
TOPIC_INVENTORY_UPDATE = 'inventory_levels/update'

_STATUS_MAP = {
    'fulfilled': Sale.STATUS_SHIPPED,
    'partial': Sale.STATUS_CONFIRMED,
}


def compute_signature(secret: str, raw_body: bytes) -> str:
    digest = hmac.new(secret.encode('utf-8'), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_signature(secret: Optional[str], raw_body: bytes, header_value: Optional[str]) -> bool:
    if not secret or not header_value:
        return False
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(expected.encode('ascii'), header_value.strip().encode('ascii', 'ignore'))


def map_status(fulfillment_status: Optional[str]) -> str:
    return _STATUS_MAP.get(fulfillment_status or '', Sale.STATUS_PENDING)


def _find_variant(session, sku: Optional[str]) -> Optional[ProductVariant]:
    if not sku:
        return None
    variant = session.execute(
        select(ProductVariant).where(ProductVariant.sku_suffix == sku).limit(1)
    ).scalar_one_or_none()
    if variant is not None:
        return variant
    return session.execute(
        select(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(Product.sku == sku, ProductVariant.is_active.is_(True))
        .order_by(ProductVariant.id.asc())
        .limit(1)
    ).scalar_one_or_none()


def _address(order: Dict[str, Any]) -> Optional[str]:
    addr = order.get('shipping_address') or None
    if not addr:
        return None
    parts = [addr.get(k) for k in ('address1', 'city', 'zip', 'country')]
    return ', '.join(p for p in parts if p) or None


def _customer_name(order: Dict[str, Any]) -> Optional[str]:
    cust = order.get('customer') or {}
    name = ' '.join(p for p in (cust.get('first_name'), cust.get('last_name')) if p)
    return name or order.get('email')


def upsert_order(session, order: Dict[str, Any]) -> Sale:
    """Create or update the sale for a Shopify order. New orders decrement stock."""
    order_id = str(order.get('id') or '')
    if not order_id:
        raise ValueError('order id missing')
    total_paise = to_paise(order.get('total_price') or 0)
    status = map_status(order.get('fulfillment_status'))
    sale = session.execute(
        select(Sale).where(Sale.channel == Sale.CHANNEL_SHOPIFY, Sale.channel_order_id == order_id)
    ).scalar_one_or_none()
    if sale is not None:
        sale.status = status
        sale.total_paise = total_paise
        sale.customer_name = _customer_name(order) or sale.customer_name
        sale.customer_phone = order.get('phone') or sale.customer_phone
        sale.shipping_address = _address(order) or sale.shipping_address
        session.flush()
        logger.info('shopify order %s updated (status=%s)', order_id, status)
        return sale

    sale = Sale(
        sale_number=next_number(session, 'sale'),
        channel=Sale.CHANNEL_SHOPIFY,
        channel_order_id=order_id,
        customer_name=_customer_name(order),
        customer_phone=order.get('phone'),
        shipping_address=_address(order),
        payment_method='online',
        status=status,
        total_paise=total_paise,
        discount_paise=to_paise(order.get('total_discounts') or 0),
        tax_paise=to_paise(order.get('total_tax') or 0),
    )
    session.add(sale)
    session.flush()
    subtotal = 0
    for li in order.get('line_items') or []:
        qty = int(li.get('quantity') or 0)
        if qty <= 0:
            continue
        unit = to_paise(li.get('price') or 0)
        variant = _find_variant(session, li.get('sku'))
        session.add(SaleItem(
            sale_id=sale.id,
            variant_id=variant.id if variant else None,
            description=li.get('title') or li.get('sku'),
            quantity=qty,
            unit_price_paise=unit,
            line_total_paise=qty * unit,
        ))
        subtotal += qty * unit
        if variant is None:
            logger.warning('shopify order %s: no variant for sku %r', order_id, li.get('sku'))
            continue
        taken = clamp_stock_decrement(session, variant.id, qty)
        if taken < qty:
            logger.warning('shopify order %s: variant %s short by %s units', order_id, variant.id, qty - taken)
    sale.subtotal_paise = subtotal or total_paise
    session.flush()
    logger.info('shopify order %s recorded as %s', order_id, sale.sale_number)
    return sale


def update_inventory_level(session, payload: Dict[str, Any]) -> int:
    """Set stock for variants linked to the inventory item; returns rows touched."""
    item_id = payload.get('inventory_item_id')
    if item_id is None or payload.get('available') is None:
        raise ValueError('inventory_item_id and available required')
    available = max(int(payload['available']), 0)
    variants = session.execute(
        select(ProductVariant).where(ProductVariant.shopify_inventory_id == str(item_id))
    ).scalars().all()
    for v in variants:
        v.stock_level = available
    session.flush()
    if not variants:
        logger.info('shopify inventory item %s not linked to any variant', item_id)
    return len(variants)


def process_webhook(session, topic: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    if topic in (TOPIC_ORDER_CREATE, TOPIC_ORDER_UPDATED):
        sale = upsert_order(session, payload)
        return {'sale_id': sale.id, 'status': sale.status}
    if topic == TOPIC_INVENTORY_UPDATE:
        return {'variants_updated': update_inventory_level(session, payload)}
    logger.info('shopify webhook topic %r acknowledged without processing', topic)
    return {}
