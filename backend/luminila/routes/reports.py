from __future__ import annotations
from datetime import datetime, time, timezone

from flask import Blueprint, request, make_response
from sqlalchemy import func, select

from luminila import get_db
from luminila.decorators.auth import require_permission
from luminila.models.customer import Customer
from luminila.models.invoice import Invoice
from luminila.models.product import Product, ProductVariant
from luminila.models.purchase_order import PurchaseOrder
from luminila.models.sale import Sale, SaleItem
from luminila.services.activity import add_activity
from luminila.services.csv_import import write_csv
from luminila.utils.validation import parse_date

rpt_bp = Blueprint('reports', __name__)

_REVENUE_EXCLUDED = (Sale.STATUS_CANCELLED, Sale.STATUS_REFUNDED)


def _date_window(column):
    """Filters on an optional ?date_from=&date_to= window (inclusive days)."""
    clauses = []
    if request.args.get('date_from'):
        d = parse_date(request.args['date_from'], 'date_from')
        clauses.append(column >= datetime.combine(d, time.min, timezone.utc))
    if request.args.get('date_to'):
        d = parse_date(request.args['date_to'], 'date_to')
        clauses.append(column <= datetime.combine(d, time.max, timezone.utc))
    return clauses


def _sales_metrics(session):
    window = _date_window(Sale.created_at)
    by_status = session.execute(
        select(Sale.status, func.count(Sale.id), func.coalesce(func.sum(Sale.total_paise), 0))
        .where(*window).group_by(Sale.status).order_by(Sale.status)
    ).all()
    by_channel = session.execute(
        select(Sale.channel, func.count(Sale.id), func.coalesce(func.sum(Sale.total_paise), 0))
        .where(Sale.status.notin_(_REVENUE_EXCLUDED), *window).group_by(Sale.channel).order_by(Sale.channel)
    ).all()
    revenue = sum(int(total) for _, _, total in by_channel)
    orders = sum(int(n) for _, n, _ in by_channel)
    return {
        'revenue_paise': revenue,
        'orders': orders,
        'average_order_paise': revenue // orders if orders else 0,
        'by_status': [{'status': s, 'count': int(n), 'total_paise': int(t)} for s, n, t in by_status],
        'by_channel': [{'channel': c, 'count': int(n), 'total_paise': int(t)} for c, n, t in by_channel],
    }


def _stock_metrics(session):
    row = session.execute(
        select(
            func.count(ProductVariant.id),
            func.coalesce(func.sum(ProductVariant.stock_level), 0),
            func.coalesce(func.sum(ProductVariant.stock_level * Product.cost_price_paise), 0),
            func.coalesce(func.sum(ProductVariant.stock_level * (Product.base_price_paise + ProductVariant.price_adjustment_paise)), 0),
        )
        .join(Product, Product.id == ProductVariant.product_id)
        .where(ProductVariant.is_active.is_(True), Product.is_active.is_(True), ProductVariant.stock_level > 0)
    ).one()
    low = session.execute(
        select(func.count(ProductVariant.id))
        .join(Product, Product.id == ProductVariant.product_id)
        .where(ProductVariant.is_active.is_(True), Product.is_active.is_(True),
               ProductVariant.stock_level <= ProductVariant.low_stock_threshold)
    ).scalar_one()
    return {
        'variants_in_stock': int(row[0]),
        'units': int(row[1]),
        'cost_value_paise': int(row[2]),
        'retail_value_paise': int(row[3]),
        'low_stock_variants': int(low),
    }


@rpt_bp.get('/summary')
@require_permission('reports', 'read')
def summary():
    """Headline metrics for the dashboard."""
    session = get_db()
    receivable = session.execute(
        select(func.coalesce(func.sum(Invoice.grand_total_paise - Invoice.paid_paise), 0))
        .where(Invoice.status.in_((Invoice.STATUS_ISSUED, Invoice.STATUS_PARTIALLY_PAID)))
    ).scalar_one()
    open_pos = session.execute(
        select(func.count(PurchaseOrder.id)).where(PurchaseOrder.status.in_(
            (PurchaseOrder.STATUS_DRAFT, PurchaseOrder.STATUS_ORDERED)))
    ).scalar_one()
    return {
        'sales': _sales_metrics(session),
        'stock': _stock_metrics(session),
        'receivable_paise': int(receivable),
        'open_purchase_orders': int(open_pos),
        'active_customers': int(session.execute(
            select(func.count(Customer.id)).where(Customer.is_active.is_(True))).scalar_one()),
    }


@rpt_bp.get('/sales')
@require_permission('reports', 'read')
def sales_report():
    return _sales_metrics(get_db())


@rpt_bp.get('/stock')
@require_permission('reports', 'read')
def stock_report():
    return _stock_metrics(get_db())


@rpt_bp.get('/top-products')
@require_permission('reports', 'read')
def top_products():
    session = get_db()
    try:
        limit = max(1, min(int(request.args.get('limit', 10)), 100))
    except ValueError:
        limit = 10
    rows = session.execute(
        select(ProductVariant.id, Product.sku, Product.name, ProductVariant.variant_name,
               func.sum(SaleItem.quantity), func.sum(SaleItem.line_total_paise))
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(ProductVariant, ProductVariant.id == SaleItem.variant_id)
        .join(Product, Product.id == ProductVariant.product_id)
        .where(Sale.status.notin_(_REVENUE_EXCLUDED), *_date_window(Sale.created_at))
        .group_by(ProductVariant.id, Product.sku, Product.name, ProductVariant.variant_name)
        .order_by(func.sum(SaleItem.quantity).desc(), ProductVariant.id)
        .limit(limit)
    ).all()
    return {'data': [
        {'variant_id': vid, 'sku': sku, 'name': name, 'variant_name': vname,
         'units': int(units or 0), 'revenue_paise': int(revenue or 0)}
        for vid, sku, name, vname, units, revenue in rows
    ]}


@rpt_bp.get('/sales/export')
@require_permission('reports', 'export')
def export_sales():
    session = get_db()
    columns = ['sale_number', 'created_at', 'channel', 'status', 'customer_name', 'payment_method',
               'subtotal_paise', 'discount_paise', 'tax_paise', 'loyalty_discount_paise', 'total_paise']
    sales = session.execute(
        select(Sale).where(*_date_window(Sale.created_at)).order_by(Sale.created_at, Sale.id)
    ).scalars().all()
    rows = [{c: getattr(s, c) for c in columns} for s in sales]
    add_activity('REPORT.SALES.EXPORT', 'Sale', None, meta={'rows': len(rows)})
    session.commit()
    resp = make_response(write_csv(rows, columns))
    resp.headers['Content-Type'] = 'text/csv; charset=utf-8'
    resp.headers['Content-Disposition'] = 'attachment; filename=sales.csv'
    return resp
