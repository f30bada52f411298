from __future__ import annotations
import logging
from datetime import datetime, time, timezone

from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.customer import Customer
from luminila.models.product import ProductVariant
from luminila.models.sale import Sale, SaleItem
from luminila.services import loyalty, register
from luminila.services.atomic import adjust_stock, increment
from luminila.services.numbering import next_number
from luminila.services.policy import current_user_id
from luminila.services.settings_store import seller_state_code
from luminila.services.totals import compute_document, assert_client_totals, line_dict
from luminila.utils.filters import apply_filters
from luminila.utils.fsm import TransitionValidator
from luminila.utils.listing import list_response, entity_response
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, parse_int, parse_date

logger = logging.getLogger(__name__)

sales_bp = Blueprint('sales', __name__)

# pending -> confirmed -> shipped -> completed -> refunded
# POS sales are created completed; anything before completed may be cancelled.
SALE_FSM = TransitionValidator({
    Sale.STATUS_PENDING: {Sale.STATUS_CONFIRMED, Sale.STATUS_COMPLETED, Sale.STATUS_CANCELLED},
    Sale.STATUS_CONFIRMED: {Sale.STATUS_SHIPPED, Sale.STATUS_COMPLETED, Sale.STATUS_CANCELLED},
    Sale.STATUS_SHIPPED: {Sale.STATUS_COMPLETED, Sale.STATUS_CANCELLED},
    Sale.STATUS_COMPLETED: {Sale.STATUS_REFUNDED, Sale.STATUS_CANCELLED},
    Sale.STATUS_CANCELLED: set(),
    Sale.STATUS_REFUNDED: set(),
})


def _sale_item_json(i: SaleItem):
    return {
        'id': i.id,
        'variant_id': i.variant_id,
        'description': i.description,
        'quantity': i.quantity,
        'unit_price_paise': i.unit_price_paise,
        'discount_bp': i.discount_bp,
        'gst_rate_bp': i.gst_rate_bp,
        'line_total_paise': i.line_total_paise,
    }


def _items_of(sale_id: int):
    return get_db().execute(
        select(SaleItem).where(SaleItem.sale_id == sale_id).order_by(SaleItem.id)
    ).scalars().all()


def _sale_json(s: Sale, with_items: bool = False):
    out = {
        'id': s.id,
        'sale_number': s.sale_number,
        'channel': s.channel,
        'channel_order_id': s.channel_order_id,
        'customer_id': s.customer_id,
        'customer_name': s.customer_name,
        'customer_phone': s.customer_phone,
        'subtotal_paise': s.subtotal_paise,
        'discount_paise': s.discount_paise,
        'tax_paise': s.tax_paise,
        'loyalty_points_redeemed': s.loyalty_points_redeemed,
        'loyalty_discount_paise': s.loyalty_discount_paise,
        'total_paise': s.total_paise,
        'payment_method': s.payment_method,
        'status': s.status,
        'created_by': s.created_by,
        'register_shift_id': s.register_shift_id,
        'created_at': s.created_at.isoformat() if s.created_at else None,
    }
    if with_items:
        out['items'] = [_sale_item_json(i) for i in _items_of(s.id)]
    return out


def _get_sale(session, sale_id: int) -> Sale:
    s = session.get(Sale, sale_id)
    if not s:
        abort(404, description='Sale not found')
    return s


def _prefetch_sale(sale_id: int):
    s = get_db().get(Sale, sale_id)
    if not s:
        return {}
    return {'status': s.status}


def priced_lines(session, raw_items):
    """Resolve request items against the catalog.

    Prices and GST rates come from the variant and its product; callers only
    choose quantities and per-line discounts.
    """
    if not isinstance(raw_items, list) or not raw_items:
        abort(400, description='items required')
    lines = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            abort(400, description=f'items[{idx}] must be an object')
        variant_id = parse_int(raw.get('variant_id'), f'items[{idx}].variant_id')
        variant = session.get(ProductVariant, variant_id)
        if variant is None or not variant.is_active or not variant.product.is_active:
            abort(400, description=f'items[{idx}] variant {variant_id} not available')
        discount_bp = parse_int(raw.get('discount_bp'), f'items[{idx}].discount_bp', minimum=0, default=0)
        if discount_bp > 10_000:
            abort(400, description=f'items[{idx}].discount_bp must be <= 10000')
        product = variant.product
        lines.append({
            'variant_id': variant.id,
            'description': f'{product.name} ({variant.variant_name})',
            'hsn_code': product.hsn_code,
            'quantity': parse_int(raw.get('quantity'), f'items[{idx}].quantity', minimum=1),
            'unit_price_paise': variant.unit_price_paise,
            'gst_rate_bp': product.gst_rate_bp,
            'discount_bp': discount_bp,
        })
    return lines


def _quote(session, data, customer):
    lines = priced_lines(session, data.get('items'))
    buyer_state = customer.state_code if customer else data.get('buyer_state_code')
    return lines, compute_document(lines, seller_state_code(session), buyer_state)


def _customer_for(session, data):
    if data.get('customer_id') in (None, ''):
        return None
    c = session.get(Customer, parse_int(data['customer_id'], 'customer_id'))
    if not c or not c.is_active:
        abort(400, description='customer not found')
    return c


SALE_FILTERS = {
    'status': {'op': lambda q, v: q.filter(Sale.status == v), 'validate': lambda v: v in Sale.ALL_STATUSES},
    'channel': {'op': lambda q, v: q.filter(Sale.channel == v), 'validate': lambda v: v in Sale.ALL_CHANNELS},
    'customer_id': {'coerce': int, 'op': lambda q, v: q.filter(Sale.customer_id == v)},
    'payment_method': {'op': lambda q, v: q.filter(Sale.payment_method == v)},
    'sale_number': {'op': lambda q, v: q.filter(Sale.sale_number == v)},
    'date_from': {'coerce': lambda v: parse_date(v, 'date_from'),
                  'op': lambda q, v: q.filter(Sale.created_at >= datetime.combine(v, time.min, timezone.utc))},
    'date_to': {'coerce': lambda v: parse_date(v, 'date_to'),
                'op': lambda q, v: q.filter(Sale.created_at <= datetime.combine(v, time.max, timezone.utc))},
}

SALE_SORTS = {
    'created_at': Sale.created_at,
    'total_paise': Sale.total_paise,
    'status': Sale.status,
    'sale_number': Sale.sale_number,
    'id': Sale.id,
}


@sales_bp.get('')
@require_permission('sales', 'read')
def list_sales():
    session = get_db()
    q = apply_filters(session.query(Sale), SALE_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), SALE_SORTS, Sale.id, default='-created_at')
    return list_response(q, _sale_json)


@sales_bp.get('/<int:sale_id>')
@require_permission('sales', 'read')
def get_sale(sale_id: int):
    s = _get_sale(get_db(), sale_id)
    return entity_response(s.id, _sale_json(s, with_items=True), s.updated_at)


@sales_bp.post('/quote')
@require_permission('sales', 'read')
def quote_sale():
    """Totals for a prospective cart, including the loyalty redemption cap."""
    session = get_db()
    data = json_body()
    customer = _customer_for(session, data)
    lines, doc = _quote(session, data, customer)
    body = doc.summary()
    body['lines'] = [line_dict(line) for line in doc.lines]
    body['inter_state'] = doc.inter_state
    if customer:
        cfg = loyalty.loyalty_settings(session)
        acct = loyalty.get_account(session, customer.id, create=False)
        balance = acct.current_balance if acct else 0
        body['loyalty'] = {
            'balance': balance,
            'max_redeemable_points': loyalty.max_redeemable_points(balance, doc.total_paise, cfg) if cfg.get('is_active') else 0,
        }
    return body


@sales_bp.post('')
@require_permission('sales', 'create')
@activity_log('SALE.CREATE', entity='Sale', entity_id_key='id',
              meta_keys=['sale_number', 'total_paise', 'payment_method', 'loyalty_points_redeemed'])
def create_sale():
    """POS checkout.

    Totals are recomputed from catalog prices; stock is decremented atomically
    per line (409 when short); optional loyalty points are redeemed against the
    order and points are earned on the amount paid.
    """
    session = get_db()
    data = json_body()
    customer = _customer_for(session, data)
    payment_method = data.get('payment_method') or 'cash'
    validate_status(payment_method, Sale.PAYMENT_METHODS, 'payment_method')
    lines, doc = _quote(session, data, customer)
    sale = Sale(
        sale_number=next_number(session, 'sale'),
        channel=Sale.CHANNEL_POS,
        customer_id=customer.id if customer else None,
        customer_name=customer.name if customer else data.get('customer_name'),
        customer_phone=customer.phone if customer else data.get('customer_phone'),
        payment_method=payment_method,
        status=Sale.STATUS_COMPLETED,
        created_by=current_user_id(),
        register_shift_id=register.open_shift_id(session, current_user_id()),
    )
    session.add(sale)
    session.flush()
    points = parse_int(data.get('loyalty_points_redeem'), 'loyalty_points_redeem', minimum=0, default=0)
    if points:
        if not customer:
            abort(400, description='customer_id required to redeem loyalty points')
        discount = loyalty.redeem(session, customer.id, points, doc.total_paise, reference_id=sale.id,
                                  user_id=current_user_id())
        try:
            doc = compute_document(lines, seller_state_code(session),
                                   customer.state_code, adjustment_paise=discount)
        except ValueError as e:
            abort(400, description=str(e))
        sale.loyalty_points_redeemed = points
        sale.loyalty_discount_paise = discount
    assert_client_totals(doc, data)
    for line, totals in zip(lines, doc.lines):
        adjust_stock(session, line['variant_id'], -line['quantity'])
        session.add(SaleItem(
            sale_id=sale.id,
            variant_id=line['variant_id'],
            description=line['description'],
            quantity=line['quantity'],
            unit_price_paise=line['unit_price_paise'],
            discount_bp=line['discount_bp'],
            gst_rate_bp=line['gst_rate_bp'],
            line_total_paise=totals.total_paise,
        ))
    sale.subtotal_paise = doc.subtotal_paise
    sale.discount_paise = doc.discount_paise
    sale.tax_paise = doc.tax_paise
    sale.total_paise = doc.total_paise
    if customer:
        increment(session, Customer, customer.id, 'total_spent_paise', doc.total_paise)
        increment(session, Customer, customer.id, 'total_orders', 1)
        loyalty.earn(session, customer.id, doc.total_paise, reference_id=sale.id, user_id=current_user_id())
    session.commit()
    logger.info('sale %s created total=%s', sale.sale_number, sale.total_paise)
    return _sale_json(sale, with_items=True), 201


@sales_bp.post('/<int:sale_id>/status')
@require_permission('sales', 'update')
@activity_log('SALE.STATUS', entity='Sale', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_sale(kw.get('sale_id')), meta_keys=['status'])
def change_sale_status(sale_id: int):
    session = get_db()
    s = _get_sale(session, sale_id)
    target = validate_status(json_body().get('status'), Sale.ALL_STATUSES)
    if target == Sale.STATUS_CANCELLED:
        abort(400, description='use the cancel endpoint')
    SALE_FSM.assert_can_transition(s.status, target)
    s.status = target
    session.commit()
    return _sale_json(s)


@sales_bp.post('/<int:sale_id>/cancel')
@require_permission('sales', 'delete')
@activity_log('SALE.CANCEL', entity='Sale', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_sale(kw.get('sale_id')), meta_keys=['status', 'restocked_units'])
def cancel_sale(sale_id: int):
    """Cancel a sale, put its units back on the shelf and undo customer totals."""
    session = get_db()
    s = _get_sale(session, sale_id)
    SALE_FSM.assert_can_transition(s.status, Sale.STATUS_CANCELLED)
    restocked = 0
    for item in _items_of(s.id):
        if item.variant_id is None:
            continue
        adjust_stock(session, item.variant_id, item.quantity)
        restocked += item.quantity
    if s.customer_id is not None and s.channel == Sale.CHANNEL_POS:
        increment(session, Customer, s.customer_id, 'total_spent_paise', -s.total_paise)
        increment(session, Customer, s.customer_id, 'total_orders', -1)
        if s.loyalty_points_redeemed:
            loyalty.adjust(session, s.customer_id, s.loyalty_points_redeemed,
                           description=f'Returned on cancellation of {s.sale_number}', user_id=current_user_id())
    s.status = Sale.STATUS_CANCELLED
    session.commit()
    return dict(_sale_json(s), restocked_units=restocked)
