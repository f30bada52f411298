from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.product import ProductVariant
from luminila.models.purchase_order import PurchaseOrder, PurchaseOrderItem
from luminila.models.vendor import Vendor
from luminila.services.atomic import adjust_stock, increment_or_conflict
from luminila.services.numbering import next_number
from luminila.services.policy import current_user_id
from luminila.services.totals import compute_document, assert_client_totals
from luminila.utils.filters import apply_filters
from luminila.utils.fsm import TransitionValidator
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, require_fields, parse_int, parse_date

po_bp = Blueprint('purchase_orders', __name__)

PO_FSM = TransitionValidator({
    PurchaseOrder.STATUS_DRAFT: {PurchaseOrder.STATUS_ORDERED, PurchaseOrder.STATUS_CANCELLED},
    PurchaseOrder.STATUS_ORDERED: {PurchaseOrder.STATUS_RECEIVED, PurchaseOrder.STATUS_CANCELLED},
    PurchaseOrder.STATUS_RECEIVED: {PurchaseOrder.STATUS_CLOSED},
    PurchaseOrder.STATUS_CLOSED: set(),
    PurchaseOrder.STATUS_CANCELLED: set(),
})


def _item_json(i: PurchaseOrderItem):
    return {
        'id': i.id,
        'variant_id': i.variant_id,
        'quantity': i.quantity,
        'received_quantity': i.received_quantity,
        'unit_cost_paise': i.unit_cost_paise,
        'gst_rate_bp': i.gst_rate_bp,
        'line_total_paise': i.line_total_paise,
    }


def _po_json(po: PurchaseOrder, with_items: bool = False):
    out = {
        'id': po.id,
        'po_number': po.po_number,
        'vendor_id': po.vendor_id,
        'status': po.status,
        'expected_date': po.expected_date.isoformat() if po.expected_date else None,
        'subtotal_paise': po.subtotal_paise,
        'tax_paise': po.tax_paise,
        'total_paise': po.total_paise,
        'notes': po.notes,
        'created_by': po.created_by,
    }
    if with_items:
        out['items'] = [_item_json(i) for i in _items_of(po.id)]
    return out


def _items_of(po_id: int):
    return get_db().execute(
        select(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == po_id).order_by(PurchaseOrderItem.id)
    ).scalars().all()


def _get_po(session, po_id: int) -> PurchaseOrder:
    po = session.get(PurchaseOrder, po_id)
    if not po:
        abort(404, description='Purchase order not found')
    return po


def _prefetch_po(po_id: int):
    po = get_db().get(PurchaseOrder, po_id)
    if not po:
        return {}
    return {'status': po.status, 'total_paise': po.total_paise}


def _build_items(session, raw_items):
    """Validated line dicts plus computed document totals (purchases are intra-state)."""
    if not isinstance(raw_items, list) or not raw_items:
        abort(400, description='items required')
    lines = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            abort(400, description=f'items[{idx}] must be an object')
        variant_id = parse_int(raw.get('variant_id'), f'items[{idx}].variant_id')
        if not session.get(ProductVariant, variant_id):
            abort(400, description=f'items[{idx}] variant {variant_id} not found')
        lines.append({
            'variant_id': variant_id,
            'quantity': parse_int(raw.get('quantity'), f'items[{idx}].quantity', minimum=1),
            'unit_price_paise': parse_int(raw.get('unit_cost_paise'), f'items[{idx}].unit_cost_paise', minimum=0),
            'gst_rate_bp': parse_int(raw.get('gst_rate_bp'), f'items[{idx}].gst_rate_bp', minimum=0, default=300),
        })
    return lines, compute_document(lines)


def _replace_items(session, po: PurchaseOrder, lines, doc):
    for old in _items_of(po.id):
        session.delete(old)
    for line, totals in zip(lines, doc.lines):
        session.add(PurchaseOrderItem(
            purchase_order_id=po.id,
            variant_id=line['variant_id'],
            quantity=line['quantity'],
            received_quantity=0,
            unit_cost_paise=line['unit_price_paise'],
            gst_rate_bp=line['gst_rate_bp'],
            line_total_paise=totals.total_paise,
        ))
    po.subtotal_paise = doc.taxable_paise
    po.tax_paise = doc.tax_paise
    po.total_paise = doc.total_paise


@po_bp.get('/purchase-orders')
@require_permission('purchase_orders', 'read')
def list_purchase_orders():
    session = get_db()
    q = session.query(PurchaseOrder)
    filter_specs = {
        'vendor_id': {'coerce': int, 'op': lambda qu, v: qu.filter(PurchaseOrder.vendor_id == v)},
        'status': {'op': lambda qu, v: qu.filter(PurchaseOrder.status == v), 'validate': lambda v: v in PurchaseOrder.ALL_STATUSES},
        'po_number': {'op': lambda qu, v: qu.filter(PurchaseOrder.po_number == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {
        'total_paise': PurchaseOrder.total_paise,
        'status': PurchaseOrder.status,
        'expected_date': PurchaseOrder.expected_date,
        'updated_at': PurchaseOrder.updated_at,
        'id': PurchaseOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, PurchaseOrder.id)
    return list_response(q, _po_json)


@po_bp.get('/purchase-orders/<int:po_id>')
@require_permission('purchase_orders', 'read')
def get_purchase_order(po_id: int):
    po = _get_po(get_db(), po_id)
    return entity_response(po.id, _po_json(po, with_items=True), po.updated_at)


@po_bp.post('/purchase-orders')
@require_permission('purchase_orders', 'create')
@activity_log('PO.CREATE', entity='PurchaseOrder', entity_id_key='id', meta_keys=['po_number', 'vendor_id', 'total_paise'])
def create_purchase_order():
    session = get_db()
    data = json_body()
    require_fields(data, 'vendor_id')
    vendor = session.get(Vendor, parse_int(data['vendor_id'], 'vendor_id'))
    if not vendor:
        abort(400, description='vendor not found')
    if vendor.status != Vendor.STATUS_ACTIVE:
        abort(400, description='vendor inactive')
    lines, doc = _build_items(session, data.get('items'))
    assert_client_totals(doc, data)
    po = PurchaseOrder(
        po_number=next_number(session, 'purchase_order'),
        vendor_id=vendor.id,
        status=PurchaseOrder.STATUS_DRAFT,
        expected_date=parse_date(data['expected_date'], 'expected_date') if data.get('expected_date') else None,
        notes=data.get('notes'),
        created_by=current_user_id(),
    )
    session.add(po)
    session.flush()
    _replace_items(session, po, lines, doc)
    session.commit()
    return _po_json(po, with_items=True), 201


@po_bp.patch('/purchase-orders/<int:po_id>')
@require_permission('purchase_orders', 'update')
@activity_log('PO.UPDATE', entity='PurchaseOrder', entity_id_key='id', diff_keys=['total_paise'],
              pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')))
def update_purchase_order(po_id: int):
    session = get_db()
    po = _get_po(session, po_id)
    check_if_match(po.id, po.updated_at)
    if po.status != PurchaseOrder.STATUS_DRAFT:
        abort(400, description='only DRAFT purchase orders can be edited')
    data = json_body()
    if 'items' in data:
        lines, doc = _build_items(session, data['items'])
        assert_client_totals(doc, data)
        _replace_items(session, po, lines, doc)
    if 'expected_date' in data:
        po.expected_date = parse_date(data['expected_date'], 'expected_date') if data['expected_date'] else None
    if 'notes' in data:
        po.notes = data['notes']
    session.commit()
    return _po_json(po, with_items=True)


def _transition(po_id: int, target: str):
    session = get_db()
    po = _get_po(session, po_id)
    PO_FSM.assert_can_transition(po.status, target)
    po.status = validate_status(target, PurchaseOrder.ALL_STATUSES)
    return session, po


@po_bp.post('/purchase-orders/<int:po_id>/order')
@require_permission('purchase_orders', 'update')
@activity_log('PO.ORDER', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status'])
def order_purchase_order(po_id: int):
    session, po = _transition(po_id, PurchaseOrder.STATUS_ORDERED)
    session.commit()
    return _po_json(po)


@po_bp.post('/purchase-orders/<int:po_id>/receive')
@require_permission('purchase_orders', 'update')
@activity_log('PO.RECEIVE', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status', 'received_units'])
def receive_purchase_order(po_id: int):
    """Receive all (default) or some lines; stock grows by the received units."""
    session = get_db()
    po = _get_po(session, po_id)
    if po.status != PurchaseOrder.STATUS_ORDERED:
        PO_FSM.assert_can_transition(po.status, PurchaseOrder.STATUS_RECEIVED)
    items = {i.id: i for i in _items_of(po.id)}
    requested = json_body().get('lines')
    if requested is None:
        wanted = {iid: i.quantity - i.received_quantity for iid, i in items.items()}
    else:
        if not isinstance(requested, list):
            abort(400, description='lines must be a list')
        wanted = {}
        for raw in requested:
            iid = parse_int((raw or {}).get('item_id'), 'item_id')
            if iid not in items:
                abort(400, description=f'item {iid} not on this purchase order')
            wanted[iid] = wanted.get(iid, 0) + parse_int(raw.get('quantity'), 'quantity', minimum=1)
    received_units = 0
    for iid, qty in wanted.items():
        if qty <= 0:
            continue
        item = items[iid]
        increment_or_conflict(session, PurchaseOrderItem, iid, 'received_quantity', qty, floor=None)
        session.refresh(item, attribute_names=['received_quantity'])
        if item.received_quantity > item.quantity:
            abort(400, description=f'item {iid} would exceed ordered quantity')
        adjust_stock(session, item.variant_id, qty)
        received_units += qty
    if all(i.received_quantity >= i.quantity for i in items.values()):
        po.status = PurchaseOrder.STATUS_RECEIVED
    session.commit()
    return dict(_po_json(po, with_items=True), received_units=received_units)


@po_bp.post('/purchase-orders/<int:po_id>/close')
@require_permission('purchase_orders', 'update')
@activity_log('PO.CLOSE', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status'])
def close_purchase_order(po_id: int):
    session, po = _transition(po_id, PurchaseOrder.STATUS_CLOSED)
    session.commit()
    return _po_json(po)


@po_bp.post('/purchase-orders/<int:po_id>/cancel')
@require_permission('purchase_orders', 'delete')
@activity_log('PO.CANCEL', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status'])
def cancel_purchase_order(po_id: int):
    session = get_db()
    po = _get_po(session, po_id)
    if any(i.received_quantity for i in _items_of(po.id)):
        abort(400, description='purchase order already partly received')
    PO_FSM.assert_can_transition(po.status, PurchaseOrder.STATUS_CANCELLED)
    po.status = PurchaseOrder.STATUS_CANCELLED
    session.commit()
    return _po_json(po)
