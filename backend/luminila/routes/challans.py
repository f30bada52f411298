from __future__ import annotations
import logging
from datetime import date, datetime, timezone

from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.challan import DeliveryChallan, DeliveryChallanItem
from luminila.models.customer import Customer
from luminila.models.product import ProductVariant
from luminila.models.sale import Sale, SaleItem
from luminila.services.numbering import next_number
from luminila.services.policy import current_user_id
from luminila.services.settings_store import get_setting, seller_state_code
from luminila.services.totals import compute_document
from luminila.utils.filters import apply_filters
from luminila.utils.fsm import TransitionValidator
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, require_fields, parse_int, parse_date

logger = logging.getLogger(__name__)

challans_bp = Blueprint('challans', __name__)

DEFAULT_HSN = '7113'

CHALLAN_FSM = TransitionValidator({
    DeliveryChallan.STATUS_DRAFT: {DeliveryChallan.STATUS_ISSUED, DeliveryChallan.STATUS_CANCELLED},
    DeliveryChallan.STATUS_ISSUED: {DeliveryChallan.STATUS_IN_TRANSIT, DeliveryChallan.STATUS_DELIVERED,
                                    DeliveryChallan.STATUS_CANCELLED},
    DeliveryChallan.STATUS_IN_TRANSIT: {DeliveryChallan.STATUS_DELIVERED, DeliveryChallan.STATUS_RETURNED},
    DeliveryChallan.STATUS_DELIVERED: {DeliveryChallan.STATUS_RETURNED},
    DeliveryChallan.STATUS_RETURNED: set(),
    DeliveryChallan.STATUS_CANCELLED: set(),
})

# Header fields copied verbatim from the request when present.
TEXT_FIELDS = (
    'consignor_name', 'consignor_gstin', 'consignor_address', 'consignor_state_code',
    'consignee_name', 'consignee_gstin', 'consignee_address', 'consignee_state_code',
    'vehicle_number', 'transporter_name', 'driver_name', 'driver_phone', 'eway_bill_number',
    'reason', 'notes', 'internal_notes',
)


def _item_json(i: DeliveryChallanItem):
    return {
        'id': i.id,
        'sr_no': i.sr_no,
        'variant_id': i.variant_id,
        'description': i.description,
        'hsn_code': i.hsn_code,
        'quantity': i.quantity,
        'unit': i.unit,
        'unit_price_paise': i.unit_price_paise,
        'gst_rate_bp': i.gst_rate_bp,
        'taxable_paise': i.taxable_paise,
        'tax_paise': i.tax_paise,
        'line_total_paise': i.line_total_paise,
        'remarks': i.remarks,
    }


def _items_of(challan_id: int):
    return get_db().execute(
        select(DeliveryChallanItem).where(DeliveryChallanItem.challan_id == challan_id).order_by(DeliveryChallanItem.sr_no)
    ).scalars().all()


def _challan_json(c: DeliveryChallan, with_items: bool = False):
    out = {
        'id': c.id,
        'challan_number': c.challan_number,
        'challan_date': c.challan_date.isoformat() if c.challan_date else None,
        'challan_type': c.challan_type,
        'status': c.status,
        'consignee_id': c.consignee_id,
        'sale_id': c.sale_id,
        'invoice_id': c.invoice_id,
        'transport_mode': c.transport_mode,
        'eway_bill_date': c.eway_bill_date.isoformat() if c.eway_bill_date else None,
        'expected_delivery_date': c.expected_delivery_date.isoformat() if c.expected_delivery_date else None,
        'delivered_at': c.delivered_at.isoformat() if c.delivered_at else None,
        'total_quantity': c.total_quantity,
        'taxable_paise': c.taxable_paise,
        'cgst_paise': c.cgst_paise,
        'sgst_paise': c.sgst_paise,
        'igst_paise': c.igst_paise,
        'total_paise': c.total_paise,
        'created_by': c.created_by,
    }
    out.update({name: getattr(c, name) for name in TEXT_FIELDS})
    if with_items:
        out['items'] = [_item_json(i) for i in _items_of(c.id)]
    return out


def _get_challan(session, challan_id: int) -> DeliveryChallan:
    c = session.get(DeliveryChallan, challan_id)
    if not c:
        abort(404, description='Challan not found')
    return c


def _prefetch_challan(challan_id: int):
    c = get_db().get(DeliveryChallan, challan_id)
    if not c:
        return {}
    return {'status': c.status, 'total_paise': c.total_paise}


def _build_items(session, raw_items):
    """Validated lines; catalog lines default their price, rate and HSN from the product."""
    if not isinstance(raw_items, list) or not raw_items:
        abort(400, description='items required')
    lines = []
    for idx, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, dict):
            abort(400, description=f'items[{idx}] must be an object')
        variant = None
        if raw.get('variant_id') not in (None, ''):
            variant_id = parse_int(raw['variant_id'], f'items[{idx}].variant_id')
            variant = session.get(ProductVariant, variant_id)
            if variant is None:
                abort(400, description=f'items[{idx}] variant {variant_id} not found')
        product = variant.product if variant is not None else None
        description = raw.get('description') or (f'{product.name} ({variant.variant_name})' if product else None)
        if not description:
            abort(400, description=f'items[{idx}].description required')
        lines.append({
            'variant_id': variant.id if variant is not None else None,
            'description': description,
            'hsn_code': raw.get('hsn_code') or (product.hsn_code if product else None) or DEFAULT_HSN,
            'quantity': parse_int(raw.get('quantity'), f'items[{idx}].quantity', minimum=1),
            'unit': raw.get('unit') or 'PCS',
            'unit_price_paise': parse_int(raw.get('unit_price_paise'), f'items[{idx}].unit_price_paise', minimum=0,
                                          default=variant.unit_price_paise if variant is not None else None),
            'gst_rate_bp': parse_int(raw.get('gst_rate_bp'), f'items[{idx}].gst_rate_bp', minimum=0,
                                     default=product.gst_rate_bp if product else 300),
            'remarks': raw.get('remarks'),
        })
    return lines


def _replace_items(session, c: DeliveryChallan, lines):
    doc = compute_document(lines, c.consignor_state_code or seller_state_code(session), c.consignee_state_code)
    for old in _items_of(c.id):
        session.delete(old)
    for sr_no, (line, totals) in enumerate(zip(lines, doc.lines), start=1):
        session.add(DeliveryChallanItem(
            challan_id=c.id, sr_no=sr_no, variant_id=line['variant_id'], description=line['description'],
            hsn_code=line['hsn_code'], quantity=line['quantity'], unit=line['unit'],
            unit_price_paise=line['unit_price_paise'], gst_rate_bp=line['gst_rate_bp'],
            taxable_paise=totals.taxable_paise, tax_paise=totals.tax_paise, line_total_paise=totals.total_paise,
            remarks=line['remarks'],
        ))
    c.total_quantity = sum(line['quantity'] for line in lines)
    c.taxable_paise = doc.taxable_paise
    c.cgst_paise = doc.cgst_paise
    c.sgst_paise = doc.sgst_paise
    c.igst_paise = doc.igst_paise
    c.total_paise = doc.total_paise


def _apply_header(session, c: DeliveryChallan, data):
    for name in TEXT_FIELDS:
        if name in data:
            setattr(c, name, data[name] or None)
    if 'challan_type' in data:
        c.challan_type = validate_status(data['challan_type'], DeliveryChallan.ALL_TYPES, 'challan_type')
    if 'transport_mode' in data:
        c.transport_mode = validate_status(data['transport_mode'], DeliveryChallan.TRANSPORT_MODES, 'transport_mode')
    if 'challan_date' in data:
        c.challan_date = parse_date(data['challan_date'], 'challan_date')
    for name in ('eway_bill_date', 'expected_delivery_date'):
        if name in data:
            setattr(c, name, parse_date(data[name], name) if data[name] else None)
    if data.get('consignee_id') not in (None, ''):
        customer = session.get(Customer, parse_int(data['consignee_id'], 'consignee_id'))
        if customer is None:
            abort(400, description='consignee not found')
        c.consignee_id = customer.id
        c.consignee_name = data.get('consignee_name') or customer.name
        c.consignee_address = data.get('consignee_address') or customer.address
        c.consignee_gstin = data.get('consignee_gstin') or customer.gstin
        c.consignee_state_code = data.get('consignee_state_code') or customer.state_code
    if not c.consignee_name:
        abort(400, description='consignee_name required')


def _new_challan(session, data) -> DeliveryChallan:
    """Draft challan with the store as consignor unless the request names one."""
    store = get_setting(session, 'store')
    c = DeliveryChallan(
        challan_number=next_number(session, 'delivery_challan'),
        challan_date=date.today(),
        challan_type=DeliveryChallan.TYPE_OTHER,
        status=DeliveryChallan.STATUS_DRAFT,
        consignor_name=store.get('name') or 'Luminila',
        consignor_gstin=store.get('gstin'),
        consignor_address=store.get('address'),
        consignor_state_code=seller_state_code(session) or None,
        transport_mode='road',
        created_by=current_user_id(),
    )
    _apply_header(session, c, data)
    session.add(c)
    session.flush()
    return c


CHALLAN_FILTERS = {
    'status': {'op': lambda q, v: q.filter(DeliveryChallan.status == v),
               'validate': lambda v: v in DeliveryChallan.ALL_STATUSES},
    'challan_type': {'op': lambda q, v: q.filter(DeliveryChallan.challan_type == v),
                     'validate': lambda v: v in DeliveryChallan.ALL_TYPES},
    'consignee_name': {'op': lambda q, v: q.filter(DeliveryChallan.consignee_name.ilike(f'%{v}%'))},
    'sale_id': {'coerce': int, 'op': lambda q, v: q.filter(DeliveryChallan.sale_id == v)},
    'date_from': {'coerce': lambda v: parse_date(v, 'date_from'),
                  'op': lambda q, v: q.filter(DeliveryChallan.challan_date >= v)},
    'date_to': {'coerce': lambda v: parse_date(v, 'date_to'),
                'op': lambda q, v: q.filter(DeliveryChallan.challan_date <= v)},
}


@challans_bp.get('')
@require_permission('invoices', 'read')
def list_challans():
    session = get_db()
    q = apply_filters(session.query(DeliveryChallan), CHALLAN_FILTERS, request.args)
    allowed = {'challan_date': DeliveryChallan.challan_date, 'total_paise': DeliveryChallan.total_paise,
               'status': DeliveryChallan.status, 'id': DeliveryChallan.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, DeliveryChallan.id, default='-challan_date')
    return list_response(q, _challan_json)


@challans_bp.get('/<int:challan_id>')
@require_permission('invoices', 'read')
def get_challan(challan_id: int):
    c = _get_challan(get_db(), challan_id)
    return entity_response(c.id, _challan_json(c, with_items=True), c.updated_at)


@challans_bp.post('')
@require_permission('invoices', 'create')
@activity_log('CHALLAN.CREATE', entity='DeliveryChallan', entity_id_key='id',
              meta_keys=['challan_number', 'challan_type', 'total_paise'])
def create_challan():
    session = get_db()
    data = json_body()
    lines = _build_items(session, data.get('items'))
    c = _new_challan(session, data)
    _replace_items(session, c, lines)
    session.commit()
    return _challan_json(c, with_items=True), 201


@challans_bp.post('/from-sale/<int:sale_id>')
@require_permission('invoices', 'create')
@activity_log('CHALLAN.FROM_SALE', entity='DeliveryChallan', entity_id_key='id',
              meta_keys=['challan_number', 'sale_id', 'total_paise'])
def challan_from_sale(sale_id: int):
    """Draft a challan carrying a sale's lines to its customer."""
    session = get_db()
    sale = session.get(Sale, sale_id)
    if not sale:
        abort(404, description='Sale not found')
    if sale.status == Sale.STATUS_CANCELLED:
        abort(400, description='sale is cancelled')
    items = session.execute(select(SaleItem).where(SaleItem.sale_id == sale.id).order_by(SaleItem.id)).scalars().all()
    data = json_body()
    header = {
        'challan_type': data.get('challan_type') or DeliveryChallan.TYPE_OTHER,
        'consignee_name': sale.customer_name or 'Walk-in customer',
        'consignee_address': sale.shipping_address,
        'reason': f'Delivery against sale {sale.sale_number}',
    }
    if sale.customer_id is not None:
        header['consignee_id'] = sale.customer_id
    lines = _build_items(session, [{
        'variant_id': i.variant_id,
        'description': i.description or 'Item',
        'quantity': i.quantity,
        'unit_price_paise': i.unit_price_paise,
        'gst_rate_bp': i.gst_rate_bp,
    } for i in items])
    c = _new_challan(session, header)
    c.sale_id = sale.id
    _replace_items(session, c, lines)
    session.commit()
    return _challan_json(c, with_items=True), 201


@challans_bp.patch('/<int:challan_id>')
@require_permission('invoices', 'update')
@activity_log('CHALLAN.UPDATE', entity='DeliveryChallan', entity_id_key='id', diff_keys=['total_paise'],
              pre_fetch=lambda a, kw: _prefetch_challan(kw.get('challan_id')))
def update_challan(challan_id: int):
    session = get_db()
    c = _get_challan(session, challan_id)
    check_if_match(c.id, c.updated_at)
    if c.status != DeliveryChallan.STATUS_DRAFT:
        abort(400, description='only draft challans can be edited')
    data = json_body()
    _apply_header(session, c, data)
    lines = _build_items(session, data['items']) if 'items' in data else [
        {'variant_id': i.variant_id, 'description': i.description, 'hsn_code': i.hsn_code, 'quantity': i.quantity,
         'unit': i.unit, 'unit_price_paise': i.unit_price_paise, 'gst_rate_bp': i.gst_rate_bp, 'remarks': i.remarks}
        for i in _items_of(c.id)
    ]
    # consignee state decides CGST/SGST versus IGST, so totals follow header edits too
    _replace_items(session, c, lines)
    session.commit()
    return _challan_json(c, with_items=True)


@challans_bp.post('/<int:challan_id>/status')
@require_permission('invoices', 'update')
@activity_log('CHALLAN.STATUS', entity='DeliveryChallan', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_challan(kw.get('challan_id')), meta_keys=['status'])
def change_challan_status(challan_id: int):
    session = get_db()
    c = _get_challan(session, challan_id)
    data = json_body()
    require_fields(data, 'status')
    target = validate_status(data['status'], DeliveryChallan.ALL_STATUSES)
    CHALLAN_FSM.assert_can_transition(c.status, target)
    c.status = target
    if target == DeliveryChallan.STATUS_DELIVERED:
        if data.get('delivered_at'):
            try:
                c.delivered_at = datetime.fromisoformat(str(data['delivered_at']))
            except ValueError:
                abort(400, description='delivered_at must be an ISO timestamp')
        else:
            c.delivered_at = datetime.now(timezone.utc)
    if data.get('notes'):
        c.notes = data['notes']
    session.commit()
    logger.info('challan %s -> %s', c.challan_number, target)
    return _challan_json(c)
