from __future__ import annotations
from datetime import date

from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.banking import BankTransaction
from luminila.models.customer import Customer
from luminila.models.invoice import Invoice, InvoiceItem, InvoicePayment
from luminila.models.product import ProductVariant
from luminila.models.sale import Sale, SaleItem
from luminila.routes.sales import priced_lines
from luminila.services.atomic import increment, increment_or_conflict
from luminila.services.banking import record_transaction
from luminila.services.numbering import next_number
from luminila.services.policy import current_user_id
from luminila.services.settings_store import seller_state_code
from luminila.services.totals import compute_document, assert_client_totals, amount_in_words
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, parse_int, parse_date

inv_bp = Blueprint('invoices', __name__)

PAYMENT_METHODS = ('cash', 'card', 'upi', 'phonepe', 'bank_transfer', 'cheque')


def _item_json(i: InvoiceItem):
    return {
        'id': i.id,
        'sr_no': i.sr_no,
        'variant_id': i.variant_id,
        'description': i.description,
        'hsn_code': i.hsn_code,
        'quantity': i.quantity,
        'unit_price_paise': i.unit_price_paise,
        'discount_bp': i.discount_bp,
        'discount_paise': i.discount_paise,
        'gst_rate_bp': i.gst_rate_bp,
        'taxable_paise': i.taxable_paise,
        'cgst_paise': i.cgst_paise,
        'sgst_paise': i.sgst_paise,
        'igst_paise': i.igst_paise,
        'total_paise': i.total_paise,
    }


def _payment_json(p: InvoicePayment):
    return {
        'id': p.id,
        'invoice_id': p.invoice_id,
        'amount_paise': p.amount_paise,
        'method': p.method,
        'reference': p.reference,
        'bank_account_id': p.bank_account_id,
        'created_at': p.created_at.isoformat() if p.created_at else None,
    }


def _invoice_json(inv: Invoice, full: bool = False):
    out = {
        'id': inv.id,
        'invoice_number': inv.invoice_number,
        'invoice_date': inv.invoice_date.isoformat() if inv.invoice_date else None,
        'sale_id': inv.sale_id,
        'customer_id': inv.customer_id,
        'buyer_name': inv.buyer_name,
        'buyer_gstin': inv.buyer_gstin,
        'buyer_state_code': inv.buyer_state_code,
        'seller_state_code': inv.seller_state_code,
        'is_inter_state': bool(inv.is_inter_state),
        'taxable_paise': inv.taxable_paise,
        'discount_paise': inv.discount_paise,
        'cgst_paise': inv.cgst_paise,
        'sgst_paise': inv.sgst_paise,
        'igst_paise': inv.igst_paise,
        'total_tax_paise': inv.total_tax_paise,
        'grand_total_paise': inv.grand_total_paise,
        'paid_paise': inv.paid_paise,
        'balance_due_paise': inv.balance_due_paise,
        'status': inv.status,
        'print_count': inv.print_count,
    }
    if full:
        session = get_db()
        out['buyer_address'] = inv.buyer_address
        out['amount_in_words'] = inv.amount_in_words
        out['items'] = [_item_json(i) for i in session.execute(
            select(InvoiceItem).where(InvoiceItem.invoice_id == inv.id).order_by(InvoiceItem.sr_no)).scalars()]
        out['payments'] = [_payment_json(p) for p in session.execute(
            select(InvoicePayment).where(InvoicePayment.invoice_id == inv.id).order_by(InvoicePayment.id)).scalars()]
    return out


def _get_invoice(session, invoice_id: int) -> Invoice:
    inv = session.get(Invoice, invoice_id)
    if not inv:
        abort(404, description='Invoice not found')
    return inv


def _prefetch_invoice(invoice_id: int):
    inv = get_db().get(Invoice, invoice_id)
    if not inv:
        return {}
    return {'status': inv.status, 'paid_paise': inv.paid_paise}


def _lines_from_sale(session, sale: Sale):
    lines = []
    for item in session.execute(select(SaleItem).where(SaleItem.sale_id == sale.id).order_by(SaleItem.id)).scalars():
        variant = session.get(ProductVariant, item.variant_id) if item.variant_id else None
        lines.append({
            'variant_id': item.variant_id,
            'description': item.description or 'Item',
            'hsn_code': variant.product.hsn_code if variant else None,
            'quantity': item.quantity,
            'unit_price_paise': item.unit_price_paise,
            'gst_rate_bp': item.gst_rate_bp,
            'discount_bp': item.discount_bp,
        })
    if not lines:
        abort(400, description='sale has no items')
    return lines


INVOICE_FILTERS = {
    'status': {'op': lambda q, v: q.filter(Invoice.status == v), 'validate': lambda v: v in Invoice.ALL_STATUSES},
    'customer_id': {'coerce': int, 'op': lambda q, v: q.filter(Invoice.customer_id == v)},
    'sale_id': {'coerce': int, 'op': lambda q, v: q.filter(Invoice.sale_id == v)},
    'invoice_number': {'op': lambda q, v: q.filter(Invoice.invoice_number == v)},
    'q': {'op': lambda q, v: q.filter(Invoice.buyer_name.ilike(f'%{v}%'))},
    'date_from': {'coerce': lambda v: parse_date(v, 'date_from'), 'op': lambda q, v: q.filter(Invoice.invoice_date >= v)},
    'date_to': {'coerce': lambda v: parse_date(v, 'date_to'), 'op': lambda q, v: q.filter(Invoice.invoice_date <= v)},
}

INVOICE_SORTS = {
    'invoice_date': Invoice.invoice_date,
    'grand_total_paise': Invoice.grand_total_paise,
    'status': Invoice.status,
    'invoice_number': Invoice.invoice_number,
    'id': Invoice.id,
}


@inv_bp.get('')
@require_permission('invoices', 'read')
def list_invoices():
    q = apply_filters(get_db().query(Invoice), INVOICE_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), INVOICE_SORTS, Invoice.id, default='-invoice_date')
    return list_response(q, _invoice_json)


@inv_bp.get('/<int:invoice_id>')
@require_permission('invoices', 'read')
def get_invoice(invoice_id: int):
    inv = _get_invoice(get_db(), invoice_id)
    return entity_response(inv.id, _invoice_json(inv, full=True), inv.updated_at)


@inv_bp.post('')
@require_permission('invoices', 'create')
@activity_log('INVOICE.CREATE', entity='Invoice', entity_id_key='id',
              meta_keys=['invoice_number', 'grand_total_paise', 'is_inter_state'])
def create_invoice():
    """Issue a GST invoice from a sale (sale_id) or from explicit catalog items.

    Intra-state supply splits GST into CGST + SGST, inter-state supply is IGST.
    """
    session = get_db()
    data = json_body()
    sale = None
    customer = None
    if data.get('sale_id') not in (None, ''):
        sale = session.get(Sale, parse_int(data['sale_id'], 'sale_id'))
        if not sale:
            abort(400, description='sale not found')
        if sale.status == Sale.STATUS_CANCELLED:
            abort(400, description='sale is cancelled')
        existing = session.execute(select(Invoice).where(
            Invoice.sale_id == sale.id, Invoice.status != Invoice.STATUS_CANCELLED)).scalar_one_or_none()
        if existing:
            abort(400, description=f'sale already invoiced as {existing.invoice_number}')
        lines = _lines_from_sale(session, sale)
        if sale.customer_id:
            customer = session.get(Customer, sale.customer_id)
    else:
        lines = priced_lines(session, data.get('items'))
    if customer is None and data.get('customer_id') not in (None, ''):
        customer = session.get(Customer, parse_int(data['customer_id'], 'customer_id'))
        if not customer:
            abort(400, description='customer not found')
    buyer_name = data.get('buyer_name') or (customer.name if customer else None) or (sale.customer_name if sale else None)
    if not buyer_name:
        abort(400, description='buyer_name required')
    buyer_state = data.get('buyer_state_code') or (customer.state_code if customer else None)
    seller_state = seller_state_code(session)
    adjustment = sale.loyalty_discount_paise if sale else 0
    try:
        doc = compute_document(lines, seller_state, buyer_state, adjustment_paise=adjustment)
    except ValueError as e:
        abort(400, description=str(e))
    assert_client_totals(doc, data)
    inv = Invoice(
        invoice_number=next_number(session, 'invoice'),
        invoice_date=parse_date(data.get('invoice_date'), 'invoice_date', default=date.today()),
        sale_id=sale.id if sale else None,
        customer_id=customer.id if customer else None,
        buyer_name=buyer_name,
        buyer_address=data.get('buyer_address') or (customer.address if customer else None),
        buyer_gstin=data.get('buyer_gstin') or (customer.gstin if customer else None),
        buyer_state_code=buyer_state,
        seller_state_code=seller_state,
        is_inter_state=doc.inter_state,
        taxable_paise=doc.taxable_paise,
        discount_paise=doc.discount_paise + doc.adjustment_paise,
        cgst_paise=doc.cgst_paise,
        sgst_paise=doc.sgst_paise,
        igst_paise=doc.igst_paise,
        total_tax_paise=doc.tax_paise,
        grand_total_paise=doc.total_paise,
        paid_paise=0,
        amount_in_words=amount_in_words(doc.total_paise),
        status=Invoice.STATUS_ISSUED,
        print_count=0,
        created_by=current_user_id(),
    )
    session.add(inv)
    session.flush()
    for sr_no, (line, totals) in enumerate(zip(lines, doc.lines), start=1):
        session.add(InvoiceItem(
            invoice_id=inv.id,
            sr_no=sr_no,
            variant_id=line.get('variant_id'),
            description=line['description'],
            hsn_code=line.get('hsn_code'),
            quantity=totals.quantity,
            unit_price_paise=totals.unit_price_paise,
            discount_bp=totals.discount_bp,
            discount_paise=totals.discount_paise,
            gst_rate_bp=totals.gst_rate_bp,
            taxable_paise=totals.taxable_paise,
            cgst_paise=totals.cgst_paise,
            sgst_paise=totals.sgst_paise,
            igst_paise=totals.igst_paise,
            total_paise=totals.total_paise,
        ))
    session.commit()
    return _invoice_json(inv, full=True), 201


@inv_bp.post('/<int:invoice_id>/payments')
@require_permission('invoices', 'update')
@activity_log('INVOICE.PAYMENT', entity='Invoice', entity_id_key='id', diff_keys=['status', 'paid_paise'],
              pre_fetch=lambda a, kw: _prefetch_invoice(kw.get('invoice_id')), meta_keys=['paid_paise', 'status'])
def record_payment(invoice_id: int):
    session = get_db()
    inv = _get_invoice(session, invoice_id)
    if inv.status not in (Invoice.STATUS_ISSUED, Invoice.STATUS_PARTIALLY_PAID):
        abort(400, description=f'cannot record payment on {inv.status} invoice')
    data = json_body()
    amount = parse_int(data.get('amount_paise'), 'amount_paise', minimum=1)
    method = validate_status(data.get('method') or 'cash', PAYMENT_METHODS, 'method')
    if amount > inv.balance_due_paise:
        abort(400, description=f'amount exceeds balance due of {inv.balance_due_paise}')
    # paid_paise never exceeds the grand total, even for concurrent payments
    inv = increment_or_conflict(session, Invoice, inv.id, 'paid_paise', amount, floor=None,
                                ceiling=Invoice.grand_total_paise, message='Invoice balance changed; reload and retry')
    bank_account_id = None
    if data.get('bank_account_id') not in (None, ''):
        bank_account_id = parse_int(data['bank_account_id'], 'bank_account_id')
        record_transaction(session, bank_account_id, BankTransaction.TYPE_DEPOSIT, amount,
                           description=f'Payment for {inv.invoice_number}', reference_number=data.get('reference'),
                           related_entity_type='invoice', related_entity_id=inv.id, user_id=current_user_id())
    session.add(InvoicePayment(invoice_id=inv.id, amount_paise=amount, method=method,
                               reference=data.get('reference'), bank_account_id=bank_account_id,
                               created_by=current_user_id()))
    inv.status = Invoice.STATUS_PAID if inv.paid_paise == inv.grand_total_paise else Invoice.STATUS_PARTIALLY_PAID
    session.commit()
    return _invoice_json(inv, full=True), 201


@inv_bp.post('/<int:invoice_id>/print')
@require_permission('invoices', 'print')
@activity_log('INVOICE.PRINT', entity='Invoice', entity_id_key='id', meta_keys=['print_count'])
def print_invoice(invoice_id: int):
    """Printable invoice payload; bumps print_count."""
    session = get_db()
    inv = _get_invoice(session, invoice_id)
    if inv.status == Invoice.STATUS_CANCELLED:
        abort(400, description='invoice is cancelled')
    increment(session, Invoice, inv.id, 'print_count', 1)
    session.commit()
    return _invoice_json(inv, full=True)


@inv_bp.post('/<int:invoice_id>/cancel')
@require_permission('invoices', 'delete')
@activity_log('INVOICE.CANCEL', entity='Invoice', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_invoice(kw.get('invoice_id')), meta_keys=['status'])
def cancel_invoice(invoice_id: int):
    session = get_db()
    inv = _get_invoice(session, invoice_id)
    if inv.status == Invoice.STATUS_CANCELLED:
        abort(400, description='already cancelled')
    if inv.paid_paise:
        abort(400, description='invoice has payments; issue a credit note instead')
    inv.status = Invoice.STATUS_CANCELLED
    session.commit()
    return _invoice_json(inv)
