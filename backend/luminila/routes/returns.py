from __future__ import annotations
import logging

from flask import Blueprint, request, abort
from sqlalchemy import select, func

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.banking import BankTransaction
from luminila.models.credit_note import CreditNote, CreditNoteItem
from luminila.models.invoice import Invoice, InvoiceItem
from luminila.services.atomic import adjust_stock
from luminila.services.banking import record_transaction
from luminila.services.numbering import next_number
from luminila.services.policy import current_user_id
from luminila.services.totals import compute_document, assert_client_totals
from luminila.utils.filters import apply_filters
from luminila.utils.fsm import TransitionValidator
from luminila.utils.listing import list_response, entity_response
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, validate_status, require_fields, parse_int

logger = logging.getLogger(__name__)

ret_bp = Blueprint('returns', __name__)

RETURN_FSM = TransitionValidator({
    CreditNote.STATUS_PENDING: {CreditNote.STATUS_APPROVED, CreditNote.STATUS_REJECTED},
    CreditNote.STATUS_APPROVED: {CreditNote.STATUS_REFUNDED},
    CreditNote.STATUS_REFUNDED: set(),
    CreditNote.STATUS_REJECTED: set(),
})

RETURNABLE_INVOICE_STATUSES = (Invoice.STATUS_ISSUED, Invoice.STATUS_PARTIALLY_PAID, Invoice.STATUS_PAID)


def _item_json(i: CreditNoteItem):
    return {
        'id': i.id,
        'invoice_item_id': i.invoice_item_id,
        'variant_id': i.variant_id,
        'quantity': i.quantity,
        'unit_price_paise': i.unit_price_paise,
        'gst_rate_bp': i.gst_rate_bp,
        'taxable_paise': i.taxable_paise,
        'tax_paise': i.tax_paise,
        'total_paise': i.total_paise,
    }


def _credit_note_json(cn: CreditNote, with_items: bool = False):
    out = {
        'id': cn.id,
        'credit_note_number': cn.credit_note_number,
        'invoice_id': cn.invoice_id,
        'customer_id': cn.customer_id,
        'reason': cn.reason,
        'status': cn.status,
        'refund_method': cn.refund_method,
        'restock': bool(cn.restock),
        'taxable_paise': cn.taxable_paise,
        'tax_paise': cn.tax_paise,
        'total_paise': cn.total_paise,
        'created_by': cn.created_by,
    }
    if with_items:
        out['items'] = [_item_json(i) for i in _items_of(cn.id)]
    return out


def _items_of(credit_note_id: int):
    return get_db().execute(
        select(CreditNoteItem).where(CreditNoteItem.credit_note_id == credit_note_id).order_by(CreditNoteItem.id)
    ).scalars().all()


def _get_credit_note(session, cn_id: int) -> CreditNote:
    cn = session.get(CreditNote, cn_id)
    if not cn:
        abort(404, description='Credit note not found')
    return cn


def _prefetch_credit_note(cn_id: int):
    cn = get_db().get(CreditNote, cn_id)
    return {'status': cn.status} if cn else {}


def _already_returned(session, invoice_item_id: int) -> int:
    """Units of an invoice line already on non-rejected credit notes."""
    q = (
        select(func.coalesce(func.sum(CreditNoteItem.quantity), 0))
        .join(CreditNote, CreditNote.id == CreditNoteItem.credit_note_id)
        .where(CreditNoteItem.invoice_item_id == invoice_item_id, CreditNote.status != CreditNote.STATUS_REJECTED)
    )
    return int(session.execute(q).scalar_one())


@ret_bp.get('')
@require_permission('invoices', 'read')
def list_returns():
    specs = {
        'status': {'op': lambda q, v: q.filter(CreditNote.status == v), 'validate': lambda v: v in CreditNote.ALL_STATUSES},
        'invoice_id': {'coerce': int, 'op': lambda q, v: q.filter(CreditNote.invoice_id == v)},
        'customer_id': {'coerce': int, 'op': lambda q, v: q.filter(CreditNote.customer_id == v)},
    }
    q = apply_filters(get_db().query(CreditNote), specs, request.args)
    allowed = {'total_paise': CreditNote.total_paise, 'status': CreditNote.status,
               'updated_at': CreditNote.updated_at, 'id': CreditNote.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, CreditNote.id, default='-id')
    return list_response(q, _credit_note_json)


@ret_bp.get('/<int:cn_id>')
@require_permission('invoices', 'read')
def get_return(cn_id: int):
    cn = _get_credit_note(get_db(), cn_id)
    return entity_response(cn.id, _credit_note_json(cn, with_items=True), cn.updated_at)


@ret_bp.post('')
@require_permission('invoices', 'create')
@activity_log('RETURN.CREATE', entity='CreditNote', entity_id_key='id',
              meta_keys=['credit_note_number', 'invoice_id', 'total_paise'])
def create_return():
    """Open a credit note for some units of an issued invoice.

    Amounts are recomputed with the invoice's own prices, discounts and GST
    split; a line can never be returned more times than it was invoiced.
    """
    session = get_db()
    data = json_body()
    require_fields(data, 'invoice_id', 'reason')
    inv = session.get(Invoice, parse_int(data['invoice_id'], 'invoice_id'))
    if not inv:
        abort(400, description='invoice not found')
    if inv.status not in RETURNABLE_INVOICE_STATUSES:
        abort(400, description=f'cannot return against {inv.status} invoice')
    refund_method = data.get('refund_method')
    if refund_method is not None:
        validate_status(refund_method, CreditNote.REFUND_METHODS, 'refund_method')
    raw_items = data.get('items')
    if not isinstance(raw_items, list) or not raw_items:
        abort(400, description='items required')
    lines = []
    for idx, raw in enumerate(raw_items, start=1):
        item_id = parse_int((raw or {}).get('invoice_item_id'), f'items[{idx}].invoice_item_id')
        inv_item = session.get(InvoiceItem, item_id)
        if inv_item is None or inv_item.invoice_id != inv.id:
            abort(400, description=f'items[{idx}] is not a line of invoice {inv.invoice_number}')
        qty = parse_int(raw.get('quantity'), f'items[{idx}].quantity', minimum=1)
        remaining = inv_item.quantity - _already_returned(session, item_id)
        if qty > remaining:
            abort(400, description=f'items[{idx}] only {remaining} unit(s) left to return')
        lines.append({
            'invoice_item_id': item_id,
            'variant_id': inv_item.variant_id,
            'quantity': qty,
            'unit_price_paise': inv_item.unit_price_paise,
            'discount_bp': inv_item.discount_bp,
            'gst_rate_bp': inv_item.gst_rate_bp,
        })
    buyer_state = inv.buyer_state_code if inv.is_inter_state else inv.seller_state_code
    doc = compute_document(lines, inv.seller_state_code, buyer_state)
    assert_client_totals(doc, data)
    cn = CreditNote(
        credit_note_number=next_number(session, 'credit_note'),
        invoice_id=inv.id,
        customer_id=inv.customer_id,
        reason=data['reason'],
        status=CreditNote.STATUS_PENDING,
        refund_method=refund_method,
        restock=bool(data.get('restock', True)),
        taxable_paise=doc.taxable_paise,
        tax_paise=doc.tax_paise,
        total_paise=doc.total_paise,
        created_by=current_user_id(),
    )
    session.add(cn)
    session.flush()
    for line, totals in zip(lines, doc.lines):
        session.add(CreditNoteItem(
            credit_note_id=cn.id,
            invoice_item_id=line['invoice_item_id'],
            variant_id=line['variant_id'],
            quantity=line['quantity'],
            unit_price_paise=line['unit_price_paise'],
            gst_rate_bp=line['gst_rate_bp'],
            taxable_paise=totals.taxable_paise,
            tax_paise=totals.tax_paise,
            total_paise=totals.total_paise,
        ))
    session.commit()
    return _credit_note_json(cn, with_items=True), 201


@ret_bp.post('/<int:cn_id>/approve')
@require_permission('invoices', 'update')
@activity_log('RETURN.APPROVE', entity='CreditNote', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_credit_note(kw.get('cn_id')), meta_keys=['status'])
def approve_return(cn_id: int):
    session = get_db()
    cn = _get_credit_note(session, cn_id)
    RETURN_FSM.assert_can_transition(cn.status, CreditNote.STATUS_APPROVED)
    cn.status = CreditNote.STATUS_APPROVED
    session.commit()
    return _credit_note_json(cn)


@ret_bp.post('/<int:cn_id>/reject')
@require_permission('invoices', 'update')
@activity_log('RETURN.REJECT', entity='CreditNote', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_credit_note(kw.get('cn_id')), meta_keys=['status'])
def reject_return(cn_id: int):
    session = get_db()
    cn = _get_credit_note(session, cn_id)
    RETURN_FSM.assert_can_transition(cn.status, CreditNote.STATUS_REJECTED)
    cn.status = CreditNote.STATUS_REJECTED
    session.commit()
    return _credit_note_json(cn)


@ret_bp.post('/<int:cn_id>/refund')
@require_permission('invoices', 'update')
@activity_log('RETURN.REFUND', entity='CreditNote', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_credit_note(kw.get('cn_id')),
              meta_keys=['status', 'refund_method', 'restocked_units'])
def refund_return(cn_id: int):
    """Pay the credit note out; returned units go back to stock when restock is set."""
    session = get_db()
    cn = _get_credit_note(session, cn_id)
    RETURN_FSM.assert_can_transition(cn.status, CreditNote.STATUS_REFUNDED)
    data = json_body()
    if data.get('refund_method'):
        cn.refund_method = validate_status(data['refund_method'], CreditNote.REFUND_METHODS, 'refund_method')
    if not cn.refund_method:
        abort(400, description='refund_method required')
    if data.get('bank_account_id') not in (None, ''):
        record_transaction(session, parse_int(data['bank_account_id'], 'bank_account_id'),
                           BankTransaction.TYPE_WITHDRAWAL, cn.total_paise,
                           description=f'Refund {cn.credit_note_number}', related_entity_type='credit_note',
                           related_entity_id=cn.id, user_id=current_user_id())
    restocked = 0
    if cn.restock:
        for item in _items_of(cn.id):
            if item.variant_id is None:
                continue
            adjust_stock(session, item.variant_id, item.quantity)
            restocked += item.quantity
    cn.status = CreditNote.STATUS_REFUNDED
    session.commit()
    logger.info('credit note %s refunded via %s', cn.credit_note_number, cn.refund_method)
    return dict(_credit_note_json(cn), restocked_units=restocked)
