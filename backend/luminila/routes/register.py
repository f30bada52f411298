from __future__ import annotations
from datetime import datetime, time, timezone

from flask import Blueprint, request, abort
from sqlalchemy import select

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.register import DrawerOperation, RegisterShift
from luminila.services import register
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.fsm import TransitionValidator
from luminila.utils.listing import list_response, entity_response
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, require_fields, parse_int, parse_date

register_bp = Blueprint('register', __name__)

SHIFT_FSM = TransitionValidator({
    RegisterShift.STATUS_OPEN: {RegisterShift.STATUS_SUSPENDED, RegisterShift.STATUS_CLOSED},
    RegisterShift.STATUS_SUSPENDED: {RegisterShift.STATUS_OPEN},
    RegisterShift.STATUS_CLOSED: set(),
})


def _iso(dt):
    return dt.isoformat() if dt else None


def _op_json(o: DrawerOperation):
    return {
        'id': o.id,
        'operation_type': o.operation_type,
        'amount_paise': o.amount_paise,
        'reason': o.reason,
        'performed_by': o.performed_by,
        'performed_at': _iso(o.performed_at),
    }


def _shift_json(s: RegisterShift, detail: bool = False):
    out = {
        'id': s.id,
        'user_id': s.user_id,
        'terminal_id': s.terminal_id,
        'status': s.status,
        'opening_balance_paise': s.opening_balance_paise,
        'cash_added_paise': s.cash_added_paise,
        'cash_removed_paise': s.cash_removed_paise,
        'cash_sales_paise': s.cash_sales_paise,
        'card_sales_paise': s.card_sales_paise,
        'upi_sales_paise': s.upi_sales_paise,
        'cash_refunds_paise': s.cash_refunds_paise,
        'expected_balance_paise': s.expected_balance_paise,
        'closing_balance_paise': s.closing_balance_paise,
        'variance_paise': s.variance_paise,
        'variance_notes': s.variance_notes,
        'notes': s.notes,
        'opened_at': _iso(s.opened_at),
        'closed_at': _iso(s.closed_at),
    }
    if detail:
        session = get_db()
        out['summary'] = register.summarise(session, s).as_dict()
        out['operations'] = [_op_json(o) for o in session.execute(
            select(DrawerOperation).where(DrawerOperation.shift_id == s.id).order_by(DrawerOperation.id)
        ).scalars()]
    return out


def _get_shift(session, shift_id: int) -> RegisterShift:
    s = session.get(RegisterShift, shift_id)
    if not s:
        abort(404, description='Shift not found')
    return s


def _prefetch_shift(shift_id: int):
    s = get_db().get(RegisterShift, shift_id)
    if not s:
        return {}
    return {'status': s.status}


SHIFT_FILTERS = {
    'user_id': {'coerce': int, 'op': lambda q, v: q.filter(RegisterShift.user_id == v)},
    'status': {'op': lambda q, v: q.filter(RegisterShift.status == v),
               'validate': lambda v: v in RegisterShift.ALL_STATUSES},
    'date_from': {'coerce': lambda v: parse_date(v, 'date_from'),
                  'op': lambda q, v: q.filter(RegisterShift.opened_at >= datetime.combine(v, time.min, timezone.utc))},
    'date_to': {'coerce': lambda v: parse_date(v, 'date_to'),
                'op': lambda q, v: q.filter(RegisterShift.opened_at <= datetime.combine(v, time.max, timezone.utc))},
}


@register_bp.get('/shifts')
@require_permission('sales', 'read')
def list_shifts():
    session = get_db()
    q = apply_filters(session.query(RegisterShift), SHIFT_FILTERS, request.args)
    allowed = {'opened_at': RegisterShift.opened_at, 'variance_paise': RegisterShift.variance_paise,
               'id': RegisterShift.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, RegisterShift.id, default='-opened_at')
    return list_response(q, _shift_json)


@register_bp.get('/shifts/current')
@require_permission('sales', 'read')
def current_shift():
    """The caller's open or suspended shift."""
    s = register.active_shift(get_db(), current_user_id())
    if s is None:
        abort(404, description='No open shift')
    return _shift_json(s, detail=True)


@register_bp.get('/shifts/<int:shift_id>')
@require_permission('sales', 'read')
def get_shift(shift_id: int):
    s = _get_shift(get_db(), shift_id)
    return entity_response(s.id, _shift_json(s, detail=True), s.updated_at)


@register_bp.post('/shifts')
@require_permission('sales', 'create')
@activity_log('SHIFT.OPEN', entity='RegisterShift', entity_id_key='id', meta_keys=['opening_balance_paise', 'terminal_id'])
def open_shift():
    session = get_db()
    data = json_body()
    require_fields(data, 'opening_balance_paise')
    s = register.open_shift(session, current_user_id(),
                            parse_int(data['opening_balance_paise'], 'opening_balance_paise', minimum=0),
                            terminal_id=data.get('terminal_id'), notes=data.get('notes'))
    session.commit()
    return _shift_json(s), 201


def _move(shift_id: int, kind: str):
    session = get_db()
    s = _get_shift(session, shift_id)
    data = json_body()
    require_fields(data, 'amount_paise')
    op = register.move_cash(session, s, kind, parse_int(data['amount_paise'], 'amount_paise', minimum=1),
                            data.get('reason'), current_user_id())
    session.commit()
    return dict(_op_json(op), shift_id=s.id, expected_balance_paise=register.summarise(session, s).expected_balance_paise), 201


@register_bp.post('/shifts/<int:shift_id>/cash-in')
@require_permission('sales', 'create')
@activity_log('SHIFT.CASH_IN', entity='RegisterShift', entity_id_key='shift_id', meta_keys=['amount_paise', 'reason'])
def cash_in(shift_id: int):
    return _move(shift_id, DrawerOperation.TYPE_ADD)


@register_bp.post('/shifts/<int:shift_id>/cash-out')
@require_permission('sales', 'create')
@activity_log('SHIFT.CASH_OUT', entity='RegisterShift', entity_id_key='shift_id', meta_keys=['amount_paise', 'reason'])
def cash_out(shift_id: int):
    return _move(shift_id, DrawerOperation.TYPE_REMOVE)


@register_bp.post('/shifts/<int:shift_id>/suspend')
@require_permission('sales', 'update')
@activity_log('SHIFT.SUSPEND', entity='RegisterShift', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_shift(kw.get('shift_id')), meta_keys=['status'])
def suspend_shift(shift_id: int):
    session = get_db()
    s = _get_shift(session, shift_id)
    SHIFT_FSM.assert_can_transition(s.status, RegisterShift.STATUS_SUSPENDED)
    s.status = RegisterShift.STATUS_SUSPENDED
    session.commit()
    return _shift_json(s)


@register_bp.post('/shifts/<int:shift_id>/resume')
@require_permission('sales', 'update')
@activity_log('SHIFT.RESUME', entity='RegisterShift', entity_id_key='id', diff_keys=['status'],
              pre_fetch=lambda a, kw: _prefetch_shift(kw.get('shift_id')), meta_keys=['status'])
def resume_shift(shift_id: int):
    session = get_db()
    s = _get_shift(session, shift_id)
    SHIFT_FSM.assert_can_transition(s.status, RegisterShift.STATUS_OPEN)
    s.status = RegisterShift.STATUS_OPEN
    session.commit()
    return _shift_json(s)


@register_bp.post('/shifts/<int:shift_id>/close')
@require_permission('sales', 'update')
@activity_log('SHIFT.CLOSE', entity='RegisterShift', entity_id_key='id',
              meta_keys=['expected_balance_paise', 'closing_balance_paise', 'variance_paise'])
def close_shift(shift_id: int):
    """Count the drawer and record the variance against the expected cash."""
    session = get_db()
    s = _get_shift(session, shift_id)
    data = json_body()
    require_fields(data, 'closing_balance_paise')
    SHIFT_FSM.assert_can_transition(s.status, RegisterShift.STATUS_CLOSED)
    register.close_shift(session, s, parse_int(data['closing_balance_paise'], 'closing_balance_paise', minimum=0),
                         variance_notes=data.get('variance_notes'))
    session.commit()
    return _shift_json(s, detail=True)
