from __future__ import annotations
from datetime import date

from flask import Blueprint, request, abort, make_response
from sqlalchemy import select, func, case

from luminila import get_db
from luminila.decorators.activity import activity_log
from luminila.decorators.auth import require_permission
from luminila.models.banking import BankAccount, BankTransaction, Expense
from luminila.models.vendor import Vendor
from luminila.services.activity import add_activity
from luminila.services.banking import get_active_account, record_transaction, record_transfer
from luminila.services.csv_import import write_csv
from luminila.services.policy import current_user_id
from luminila.utils.filters import apply_filters
from luminila.utils.listing import list_response, entity_response, check_if_match
from luminila.utils.sorting import apply_multi_sort
from luminila.utils.validation import json_body, require_fields, parse_int, parse_date, validate_status

bank_bp = Blueprint('banking', __name__)

ACCOUNT_FIELDS = ('account_name', 'account_number', 'bank_name', 'ifsc_code', 'currency')
EXPENSE_PAYMENT_METHODS = ('cash', 'card', 'upi', 'bank_transfer', 'cheque')
TRANSACTION_COLUMNS = ['id', 'transaction_date', 'type', 'amount_paise', 'balance_after_paise',
                       'description', 'reference_number', 'related_entity_type', 'related_entity_id']


def _account_json(a: BankAccount):
    out = {k: getattr(a, k) for k in ACCOUNT_FIELDS}
    out.update({
        'id': a.id,
        'opening_balance_paise': a.opening_balance_paise,
        'current_balance_paise': a.current_balance_paise,
        'allow_overdraft': bool(a.allow_overdraft),
        'is_active': bool(a.is_active),
    })
    return out


def _transaction_json(t: BankTransaction):
    return {
        'id': t.id,
        'account_id': t.account_id,
        'transaction_date': t.transaction_date.isoformat() if t.transaction_date else None,
        'type': t.type,
        'amount_paise': t.amount_paise,
        'balance_after_paise': t.balance_after_paise,
        'description': t.description,
        'reference_number': t.reference_number,
        'related_entity_type': t.related_entity_type,
        'related_entity_id': t.related_entity_id,
        'created_at': t.created_at.isoformat() if t.created_at else None,
    }


def _expense_json(e: Expense):
    return {
        'id': e.id,
        'expense_date': e.expense_date.isoformat() if e.expense_date else None,
        'category': e.category,
        'description': e.description,
        'amount_paise': e.amount_paise,
        'payment_method': e.payment_method,
        'bank_account_id': e.bank_account_id,
        'bank_transaction_id': e.bank_transaction_id,
        'vendor_id': e.vendor_id,
        'is_active': bool(e.is_active),
    }


def _get_account(session, account_id: int) -> BankAccount:
    a = session.get(BankAccount, account_id)
    if not a:
        abort(404, description='Bank account not found')
    return a


def _prefetch_account(account_id: int):
    a = get_db().get(BankAccount, account_id)
    return {'account_name': a.account_name, 'is_active': a.is_active} if a else {}


# --- Accounts ---

@bank_bp.get('/accounts')
@require_permission('reports', 'read')
def list_accounts():
    session = get_db()
    q = session.query(BankAccount)
    if 'is_active' not in request.args:
        q = q.filter(BankAccount.is_active.is_(True))
    specs = {
        'is_active': {'coerce': 'bool', 'op': lambda qu, v: qu.filter(BankAccount.is_active.is_(v))},
        'bank_name': {'op': lambda qu, v: qu.filter(BankAccount.bank_name.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'account_name': BankAccount.account_name, 'current_balance_paise': BankAccount.current_balance_paise,
               'id': BankAccount.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, BankAccount.id)
    return list_response(q, _account_json)


@bank_bp.get('/accounts/<int:account_id>')
@require_permission('reports', 'read')
def get_account(account_id: int):
    a = _get_account(get_db(), account_id)
    return entity_response(a.id, _account_json(a), a.updated_at)


@bank_bp.post('/accounts')
@require_permission('settings', 'create')
@activity_log('BANK.ACCOUNT.CREATE', entity='BankAccount', entity_id_key='id',
              meta_keys=['account_name', 'opening_balance_paise'])
def create_account():
    session = get_db()
    data = json_body()
    require_fields(data, 'account_name')
    opening = parse_int(data.get('opening_balance_paise'), 'opening_balance_paise', default=0)
    allow_overdraft = bool(data.get('allow_overdraft', False))
    if opening < 0 and not allow_overdraft:
        abort(400, description='opening_balance_paise must be >= 0')
    a = BankAccount(
        account_name=data['account_name'],
        account_number=data.get('account_number'),
        bank_name=data.get('bank_name'),
        ifsc_code=data.get('ifsc_code'),
        currency=data.get('currency') or 'INR',
        opening_balance_paise=opening,
        current_balance_paise=opening,
        allow_overdraft=allow_overdraft,
        is_active=True,
    )
    session.add(a)
    session.commit()
    return _account_json(a), 201


@bank_bp.patch('/accounts/<int:account_id>')
@require_permission('settings', 'update')
@activity_log('BANK.ACCOUNT.UPDATE', entity='BankAccount', entity_id_key='id', diff_keys=['account_name'],
              pre_fetch=lambda a, kw: _prefetch_account(kw.get('account_id')))
def update_account(account_id: int):
    session = get_db()
    a = _get_account(session, account_id)
    check_if_match(a.id, a.updated_at)
    data = json_body()
    if 'current_balance_paise' in data or 'opening_balance_paise' in data:
        abort(400, description='balances change through transactions only')
    for key in ACCOUNT_FIELDS:
        if key in data:
            setattr(a, key, data[key])
    if 'allow_overdraft' in data:
        if not data['allow_overdraft'] and a.current_balance_paise < 0:
            abort(400, description='account is overdrawn')
        a.allow_overdraft = bool(data['allow_overdraft'])
    if not a.account_name:
        abort(400, description='account_name cannot be empty')
    session.commit()
    return _account_json(a)


@bank_bp.delete('/accounts/<int:account_id>')
@require_permission('settings', 'delete')
@activity_log('BANK.ACCOUNT.DEACTIVATE', entity='BankAccount', entity_id_key='id')
def delete_account(account_id: int):
    session = get_db()
    a = _get_account(session, account_id)
    a.is_active = False
    session.commit()
    return {'id': a.id, 'is_active': False}


# --- Transactions ---

@bank_bp.get('/accounts/<int:account_id>/transactions')
@require_permission('reports', 'read')
def list_transactions(account_id: int):
    session = get_db()
    _get_account(session, account_id)
    q = session.query(BankTransaction).filter(BankTransaction.account_id == account_id)
    specs = {
        'type': {'op': lambda qu, v: qu.filter(BankTransaction.type == v), 'validate': lambda v: v in BankTransaction.ALL_TYPES},
        'date_from': {'coerce': lambda v: parse_date(v, 'date_from'), 'op': lambda qu, v: qu.filter(BankTransaction.transaction_date >= v)},
        'date_to': {'coerce': lambda v: parse_date(v, 'date_to'), 'op': lambda qu, v: qu.filter(BankTransaction.transaction_date <= v)},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'transaction_date': BankTransaction.transaction_date, 'amount_paise': BankTransaction.amount_paise,
               'id': BankTransaction.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, BankTransaction.id, default='-transaction_date')
    return list_response(q, _transaction_json, ts_attr='created_at')


@bank_bp.post('/accounts/<int:account_id>/transactions')
@require_permission('settings', 'update')
@activity_log('BANK.TX.CREATE', entity='BankTransaction', entity_id_key='id',
              meta_keys=['account_id', 'type', 'amount_paise', 'balance_after_paise'])
def create_transaction(account_id: int):
    """Deposit or withdrawal; 409 when a withdrawal would overdraw the account."""
    session = get_db()
    data = json_body()
    require_fields(data, 'type', 'amount_paise')
    tx = record_transaction(
        session, account_id, data['type'], parse_int(data['amount_paise'], 'amount_paise', minimum=1),
        transaction_date=parse_date(data.get('transaction_date'), 'transaction_date', default=date.today()),
        description=data.get('description'), reference_number=data.get('reference_number'),
        user_id=current_user_id(),
    )
    session.commit()
    return _transaction_json(tx), 201


@bank_bp.post('/transfers')
@require_permission('settings', 'update')
@activity_log('BANK.TRANSFER', entity='BankAccount', entity_id_key='from_account_id',
              meta_keys=['to_account_id', 'amount_paise'])
def create_transfer():
    session = get_db()
    data = json_body()
    require_fields(data, 'from_account_id', 'to_account_id', 'amount_paise')
    amount = parse_int(data['amount_paise'], 'amount_paise', minimum=1)
    out_tx, in_tx = record_transfer(
        session, parse_int(data['from_account_id'], 'from_account_id'),
        parse_int(data['to_account_id'], 'to_account_id'), amount,
        transaction_date=parse_date(data.get('transaction_date'), 'transaction_date', default=date.today()),
        description=data.get('description'), user_id=current_user_id(),
    )
    session.commit()
    return {
        'from_account_id': out_tx.account_id,
        'to_account_id': in_tx.account_id,
        'amount_paise': amount,
        'transactions': [_transaction_json(out_tx), _transaction_json(in_tx)],
    }, 201


@bank_bp.get('/transactions/export')
@require_permission('reports', 'export')
def export_transactions():
    session = get_db()
    q = select(BankTransaction).order_by(BankTransaction.transaction_date, BankTransaction.id)
    if request.args.get('account_id'):
        q = q.where(BankTransaction.account_id == parse_int(request.args['account_id'], 'account_id'))
    rows = [_transaction_json(t) for t in session.execute(q).scalars()]
    add_activity('BANK.TX.EXPORT', 'BankTransaction', None, meta={'rows': len(rows)})
    session.commit()
    resp = make_response(write_csv(rows, TRANSACTION_COLUMNS))
    resp.headers['Content-Type'] = 'text/csv; charset=utf-8'
    resp.headers['Content-Disposition'] = 'attachment; filename=bank_transactions.csv'
    return resp


@bank_bp.get('/stats')
@require_permission('reports', 'read')
def banking_stats():
    """Balances of active accounts plus inflow/outflow in an optional date window."""
    session = get_db()
    accounts = session.execute(select(BankAccount).where(BankAccount.is_active.is_(True))).scalars().all()
    q = select(
        BankTransaction.account_id,
        func.coalesce(func.sum(case((BankTransaction.amount_paise > 0, BankTransaction.amount_paise), else_=0)), 0),
        func.coalesce(func.sum(case((BankTransaction.amount_paise < 0, -BankTransaction.amount_paise), else_=0)), 0),
        func.count(BankTransaction.id),
    ).group_by(BankTransaction.account_id)
    if request.args.get('date_from'):
        q = q.where(BankTransaction.transaction_date >= parse_date(request.args['date_from'], 'date_from'))
    if request.args.get('date_to'):
        q = q.where(BankTransaction.transaction_date <= parse_date(request.args['date_to'], 'date_to'))
    flows = {acct_id: (int(inflow), int(outflow), int(n)) for acct_id, inflow, outflow, n in session.execute(q)}
    per_account = []
    for a in accounts:
        inflow, outflow, n = flows.get(a.id, (0, 0, 0))
        per_account.append({'id': a.id, 'account_name': a.account_name, 'current_balance_paise': a.current_balance_paise,
                            'inflow_paise': inflow, 'outflow_paise': outflow, 'transactions': n})
    return {
        'accounts': len(accounts),
        'total_balance_paise': sum(a.current_balance_paise for a in accounts),
        'inflow_paise': sum(r['inflow_paise'] for r in per_account),
        'outflow_paise': sum(r['outflow_paise'] for r in per_account),
        'per_account': per_account,
    }


# --- Expenses ---

@bank_bp.get('/expenses')
@require_permission('reports', 'read')
def list_expenses():
    session = get_db()
    q = session.query(Expense)
    if 'is_active' not in request.args:
        q = q.filter(Expense.is_active.is_(True))
    specs = {
        'is_active': {'coerce': 'bool', 'op': lambda qu, v: qu.filter(Expense.is_active.is_(v))},
        'category': {'op': lambda qu, v: qu.filter(Expense.category == v)},
        'vendor_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Expense.vendor_id == v)},
        'date_from': {'coerce': lambda v: parse_date(v, 'date_from'), 'op': lambda qu, v: qu.filter(Expense.expense_date >= v)},
        'date_to': {'coerce': lambda v: parse_date(v, 'date_to'), 'op': lambda qu, v: qu.filter(Expense.expense_date <= v)},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'expense_date': Expense.expense_date, 'amount_paise': Expense.amount_paise,
               'category': Expense.category, 'id': Expense.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Expense.id, default='-expense_date')
    return list_response(q, _expense_json)


@bank_bp.get('/expenses/summary')
@require_permission('reports', 'read')
def expense_summary():
    session = get_db()
    q = select(Expense.category, func.sum(Expense.amount_paise), func.count(Expense.id)) \
        .where(Expense.is_active.is_(True)).group_by(Expense.category).order_by(Expense.category)
    if request.args.get('date_from'):
        q = q.where(Expense.expense_date >= parse_date(request.args['date_from'], 'date_from'))
    if request.args.get('date_to'):
        q = q.where(Expense.expense_date <= parse_date(request.args['date_to'], 'date_to'))
    by_category = [{'category': c, 'amount_paise': int(total or 0), 'count': n} for c, total, n in session.execute(q)]
    return {'total_paise': sum(r['amount_paise'] for r in by_category), 'by_category': by_category}


@bank_bp.post('/expenses')
@require_permission('settings', 'create')
@activity_log('EXPENSE.CREATE', entity='Expense', entity_id_key='id', meta_keys=['category', 'amount_paise'])
def create_expense():
    """Record an expense; paying from a bank account withdraws from it (409 if short)."""
    session = get_db()
    data = json_body()
    require_fields(data, 'category', 'amount_paise')
    amount = parse_int(data['amount_paise'], 'amount_paise', minimum=1)
    expense_date = parse_date(data.get('expense_date'), 'expense_date', default=date.today())
    payment_method = validate_status(data.get('payment_method') or 'cash', EXPENSE_PAYMENT_METHODS, 'payment_method')
    vendor_id = None
    if data.get('vendor_id') not in (None, ''):
        vendor_id = parse_int(data['vendor_id'], 'vendor_id')
        if not session.get(Vendor, vendor_id):
            abort(400, description='vendor not found')
    e = Expense(expense_date=expense_date, category=data['category'], description=data.get('description'),
                amount_paise=amount, payment_method=payment_method, vendor_id=vendor_id,
                is_active=True, created_by=current_user_id())
    session.add(e)
    session.flush()
    if data.get('bank_account_id') not in (None, ''):
        account = get_active_account(session, parse_int(data['bank_account_id'], 'bank_account_id'))
        tx = record_transaction(session, account.id, BankTransaction.TYPE_WITHDRAWAL, amount,
                                transaction_date=expense_date,
                                description=f'Expense: {data["category"]}', related_entity_type='expense',
                                related_entity_id=e.id, user_id=current_user_id())
        e.bank_account_id = account.id
        e.bank_transaction_id = tx.id
    session.commit()
    return _expense_json(e), 201


@bank_bp.patch('/expenses/<int:expense_id>')
@require_permission('settings', 'update')
@activity_log('EXPENSE.UPDATE', entity='Expense', entity_id_key='id')
def update_expense(expense_id: int):
    session = get_db()
    e = session.get(Expense, expense_id)
    if not e:
        abort(404, description='Expense not found')
    check_if_match(e.id, e.updated_at)
    data = json_body()
    if 'amount_paise' in data:
        if e.bank_transaction_id:
            abort(400, description='amount of a bank-paid expense cannot change; delete and re-enter it')
        e.amount_paise = parse_int(data['amount_paise'], 'amount_paise', minimum=1)
    for key in ('category', 'description'):
        if key in data:
            setattr(e, key, data[key])
    if 'expense_date' in data:
        e.expense_date = parse_date(data['expense_date'], 'expense_date')
    if not e.category:
        abort(400, description='category cannot be empty')
    session.commit()
    return _expense_json(e)


@bank_bp.delete('/expenses/<int:expense_id>')
@require_permission('settings', 'delete')
@activity_log('EXPENSE.DELETE', entity='Expense', entity_id_key='id', meta_keys=['refunded_paise'])
def delete_expense(expense_id: int):
    """Soft delete; a bank-paid expense is credited back to its account."""
    session = get_db()
    e = session.get(Expense, expense_id)
    if not e or not e.is_active:
        abort(404, description='Expense not found')
    refunded = 0
    if e.bank_transaction_id and e.bank_account_id:
        record_transaction(session, e.bank_account_id, BankTransaction.TYPE_DEPOSIT, e.amount_paise,
                           description=f'Reversal of expense {e.id}', related_entity_type='expense',
                           related_entity_id=e.id, user_id=current_user_id())
        refunded = e.amount_paise
    e.is_active = False
    session.commit()
    return {'id': e.id, 'is_active': False, 'refunded_paise': refunded}
