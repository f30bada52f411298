"""Bank ledger writes.

BankTransaction.amount_paise is the signed change to the account balance
(deposits positive, withdrawals negative, transfers one row per side).
Balances move through the guarded increment in services.atomic, so an account
without overdraft can never go below zero even under concurrent writes.
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Optional

from flask import abort

from luminila.models.banking import BankAccount, BankTransaction
from luminila.services.atomic import increment_or_conflict

logger = logging.getLogger(__name__)


def get_active_account(session, account_id: int) -> BankAccount:
    acct = session.get(BankAccount, account_id)
    if acct is None or not acct.is_active:
        abort(404, description='Bank account not found')
    return acct


def _move(session, acct: BankAccount, delta: int) -> BankAccount:
    floor = None if acct.allow_overdraft else 0
    return increment_or_conflict(session, BankAccount, acct.id, 'current_balance_paise', delta,
                                 floor=floor, message='Insufficient account balance')


def record_transaction(session, account_id: int, kind: str, amount_paise: int,
                       transaction_date: Optional[date] = None, description: Optional[str] = None,
                       reference_number: Optional[str] = None, related_entity_type: Optional[str] = None,
                       related_entity_id=None, user_id: Optional[int] = None) -> BankTransaction:
    """Deposit or withdraw amount_paise (> 0) and append the ledger row."""
    if kind not in (BankTransaction.TYPE_DEPOSIT, BankTransaction.TYPE_WITHDRAWAL):
        abort(400, description='type invalid')
    if amount_paise <= 0:
        abort(400, description='amount_paise must be > 0')
    acct = get_active_account(session, account_id)
    delta = amount_paise if kind == BankTransaction.TYPE_DEPOSIT else -amount_paise
    acct = _move(session, acct, delta)
    tx = BankTransaction(
        account_id=acct.id,
        transaction_date=transaction_date or date.today(),
        type=kind,
        amount_paise=delta,
        balance_after_paise=acct.current_balance_paise,
        description=description,
        reference_number=reference_number,
        related_entity_type=related_entity_type,
        related_entity_id=str(related_entity_id) if related_entity_id is not None else None,
        created_by=user_id,
    )
    session.add(tx)
    session.flush()
    return tx


def record_transfer(session, from_account_id: int, to_account_id: int, amount_paise: int,
                    transaction_date: Optional[date] = None, description: Optional[str] = None,
                    user_id: Optional[int] = None):
    if from_account_id == to_account_id:
        abort(400, description='cannot transfer to the same account')
    if amount_paise <= 0:
        abort(400, description='amount_paise must be > 0')
    source = get_active_account(session, from_account_id)
    target = get_active_account(session, to_account_id)
    source = _move(session, source, -amount_paise)
    target = _move(session, target, amount_paise)
    day = transaction_date or date.today()
    out_tx = BankTransaction(
        account_id=source.id, transaction_date=day, type=BankTransaction.TYPE_TRANSFER,
        amount_paise=-amount_paise, balance_after_paise=source.current_balance_paise,
        description=description or f'Transfer to {target.account_name}',
        related_entity_type='bank_account', related_entity_id=str(target.id), created_by=user_id,
    )
    in_tx = BankTransaction(
        account_id=target.id, transaction_date=day, type=BankTransaction.TYPE_TRANSFER,
        amount_paise=amount_paise, balance_after_paise=target.current_balance_paise,
        description=description or f'Transfer from {source.account_name}',
        related_entity_type='bank_account', related_entity_id=str(source.id), created_by=user_id,
    )
    session.add_all([out_tx, in_tx])
    session.flush()
    logger.info('transfer %s paise from account %s to %s', amount_paise, source.id, target.id)
    return out_tx, in_tx
