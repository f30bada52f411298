from __future__ import annotations
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, ForeignKey, DateTime, Date, Text, func
from typing import Optional

from .authz import Base


class BankAccount(Base):
    __tablename__ = 'bank_accounts'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_name: Mapped[str] = mapped_column(String(120), nullable=False)
    account_number: Mapped[Optional[str]] = mapped_column(String(34))
    bank_name: Mapped[Optional[str]] = mapped_column(String(120))
    ifsc_code: Mapped[Optional[str]] = mapped_column(String(11))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default='INR')
    opening_balance_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_balance_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allow_overdraft: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class BankTransaction(Base):
    __tablename__ = 'bank_transactions'
    TYPE_DEPOSIT = 'deposit'
    TYPE_WITHDRAWAL = 'withdrawal'
    TYPE_TRANSFER = 'transfer'
    ALL_TYPES = (TYPE_DEPOSIT, TYPE_WITHDRAWAL, TYPE_TRANSFER)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey('bank_accounts.id'), nullable=False, index=True)
    transaction_date: Mapped[str] = mapped_column(Date, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after_paise: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[Optional[str]] = mapped_column(Text)
    reference_number: Mapped[Optional[str]] = mapped_column(String(64))
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(32))
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(64))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Expense(Base):
    __tablename__ = 'expenses'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expense_date: Mapped[str] = mapped_column(Date, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    amount_paise: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default='cash')
    bank_account_id: Mapped[Optional[int]] = mapped_column(ForeignKey('bank_accounts.id', ondelete='SET NULL'))
    bank_transaction_id: Mapped[Optional[int]] = mapped_column(ForeignKey('bank_transactions.id', ondelete='SET NULL'))
    vendor_id: Mapped[Optional[int]] = mapped_column(ForeignKey('vendors.id', ondelete='SET NULL'))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


__all__ = ['BankAccount', 'BankTransaction', 'Expense']
