"""
Ledger read queries shared by the financial reports.

READ-ONLY. Rows are returned raw; callers parse amounts at their own
boundary with ``parse_amount``.
"""

from datetime import date
from typing import Any, Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case, or_
from sqlalchemy.orm import aliased

from finance_backend.app.models.account import Account
from finance_backend.app.models.ledger_entry import LedgerEntry, LedgerLine
from finance_backend.app.models.ledger_enums import AccountType, EntryStatus, LedgerLineType


def _confirmed_in_period(date_from: date, date_to: date, unidade_id: str) -> list:
    return [
        LedgerEntry.unidade_id == unidade_id,
        LedgerEntry.competence_date >= date_from,
        LedgerEntry.competence_date <= date_to,
        LedgerEntry.status == EntryStatus.CONFIRMED,
    ]


async def fetch_account_balances(
    db: AsyncSession, date_from: date, date_to: date, unidade_id: str
) -> List[Dict[str, Any]]:
    """
    Debit, credit and final balance per active account.

    The final balance is debit minus credit for asset and expense accounts
    and credit minus debit for everything else. Only confirmed entries of
    the tenant within the period count. Ordered by account code.
    """
    lines = (
        select(LedgerLine.account_id, LedgerLine.line_type, LedgerLine.amount)
        .join(LedgerEntry, LedgerEntry.id == LedgerLine.entry_id)
        .where(*_confirmed_in_period(date_from, date_to, unidade_id))
        .subquery()
    )

    debit = func.coalesce(
        func.sum(case((lines.c.line_type == LedgerLineType.DEBIT, lines.c.amount), else_=0)), 0
    )
    credit = func.coalesce(
        func.sum(case((lines.c.line_type == LedgerLineType.CREDIT, lines.c.amount), else_=0)), 0
    )
    final = case(
        (Account.account_type.in_([AccountType.ASSET, AccountType.EXPENSE]), debit - credit),
        else_=credit - debit,
    )

    stmt = (
        select(
            Account.id.label("conta_id"),
            Account.code.label("conta_codigo"),
            Account.name.label("conta_nome"),
            Account.account_type.label("conta_tipo"),
            debit.label("saldo_debito"),
            credit.label("saldo_credito"),
            final.label("saldo_final"),
        )
        .outerjoin(lines, lines.c.account_id == Account.id)
        .where(Account.is_active == True)  # noqa: E712
        .group_by(Account.id, Account.code, Account.name, Account.account_type)
        .order_by(Account.code)
    )

    result = await db.execute(stmt)
    rows = []
    for row in result.mappings():
        item = dict(row)
        tipo = item["conta_tipo"]
        item["conta_tipo"] = tipo.value if isinstance(tipo, AccountType) else tipo
        rows.append(item)
    return rows


async def fetch_account_entries(
    db: AsyncSession, account_id: int, date_from: date, date_to: date, unidade_id: str
) -> List[Dict[str, Any]]:
    """Confirmed entries of the period touching an account on either side."""
    stmt = (
        select(LedgerEntry.id, LedgerEntry.amount, LedgerEntry.description)
        .where(
            or_(LedgerEntry.debit_account_id == account_id, LedgerEntry.credit_account_id == account_id),
            *_confirmed_in_period(date_from, date_to, unidade_id),
        )
        .order_by(LedgerEntry.competence_date, LedgerEntry.id)
    )
    result = await db.execute(stmt)
    return [dict(row) for row in result.mappings()]


async def fetch_cash_entries(
    db: AsyncSession, date_from: date, date_to: date, unidade_id: str, cash_prefix: str
) -> List[Dict[str, Any]]:
    """
    Confirmed entries of the period with a cash account on either side.

    Each row carries both account codes so the caller can tell inflows
    (cash debited) from outflows (cash credited).
    """
    debit_account = aliased(Account)
    credit_account = aliased(Account)

    stmt = (
        select(
            LedgerEntry.id,
            LedgerEntry.competence_date,
            LedgerEntry.amount,
            LedgerEntry.description,
            debit_account.code.label("debit_code"),
            credit_account.code.label("credit_code"),
        )
        .outerjoin(debit_account, debit_account.id == LedgerEntry.debit_account_id)
        .outerjoin(credit_account, credit_account.id == LedgerEntry.credit_account_id)
        .where(
            *_confirmed_in_period(date_from, date_to, unidade_id),
            or_(debit_account.code.startswith(cash_prefix), credit_account.code.startswith(cash_prefix)),
        )
        .order_by(LedgerEntry.competence_date, LedgerEntry.id)
    )
    result = await db.execute(stmt)
    return [dict(row) for row in result.mappings()]


async def fetch_period_entries(
    db: AsyncSession, date_from: date, date_to: date, unidade_id: str, confirmed_only: bool = True
) -> List[Dict[str, Any]]:
    """Entry headers of the period for the validator's row-level checks."""
    filters = [
        LedgerEntry.unidade_id == unidade_id,
        LedgerEntry.competence_date >= date_from,
        LedgerEntry.competence_date <= date_to,
    ]
    if confirmed_only:
        filters.append(LedgerEntry.status == EntryStatus.CONFIRMED)

    stmt = (
        select(
            LedgerEntry.id,
            LedgerEntry.amount,
            LedgerEntry.description,
            LedgerEntry.launch_date,
            LedgerEntry.competence_date,
            LedgerEntry.debit_account_id,
            LedgerEntry.credit_account_id,
            LedgerEntry.client_id,
        )
        .where(*filters)
        .order_by(LedgerEntry.competence_date, LedgerEntry.id)
    )
    result = await db.execute(stmt)
    return [dict(row) for row in result.mappings()]


async def fetch_line_totals(
    db: AsyncSession, date_from: date, date_to: date, unidade_id: str
) -> Dict[str, Any]:
    """Sum of debit lines and sum of credit lines of confirmed entries."""
    stmt = (
        select(LedgerLine.line_type, func.coalesce(func.sum(LedgerLine.amount), 0).label("total"))
        .join(LedgerEntry, LedgerEntry.id == LedgerLine.entry_id)
        .where(*_confirmed_in_period(date_from, date_to, unidade_id))
        .group_by(LedgerLine.line_type)
    )
    result = await db.execute(stmt)
    totals = {LedgerLineType.DEBIT.value: 0, LedgerLineType.CREDIT.value: 0}
    for line_type, total in result.all():
        key = line_type.value if isinstance(line_type, LedgerLineType) else line_type
        totals[key] = total
    return totals
