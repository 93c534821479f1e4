"""
Ledger Writer.

Writes the balanced entry for a confirmed payment, and removes it again
when the revenue record that should reference it cannot be written.
"""

import logging
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete

from finance_backend.app.core.exceptions import (
    AccountNotFound, FinancialError, InvalidPaymentData, LedgerWriteFailed,
)
from finance_backend.app.core.reliability import safe_rollback, store_call
from finance_backend.app.domain.revenue.account_resolver import ResolvedAccounts
from finance_backend.app.models.ledger_entry import LedgerEntry, LedgerLine
from finance_backend.app.models.ledger_enums import EntryStatus, LedgerLineType
from finance_backend.app.schemas.revenue import PaymentWebhookData

logger = logging.getLogger(__name__)

SYSTEM_USER = "system"


class LedgerWriter:

    @staticmethod
    async def write(
        db: AsyncSession,
        payment: PaymentWebhookData,
        amount: Decimal,
        accounts: ResolvedAccounts,
        unidade_id: str,
        client_id: Optional[int] = None,
    ) -> LedgerEntry:
        """
        Create one confirmed entry: debit cash, credit revenue, same amount.

        Both lines are committed together with the header.

        Raises:
            InvalidPaymentData: amount is not strictly positive
            AccountNotFound: debit and credit resolve to the same account
            LedgerWriteFailed: the insert failed or timed out
        """
        if amount <= 0:
            raise InvalidPaymentData(details={"payment_id": payment.id, "value": str(amount)})

        if accounts.cash_account_id == accounts.revenue_account_id:
            raise AccountNotFound(
                "Contas de débito e crédito não podem ser iguais",
                details={"account_id": accounts.cash_account_id},
            )

        entry = LedgerEntry(
            debit_account_id=accounts.cash_account_id,
            credit_account_id=accounts.revenue_account_id,
            amount=amount,
            launch_date=payment.payment_date,
            competence_date=payment.payment_date,
            document_number=f"ASAAS-{payment.id}",
            description=f"Receita automática: {payment.description}",
            unidade_id=unidade_id,
            client_id=client_id,
            status=EntryStatus.CONFIRMED,
            created_by=SYSTEM_USER,
        )
        entry.lines = [
            LedgerLine(account_id=accounts.cash_account_id, line_type=LedgerLineType.DEBIT, amount=amount),
            LedgerLine(account_id=accounts.revenue_account_id, line_type=LedgerLineType.CREDIT, amount=amount),
        ]
        db.add(entry)

        try:
            await store_call(db.commit(), LedgerWriteFailed, "Erro ao criar lançamento contábil")
        except LedgerWriteFailed:
            await safe_rollback(db)
            raise

        logger.info(
            "Ledger entry created",
            extra={"entry_id": entry.id, "payment_id": payment.id, "amount": str(amount)},
        )
        return entry

    @staticmethod
    async def compensate(db: AsyncSession, entry_id: int) -> bool:
        """
        Delete a ledger entry and its lines by id.

        Best effort: a failure is logged (the entry is now an orphan) and
        reported as False, never raised. Deleting a missing id is a no-op.
        """
        try:
            await store_call(
                db.execute(delete(LedgerLine).where(LedgerLine.entry_id == entry_id)),
                LedgerWriteFailed,
            )
            await store_call(
                db.execute(delete(LedgerEntry).where(LedgerEntry.id == entry_id)),
                LedgerWriteFailed,
            )
            await store_call(db.commit(), LedgerWriteFailed)
        except FinancialError:
            logger.error(
                "Compensation failed, orphan ledger entry left behind",
                extra={"entry_id": entry_id},
                exc_info=True,
            )
            await safe_rollback(db)
            return False

        logger.warning("Ledger entry rolled back", extra={"entry_id": entry_id})
        return True
