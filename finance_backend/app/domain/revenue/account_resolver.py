"""
Account Resolver.

Resolves the two legs of an automatic revenue entry from the chart of
accounts: the service revenue account and the cash account.
"""

import logging
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import AccountNotFound, StoreUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.models.account import Account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAccounts:
    revenue_account_id: int
    cash_account_id: int


class AccountResolver:

    @staticmethod
    async def find_active_account_id(db: AsyncSession, code: str):
        """Id of the active account with this code, or None."""
        stmt = select(Account.id).where(Account.code == code, Account.is_active == True)  # noqa: E712
        result = await store_call(db.execute(stmt), StoreUnavailable, "Erro ao buscar conta contábil")
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve(db: AsyncSession) -> ResolvedAccounts:
        """
        Resolve revenue (credit) and cash (debit) accounts.

        Raises:
            AccountNotFound: either account is missing or inactive
            StoreUnavailable: the lookup failed or timed out
        """
        revenue_id = await AccountResolver.find_active_account_id(db, settings.revenue_account_code)
        if revenue_id is None:
            logger.error("Revenue account missing", extra={"code": settings.revenue_account_code})
            raise AccountNotFound(
                "Conta contábil padrão não encontrada",
                details={"code": settings.revenue_account_code},
            )

        cash_id = await AccountResolver.find_active_account_id(db, settings.cash_account_code)
        if cash_id is None:
            logger.error("Cash account missing", extra={"code": settings.cash_account_code})
            raise AccountNotFound(
                "Conta contábil de caixa não encontrada",
                details={"code": settings.cash_account_code},
            )

        return ResolvedAccounts(revenue_account_id=revenue_id, cash_account_id=cash_id)
