"""
Revenue Recorder.

Duplicate guard, client lookup and the receitas_automaticas insert.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select

from finance_backend.app.core.exceptions import DuplicateRevenue, RevenueWriteFailed, StoreUnavailable
from finance_backend.app.core.reliability import safe_rollback, store_call
from finance_backend.app.models.automatic_revenue import AutomaticRevenue
from finance_backend.app.models.client import Client
from finance_backend.app.models.ledger_enums import RevenueStatus
from finance_backend.app.schemas.revenue import PaymentWebhookData

logger = logging.getLogger(__name__)


class RevenueRecorder:

    @staticmethod
    async def is_processed(db: AsyncSession, payment_id: str) -> bool:
        """
        Whether a revenue record already exists for this payment.

        Raises:
            StoreUnavailable: the lookup failed or timed out
        """
        stmt = select(AutomaticRevenue.id).where(AutomaticRevenue.payment_id == payment_id).limit(1)
        result = await store_call(db.execute(stmt), StoreUnavailable, "Erro ao verificar receita existente")
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def find_client_id(db: AsyncSession, customer_id: str) -> Optional[int]:
        """Internal client linked to a provider customer id, if any."""
        stmt = select(Client.id).where(Client.asaas_customer_id == customer_id).limit(1)
        result = await store_call(db.execute(stmt), StoreUnavailable, "Erro ao buscar cliente")
        return result.scalar_one_or_none()

    @staticmethod
    async def record(
        db: AsyncSession,
        payment: PaymentWebhookData,
        amount: Decimal,
        ledger_entry_id: int,
        unidade_id: str,
        webhook_data: Optional[Dict[str, Any]] = None,
    ) -> AutomaticRevenue:
        """
        Insert the revenue row for a written ledger entry.

        A unique violation on payment_id means a concurrent delivery of the
        same payment won the race; that surfaces as DuplicateRevenue.

        Raises:
            DuplicateRevenue: payment_id was inserted concurrently
            RevenueWriteFailed: the insert failed or timed out
        """
        revenue = AutomaticRevenue(
            payment_id=payment.id,
            customer_id=payment.customer,
            subscription_id=payment.subscription,
            value=amount,
            description=payment.description,
            billing_type=payment.billing_type,
            invoice_url=payment.invoice_url,
            transaction_receipt_url=payment.transaction_receipt_url,
            ledger_entry_id=ledger_entry_id,
            unidade_id=unidade_id,
            status=RevenueStatus.PROCESSED,
            webhook_data=webhook_data,
        )
        db.add(revenue)

        try:
            await store_call(db.commit(), RevenueWriteFailed, "Erro ao criar registro de receita")
        except RevenueWriteFailed as e:
            await safe_rollback(db)
            if isinstance(e.__cause__, IntegrityError):
                try:
                    duplicate = await RevenueRecorder.is_processed(db, payment.id)
                except StoreUnavailable:
                    logger.warning("Duplicate re-check failed", extra={"payment_id": payment.id})
                    duplicate = False
                if duplicate:
                    raise DuplicateRevenue(details={"payment_id": payment.id}) from e
            raise

        return revenue
