"""
Revenue Service (Domain Logic).

Turns a confirmed provider payment into a ledger entry plus an automatic
revenue record, and answers read queries over those records.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import (
    DuplicateRevenue, FinancialError, StoreUnavailable,
)
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import ZERO, cents_to_decimal, parse_amount
from finance_backend.app.domain.revenue.account_resolver import AccountResolver
from finance_backend.app.domain.revenue.ledger_writer import LedgerWriter
from finance_backend.app.domain.revenue.revenue_recorder import RevenueRecorder
from finance_backend.app.models.automatic_revenue import AutomaticRevenue
from finance_backend.app.models.ledger_enums import RevenueStatus
from finance_backend.app.schemas.revenue import (
    AutomaticRevenueResponse, PaymentWebhookData, RevenueListResponse,
    RevenueProcessingResult, RevenueStatsResponse,
)
from finance_backend.app.services.audit import AuditAction, SYSTEM_ACTOR, try_log_event
from finance_backend.app.services.cache import FINANCIAL_REPORT_ROUTES, ReportCache

logger = logging.getLogger(__name__)


class RevenueService:

    @staticmethod
    async def process_payment(
        db: AsyncSession,
        payment: PaymentWebhookData,
        unidade_id: Optional[str] = None,
        webhook_id: Optional[str] = None,
        webhook_data: Optional[Dict[str, Any]] = None,
        cache: Optional[ReportCache] = None,
    ) -> RevenueProcessingResult:
        """
        Process one confirmed payment.

        Flow:
        1. Duplicate check (payment id already has a revenue record?)
        2. Resolve revenue and cash accounts
        3. Look up the internal client (optional link)
        4. Write the ledger entry (debit cash, credit revenue)
        5. Record the automatic revenue; on failure delete the entry from 4
        6. Audit event and report cache invalidation

        Never raises: every failure comes back as a result carrying the
        error kind and whether it is retryable. No retries happen here.
        """
        unidade_id = unidade_id or settings.default_unidade_id

        try:
            revenue = await RevenueService._apply_payment(db, payment, unidade_id, webhook_data)
        except FinancialError as e:
            return await RevenueService._fail(db, payment, e, webhook_id)
        except Exception:
            logger.exception("Unexpected error processing payment", extra={"payment_id": payment.id})
            return await RevenueService._fail(
                db, payment, FinancialError("Erro inesperado ao processar receita"), webhook_id
            )

        data = AutomaticRevenueResponse.model_validate(revenue)

        await try_log_event(
            db,
            AuditAction.FINANCIAL_REVENUE_CREATED,
            actor_id=SYSTEM_ACTOR,
            actor_username=SYSTEM_ACTOR,
            resource="receitas_automaticas",
            session_id=webhook_id,
            metadata={
                "payment_id": payment.id,
                "revenue_id": data.id,
                "ledger_entry_id": data.ledger_entry_id,
                "value": str(data.value),
                "unidade_id": unidade_id,
            },
        )
        await (cache or ReportCache()).invalidate(FINANCIAL_REPORT_ROUTES)

        logger.info(
            "Automatic revenue processed",
            extra={"payment_id": payment.id, "revenue_id": data.id, "value": str(data.value)},
        )
        return RevenueProcessingResult(success=True, data=data)

    @staticmethod
    async def _apply_payment(
        db: AsyncSession,
        payment: PaymentWebhookData,
        unidade_id: str,
        webhook_data: Optional[Dict[str, Any]],
    ) -> AutomaticRevenue:
        if await RevenueRecorder.is_processed(db, payment.id):
            raise DuplicateRevenue(details={"payment_id": payment.id})

        accounts = await AccountResolver.resolve(db)
        client_id = await RevenueRecorder.find_client_id(db, payment.customer)
        amount = cents_to_decimal(payment.value)

        entry = await LedgerWriter.write(db, payment, amount, accounts, unidade_id, client_id)
        entry_id = entry.id

        try:
            return await RevenueRecorder.record(db, payment, amount, entry_id, unidade_id, webhook_data)
        except Exception:
            await LedgerWriter.compensate(db, entry_id)
            raise

    @staticmethod
    async def _fail(
        db: AsyncSession,
        payment: PaymentWebhookData,
        error: FinancialError,
        webhook_id: Optional[str],
    ) -> RevenueProcessingResult:
        log_data = {"payment_id": payment.id, "error_kind": error.kind, "retryable": error.retryable}
        if isinstance(error, DuplicateRevenue):
            logger.info("Payment already processed", extra=log_data)
        else:
            logger.error("Revenue processing failed: %s", error.message, extra=log_data)

        await try_log_event(
            db,
            AuditAction.FINANCIAL_REVENUE_PROCESSING_ERROR,
            actor_id=SYSTEM_ACTOR,
            actor_username=SYSTEM_ACTOR,
            resource="receitas_automaticas",
            session_id=webhook_id,
            metadata={"payment_id": payment.id, "error_kind": error.kind, "error": error.message},
        )
        return RevenueProcessingResult(
            success=False,
            error=error.message,
            error_kind=error.kind,
            retryable=error.retryable,
        )

    @staticmethod
    async def list_revenues(
        db: AsyncSession,
        unidade_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        status: Optional[RevenueStatus] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> RevenueListResponse:
        """List automatic revenues, newest first, with the total match count."""
        unidade_id = unidade_id or settings.default_unidade_id

        filters = [AutomaticRevenue.unidade_id == unidade_id]
        if payment_id:
            filters.append(AutomaticRevenue.payment_id == payment_id)
        if customer_id:
            filters.append(AutomaticRevenue.customer_id == customer_id)
        if status:
            filters.append(AutomaticRevenue.status == status)
        if created_from:
            filters.append(AutomaticRevenue.created_at >= created_from)
        if created_to:
            filters.append(AutomaticRevenue.created_at <= created_to)

        count_stmt = select(func.count(AutomaticRevenue.id)).where(*filters)
        total = (await store_call(db.execute(count_stmt), StoreUnavailable, "Erro ao buscar receitas")).scalar() or 0

        stmt = (
            select(AutomaticRevenue)
            .where(*filters)
            .order_by(AutomaticRevenue.created_at.desc(), AutomaticRevenue.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await store_call(db.execute(stmt), StoreUnavailable, "Erro ao buscar receitas")

        return RevenueListResponse(
            items=[AutomaticRevenueResponse.model_validate(r) for r in result.scalars().all()],
            total=total,
            page=page,
            page_size=page_size,
        )

    @staticmethod
    async def get_stats(db: AsyncSession, unidade_id: Optional[str] = None) -> RevenueStatsResponse:
        """Counts and processed value for one tenant."""
        unidade_id = unidade_id or settings.default_unidade_id
        base = AutomaticRevenue.unidade_id == unidade_id

        status_stmt = (
            select(AutomaticRevenue.status, func.count(AutomaticRevenue.id))
            .where(base)
            .group_by(AutomaticRevenue.status)
        )
        status_rows = (await store_call(db.execute(status_stmt), StoreUnavailable, "Erro ao buscar status")).all()
        by_status = {status.value: count for status, count in status_rows}

        value_stmt = select(func.sum(AutomaticRevenue.value)).where(
            base, AutomaticRevenue.status == RevenueStatus.PROCESSED
        )
        total_value = parse_amount(
            (await store_call(db.execute(value_stmt), StoreUnavailable, "Erro ao calcular valor total")).scalar()
        )

        since = datetime.now(timezone.utc) - timedelta(days=30)
        recent_stmt = select(func.count(AutomaticRevenue.id)).where(base, AutomaticRevenue.created_at >= since)
        recent = (await store_call(db.execute(recent_stmt), StoreUnavailable, "Erro ao contar receitas recentes")).scalar()

        return RevenueStatsResponse(
            unidade_id=unidade_id,
            total_count=sum(by_status.values()),
            total_value=total_value or ZERO,
            by_status=by_status,
            last_30_days_count=recent or 0,
            generated_at=datetime.now(timezone.utc),
        )
