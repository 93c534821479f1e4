"""
Dead Letter Queue handling for revenue processing.

Webhook deliveries whose processing failed with a retryable error, or one
that needs an operator (missing accounts), are parked with their payload
and can be re-run from the admin endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import (
    AccountNotFound, AppException, DuplicateRevenue, ResourceNotFoundError,
)
from finance_backend.app.domain.revenue.revenue_service import RevenueService
from finance_backend.app.models.dlq import DeadLetterQueue, DLQStatus
from finance_backend.app.schemas.revenue import AsaasWebhookEvent, RevenueProcessingResult
from finance_backend.app.services.cache import ReportCache

logger = logging.getLogger(__name__)

TASK_NAME = "process_automatic_revenue"


def should_park(result: RevenueProcessingResult) -> bool:
    """Failures worth keeping for a later retry."""
    if result.success:
        return False
    return bool(result.retryable) or result.error_kind == AccountNotFound.kind


class DeadLetterService:

    @staticmethod
    async def park(
        db: AsyncSession,
        event: AsaasWebhookEvent,
        unidade_id: str,
        result: RevenueProcessingResult,
    ) -> DeadLetterQueue:
        """Store a failed delivery with everything needed to re-run it."""
        item = DeadLetterQueue(
            task_name=TASK_NAME,
            error_message=result.error or "",
            error_kind=result.error_kind,
            payload={
                "event": event.model_dump(mode="json", by_alias=True),
                "unidade_id": unidade_id,
            },
            status=DLQStatus.FAILED,
        )
        db.add(item)
        await db.commit()
        await db.refresh(item)

        logger.warning(
            "Revenue processing parked in DLQ",
            extra={"dlq_id": item.id, "payment_id": event.payment.id, "error_kind": result.error_kind},
        )
        return item

    @staticmethod
    async def list_items(
        db: AsyncSession,
        status: Optional[DLQStatus] = None,
        limit: int = 100,
    ) -> List[DeadLetterQueue]:
        query = select(DeadLetterQueue).order_by(DeadLetterQueue.created_at.desc(), DeadLetterQueue.id.desc())
        if status:
            query = query.where(DeadLetterQueue.status == status)
        result = await db.execute(query.limit(limit))
        return result.scalars().all()

    @staticmethod
    async def retry(
        db: AsyncSession,
        dlq_id: int,
        cache: Optional[ReportCache] = None,
    ) -> RevenueProcessingResult:
        """
        Re-run the pipeline for a parked delivery.

        A success, or a duplicate (someone else already applied it), closes
        the item. Otherwise the retry count grows and the item is archived
        once it reaches the configured maximum.
        """
        item = await db.get(DeadLetterQueue, dlq_id)
        if not item:
            raise ResourceNotFoundError("DLQ item", dlq_id)

        if item.task_name != TASK_NAME:
            raise AppException(
                message=f"Unsupported task {item.task_name}",
                error_code="ERR_DLQ_TASK",
                status_code=400,
            )

        if item.status in (DLQStatus.PROCESSED, DLQStatus.ARCHIVED):
            raise AppException(
                message=f"DLQ item {dlq_id} is {item.status.value}",
                error_code="ERR_DLQ_CLOSED",
                status_code=409,
            )

        item.status = DLQStatus.RETRYING
        item.last_retry_at = datetime.now(timezone.utc)
        await db.commit()

        event = AsaasWebhookEvent.model_validate(item.payload["event"])
        result = await RevenueService.process_payment(
            db,
            event.payment,
            unidade_id=item.payload.get("unidade_id"),
            webhook_id=event.id,
            webhook_data=item.payload["event"],
            cache=cache,
        )

        # The pipeline may have rolled the session back
        await db.refresh(item)

        if result.success or result.error_kind == DuplicateRevenue.kind:
            item.status = DLQStatus.PROCESSED
        else:
            item.retry_count += 1
            item.error_message = result.error or item.error_message
            item.error_kind = result.error_kind
            item.status = (
                DLQStatus.ARCHIVED if item.retry_count >= settings.dlq_max_retries else DLQStatus.FAILED
            )
        await db.commit()

        logger.info(
            "DLQ item retried",
            extra={"dlq_id": dlq_id, "status": item.status.value, "success": result.success},
        )
        return result
