"""
Payment Provider Webhook Endpoints.

Asaas calls this endpoint for every payment event. Only confirmed payments
produce revenue; everything else is acknowledged and ignored.
"""

import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.config import settings
from finance_backend.app.core.dependencies import verify_asaas_token
from finance_backend.app.domain.revenue.revenue_service import RevenueService
from finance_backend.app.domain.revenue.dead_letter import DeadLetterService, should_park
from finance_backend.app.schemas.revenue import AsaasWebhookEvent, WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

CONFIRMED_EVENT = "PAYMENT_CONFIRMED"
CONFIRMED_STATUS = "CONFIRMED"


@router.post("/asaas", response_model=WebhookAck, dependencies=[Depends(verify_asaas_token)])
async def receive_asaas_webhook(
    event: AsaasWebhookEvent,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Receive an Asaas payment event.

    Always answers 200 once the payload is valid so the provider does not
    redeliver; failures worth retrying are parked in the dead-letter queue.
    """
    if event.event != CONFIRMED_EVENT or event.payment.status != CONFIRMED_STATUS:
        logger.info(
            "Ignoring webhook event",
            extra={"event": event.event, "payment_id": event.payment.id, "status": event.payment.status},
        )
        return WebhookAck(received=True, processed=False)

    unidade_id = settings.default_unidade_id
    webhook_id = event.id or getattr(request.state, "correlation_id", None)

    result = await RevenueService.process_payment(
        db,
        event.payment,
        unidade_id=unidade_id,
        webhook_id=webhook_id,
        webhook_data=event.model_dump(mode="json", by_alias=True),
    )

    if should_park(result):
        await DeadLetterService.park(db, event, unidade_id, result)

    return WebhookAck(received=True, processed=result.success, result=result)
