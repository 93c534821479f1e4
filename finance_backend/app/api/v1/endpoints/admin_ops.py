"""
Admin Operations API Endpoints.

Dead-letter queue inspection and retry, and report cache maintenance.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime

from finance_backend.app.db.session import get_db
from finance_backend.app.models.dlq import DLQStatus
from finance_backend.app.core.guards import require_admin
from finance_backend.app.domain.revenue.dead_letter import DeadLetterService
from finance_backend.app.schemas.revenue import RevenueProcessingResult
from finance_backend.app.services.cache import ReportCache
from finance_backend.app.services.audit import try_log_event, AuditAction

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


class DLQItemResponse(BaseModel):
    id: int
    task_name: str
    error_message: str
    error_kind: Optional[str] = None
    payload: Optional[dict] = None
    status: DLQStatus
    retry_count: int
    created_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/dlq", response_model=List[DLQItemResponse])
async def list_dlq_items(
    status: Optional[DLQStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List parked webhook deliveries, newest first."""
    return await DeadLetterService.list_items(db, status, limit)


@router.post("/dlq/{dlq_id}/retry", response_model=RevenueProcessingResult)
async def retry_dlq_item(
    request: Request,
    dlq_id: int = Path(..., description="DLQ Item ID"),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Re-run revenue processing for a parked delivery."""
    result = await DeadLetterService.retry(db, dlq_id)

    await try_log_event(
        db,
        AuditAction.DLQ_RETRIED,
        actor_id=str(current_user["sub"]),
        actor_username=str(current_user["sub"]),
        resource="dead_letter_queue",
        metadata={"dlq_id": dlq_id, "success": result.success, "error_kind": result.error_kind},
        ip_address=request.client.host if request.client else None,
    )
    return result


@router.post("/clear-cache")
async def clear_report_cache(
    request: Request,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Invalidate every cached financial report."""
    cleared = await ReportCache().clear()

    await try_log_event(
        db,
        AuditAction.CACHE_CLEARED,
        actor_id=str(current_user["sub"]),
        actor_username=str(current_user["sub"]),
        resource="report_cache",
        metadata={"cleared": cleared},
        ip_address=request.client.host if request.client else None,
    )
    return {"message": "Cache cleared successfully" if cleared else "Cache unavailable", "cleared": cleared}
