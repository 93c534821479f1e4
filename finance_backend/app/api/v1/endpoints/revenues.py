"""
Automatic Revenue API Endpoints.

Read-only listing and statistics of revenues created by the webhook
pipeline.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.db.session import get_db
from finance_backend.app.core.guards import require_finance_reader, resolve_unidade
from finance_backend.app.domain.revenue.revenue_service import RevenueService
from finance_backend.app.models.ledger_enums import RevenueStatus
from finance_backend.app.schemas.revenue import RevenueListResponse, RevenueStatsResponse

router = APIRouter(prefix="/financial/revenues", tags=["Financial - Revenues"])


@router.get("", response_model=RevenueListResponse)
async def list_revenues(
    unidade_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    status: Optional[RevenueStatus] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
):
    """List automatic revenues, newest first."""
    return await RevenueService.list_revenues(
        db,
        unidade_id=resolve_unidade(current_user, unidade_id),
        payment_id=payment_id,
        customer_id=customer_id,
        status=status,
        created_from=created_from,
        created_to=created_to,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=RevenueStatsResponse)
async def get_revenue_stats(
    unidade_id: Optional[str] = None,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
):
    """Counts per status and total processed value."""
    return await RevenueService.get_stats(db, resolve_unidade(current_user, unidade_id))
