"""
Financial Reports API Endpoints.

DRE, comparison, export, summary, cash flow, validation and audit report.
Readable by ADMIN and MANAGER; a token bound to a unit reads only that unit.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_backend.app.db.session import get_db, get_session_factory
from finance_backend.app.core.guards import require_finance_reader, resolve_unidade
from finance_backend.app.domain.reports.audit_report import AuditReportService
from finance_backend.app.domain.reports.cash_flow_service import CashFlowService
from finance_backend.app.domain.reports.dre_service import DREService
from finance_backend.app.domain.reports.summary_service import FinancialSummaryService
from finance_backend.app.domain.reports.validator import FinancialValidator
from finance_backend.app.schemas.reports import (
    AuditReport, AuditReportRequest, CashFlowData, CashFlowRequest, DREComparison, DREComparisonRequest,
    DREData, DREExport, DREExportRequest, DRERequest, FinancialSummary, FinancialValidation, ReportResult,
    SummaryRequest, ValidationRequest,
)
from finance_backend.app.services.cache import ReportCache

router = APIRouter(prefix="/reports", tags=["Reports"])

REPORT_ROUTE = "/relatorios/financeiro"


def _scoped(payload, current_user: dict):
    return payload.model_copy(update={"unidade_id": resolve_unidade(current_user, payload.unidade_id)})


def _respond(result: ReportResult):
    """Failed reports answer 503 when retrying may help, 500 otherwise."""
    if result.success:
        return result
    status_code = 503 if result.retryable else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("/dre", response_model=ReportResult[DREData])
async def get_dre(
    payload: DRERequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Income statement (DRE) for a period."""
    payload = _scoped(payload, current_user)
    cache = ReportCache()
    params = {"report": "dre", **payload.model_dump(mode="json", by_alias=True)}

    cached = await cache.get(REPORT_ROUTE, params)
    if cached is not None:
        return cached

    result = await DREService.get_dre_data(
        db,
        session_factory,
        payload.period,
        payload.unidade_id,
        include_audit_trail=payload.include_audit_trail,
        actor=current_user,
    )
    if result.success:
        await cache.set(REPORT_ROUTE, params, result.model_dump(mode="json"))
    return _respond(result)


@router.post("/dre/comparison", response_model=ReportResult[DREComparison])
async def compare_dre(
    payload: DREComparisonRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """DRE of two periods with the variation of the main lines."""
    payload = _scoped(payload, current_user)
    result = await DREService.get_comparison(
        db, session_factory, payload.current, payload.previous, payload.unidade_id, actor=current_user
    )
    return _respond(result)


@router.post("/dre/export", response_model=ReportResult[DREExport])
async def export_dre(
    payload: DREExportRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """DRE rendered as a JSON or CSV document."""
    payload = _scoped(payload, current_user)
    result = await DREService.export(
        db, session_factory, payload.period, payload.unidade_id, export_format=payload.format, actor=current_user
    )
    return _respond(result)


@router.post("/summary", response_model=ReportResult[FinancialSummary])
async def get_financial_summary(
    payload: SummaryRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
):
    """Headline totals, liquidity, profitability and growth."""
    payload = _scoped(payload, current_user)
    cache = ReportCache()
    params = {"report": "summary", **payload.model_dump(mode="json", by_alias=True)}

    cached = await cache.get(REPORT_ROUTE, params)
    if cached is not None:
        return cached

    result = await FinancialSummaryService.get_summary(db, payload.period, payload.unidade_id)
    if result.success:
        await cache.set(REPORT_ROUTE, params, result.model_dump(mode="json"))
    return _respond(result)


@router.post("/cash-flow", response_model=ReportResult[CashFlowData])
async def get_cash_flow(
    payload: CashFlowRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
):
    """Cash inflows, outflows and running balance."""
    payload = _scoped(payload, current_user)
    cache = ReportCache()
    params = {"report": "cash-flow", **payload.model_dump(mode="json", by_alias=True)}

    cached = await cache.get(REPORT_ROUTE, params)
    if cached is not None:
        return cached

    result = await CashFlowService.get_cash_flow(db, payload.period, payload.unidade_id, payload.group_by)
    if result.success:
        await cache.set(REPORT_ROUTE, params, result.model_dump(mode="json"))
    return _respond(result)


@router.post("/validation", response_model=ReportResult[FinancialValidation])
async def validate_financial_data(
    payload: ValidationRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Run the six ledger consistency checks."""
    payload = _scoped(payload, current_user)
    result = await FinancialValidator.validate(
        db,
        session_factory,
        payload.period,
        payload.unidade_id,
        include_detailed_audit=payload.include_detailed_audit,
        actor=current_user,
    )
    return _respond(result)


@router.post("/audit", response_model=ReportResult[AuditReport])
async def get_audit_report(
    payload: AuditReportRequest,
    current_user: dict = Depends(require_finance_reader),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Validation, reconciliation, data quality and suspicious entries."""
    payload = _scoped(payload, current_user)
    result = await AuditReportService.generate(
        db, session_factory, payload.period, payload.unidade_id, actor=current_user
    )
    return _respond(result)
