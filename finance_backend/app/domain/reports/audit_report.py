"""
Financial audit report: validation, reconciliation, data quality scores
and suspicious entries for one period.
"""

import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import FinancialError, ReportUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import ZERO, parse_amount, percentage, to_money
from finance_backend.app.domain.reports.ledger_queries import fetch_line_totals, fetch_period_entries
from finance_backend.app.domain.reports.validator import FinancialValidator, find_duplicates
from finance_backend.app.schemas.reports import (
    AuditReport, DataQuality, FinancialValidation, Period, Reconciliation, ReportResult, SuspiciousEntry,
)
from finance_backend.app.services.audit import AuditAction, SYSTEM_ACTOR, try_log_event

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def score_quality(
    validation: FinancialValidation, total_entries: int, missing_description: int, reconciliation: Reconciliation
) -> DataQuality:
    """
    Completeness: share of entries with a description.
    Accuracy: 100 minus 25 per critical and 10 per high finding.
    Consistency: 100 minus the debit/credit difference in percent of debits.
    """
    completeness = HUNDRED - percentage(Decimal(missing_description), Decimal(total_entries))

    critical = sum(1 for f in validation.findings if f.severity == "critical")
    high = sum(1 for f in validation.findings if f.severity == "high")
    accuracy = max(ZERO, HUNDRED - 25 * critical - 10 * high)

    consistency = max(
        ZERO, HUNDRED - percentage(reconciliation.balance_difference, reconciliation.total_debits)
    )

    overall = (completeness + accuracy + consistency) / 3
    return DataQuality(
        completeness_score=to_money(completeness),
        accuracy_score=to_money(accuracy),
        consistency_score=to_money(consistency),
        overall_score=to_money(overall),
    )


def find_suspicious(entries: List[dict]) -> List[SuspiciousEntry]:
    threshold = settings.suspicious_value_threshold
    suspicious = []

    for entry in entries:
        value = parse_amount(entry["amount"])
        if value > threshold:
            suspicious.append(SuspiciousEntry(
                lancamento_id=entry["id"],
                reason="Valor acima do limite de atenção",
                severity="medium",
                details={"valor": float(value), "limite": float(threshold), "historico": entry["description"]},
            ))

    for group in find_duplicates(entries):
        ids = [e["id"] for e in group]
        for entry in group:
            suspicious.append(SuspiciousEntry(
                lancamento_id=entry["id"],
                reason="Possível lançamento duplicado",
                severity="high",
                details={"lancamentos_ids": ids, "valor": float(parse_amount(entry["amount"]))},
            ))

    return suspicious


class AuditReportService:

    @staticmethod
    async def generate(
        db: AsyncSession,
        session_factory: async_sessionmaker,
        period: Period,
        unidade_id: Optional[str] = None,
        actor: Optional[dict] = None,
    ) -> ReportResult[AuditReport]:
        unidade_id = unidade_id or settings.default_unidade_id

        validation_result = await FinancialValidator.validate(
            db, session_factory, period, unidade_id, include_detailed_audit=True, actor=actor
        )
        if not validation_result.success:
            return ReportResult(
                success=False,
                error=f"Erro na validação: {validation_result.error}",
                error_kind=validation_result.error_kind,
                retryable=validation_result.retryable,
            )
        validation = validation_result.data

        try:
            totals = await store_call(
                fetch_line_totals(db, period.from_, period.to, unidade_id),
                ReportUnavailable,
                "Erro ao buscar totais para reconciliação",
            )
            entries = await store_call(
                fetch_period_entries(db, period.from_, period.to, unidade_id, confirmed_only=False),
                ReportUnavailable,
                "Erro ao buscar lançamentos do período",
            )
        except FinancialError as e:
            logger.error("Audit report query failed", extra={"unidade_id": unidade_id, "error_kind": e.kind})
            return ReportResult(success=False, error=e.message, error_kind=e.kind, retryable=e.retryable)

        total_debits = to_money(parse_amount(totals["debito"]))
        total_credits = to_money(parse_amount(totals["credito"]))
        difference = abs(total_debits - total_credits)
        reconciliation = Reconciliation(
            total_debits=total_debits,
            total_credits=total_credits,
            balance_difference=difference,
            is_balanced=difference <= settings.balance_tolerance,
        )

        missing_description = sum(1 for e in entries if not (e["description"] or "").strip())
        report = AuditReport(
            periodo=validation.periodo,
            validations=validation,
            reconciliation=reconciliation,
            data_quality=score_quality(validation, len(entries), missing_description, reconciliation),
            suspicious_entries=find_suspicious(entries),
        )

        actor_id = str(actor.get("sub")) if actor else SYSTEM_ACTOR
        await try_log_event(
            db,
            AuditAction.FINANCIAL_AUDIT_REPORT,
            actor_id=actor_id,
            actor_username=actor_id,
            resource="FINANCIAL",
            metadata={
                "periodo": {"from": period.from_.isoformat(), "to": period.to.isoformat()},
                "unidade_id": unidade_id,
                "overall_score": float(report.data_quality.overall_score),
                "suspicious_count": len(report.suspicious_entries),
            },
        )

        return ReportResult[AuditReport](success=True, data=report)
