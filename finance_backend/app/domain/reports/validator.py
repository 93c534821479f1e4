"""
Financial Validator.

Six independent consistency checks over the ledger of one tenant and
period. Checks run concurrently, each with its own session and timeout;
a check that cannot reach the store is reported as inconclusive instead
of passed or failed.

Checks 1-3 are blocking (they decide ``isValid``); checks 4-6 are
advisory and report warnings.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import numpy as np
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import StoreUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import parse_amount, to_money
from finance_backend.app.domain.reports.ledger_queries import fetch_line_totals, fetch_period_entries
from finance_backend.app.models.account import Account
from finance_backend.app.models.client import Client
from finance_backend.app.models.ledger_entry import LedgerEntry, LedgerLine
from finance_backend.app.schemas.reports import (
    CheckResult, DREPeriod, FinancialValidation, Period, ReportResult, ValidationFinding, ValidationSummary,
)
from finance_backend.app.services.audit import AuditAction, SYSTEM_ACTOR, try_log_event

logger = logging.getLogger(__name__)

TOTAL_CHECKS = 6
MAX_FINDINGS_PER_CHECK = 20

CheckOutcome = Tuple[List[ValidationFinding], Dict[str, Any]]
CheckFn = Callable[[AsyncSession, Period, str], Awaitable[CheckOutcome]]


@dataclass(frozen=True)
class ValidationCheck:
    name: str
    blocking: bool
    run: CheckFn


def _period_filters(period: Period, unidade_id: str) -> list:
    return [
        LedgerEntry.unidade_id == unidade_id,
        LedgerEntry.competence_date >= period.from_,
        LedgerEntry.competence_date <= period.to,
    ]


def find_duplicates(entries: List[Dict[str, Any]]) -> List[List[Dict[str, Any]]]:
    """Groups of entries sharing amount, competence date and description."""
    groups = defaultdict(list)
    for entry in entries:
        key = (parse_amount(entry["amount"]), entry["competence_date"], (entry["description"] or "").strip())
        groups[key].append(entry)
    return [group for group in groups.values() if len(group) > 1]


# 1. Referential integrity

async def check_referential_integrity(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    findings = []
    filters = _period_filters(period, unidade_id)

    for side, column, code in (
        ("débito", LedgerEntry.debit_account_id, "INVALID_DEBIT_ACCOUNT"),
        ("crédito", LedgerEntry.credit_account_id, "INVALID_CREDIT_ACCOUNT"),
    ):
        stmt = (
            select(LedgerEntry.id, column)
            .outerjoin(Account, Account.id == column)
            .where(Account.id.is_(None), *filters)
        )
        for entry_id, account_id in (await db.execute(stmt)).all():
            findings.append(ValidationFinding(
                code=code,
                message=f"Lançamento com conta de {side} inexistente",
                severity="critical",
                check="referential_integrity",
                affected_data={"lancamento_id": entry_id, "conta_id": account_id},
                suggested_fix=f"Verificar e corrigir referência da conta de {side}",
            ))

    stmt = (
        select(LedgerLine.entry_id, LedgerLine.account_id)
        .join(LedgerEntry, LedgerEntry.id == LedgerLine.entry_id)
        .outerjoin(Account, Account.id == LedgerLine.account_id)
        .where(Account.id.is_(None), *filters)
    )
    for entry_id, account_id in (await db.execute(stmt)).all():
        findings.append(ValidationFinding(
            code="INVALID_LINE_ACCOUNT",
            message="Partida com conta contábil inexistente",
            severity="critical",
            check="referential_integrity",
            affected_data={"lancamento_id": entry_id, "conta_id": account_id},
            suggested_fix="Verificar e corrigir a conta da partida",
        ))

    stmt = (
        select(LedgerEntry.id, LedgerEntry.client_id)
        .outerjoin(Client, Client.id == LedgerEntry.client_id)
        .where(LedgerEntry.client_id.is_not(None), Client.id.is_(None), *filters)
    )
    for entry_id, client_id in (await db.execute(stmt)).all():
        findings.append(ValidationFinding(
            code="INVALID_CLIENT",
            message="Lançamento vinculado a cliente inexistente",
            severity="critical",
            check="referential_integrity",
            affected_data={"lancamento_id": entry_id, "client_id": client_id},
            suggested_fix="Verificar e corrigir o cliente do lançamento",
        ))

    return findings, {}


# 2. Debit/credit balance

async def check_balance(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    totals = await fetch_line_totals(db, period.from_, period.to, unidade_id)
    total_debitos = to_money(parse_amount(totals["debito"]))
    total_creditos = to_money(parse_amount(totals["credito"]))
    diferenca = abs(total_debitos - total_creditos)

    details = {
        "total_debitos": float(total_debitos),
        "total_creditos": float(total_creditos),
        "diferenca": float(diferenca),
    }

    findings = []
    if diferenca > settings.balance_tolerance:
        findings.append(ValidationFinding(
            code="ACCOUNTING_IMBALANCE",
            message=f"Desbalanceamento contábil detectado: diferença de R$ {diferenca:.2f}",
            severity="critical",
            check="balance",
            affected_data=details,
            suggested_fix="Revisar lançamentos contábeis para identificar inconsistências",
        ))
    return findings, details


# 3. Invalid values

async def check_invalid_values(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    entries = await fetch_period_entries(db, period.from_, period.to, unidade_id, confirmed_only=False)

    findings = []
    for entry in entries:
        value = parse_amount(entry["amount"])
        if value > 0:
            continue
        findings.append(ValidationFinding(
            code="INVALID_VALUE",
            message=f"Lançamento com valor inválido: R$ {entry['amount']}",
            severity="high",
            check="invalid_values",
            affected_data={
                "lancamento_id": entry["id"],
                "valor": str(entry["amount"]),
                "historico": entry["description"],
            },
            suggested_fix="Corrigir valor do lançamento para um valor positivo",
        ))
    return findings, {"entries_checked": len(entries)}


# 4. Outlier values

async def check_outliers(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    entries = await fetch_period_entries(db, period.from_, period.to, unidade_id, confirmed_only=False)
    threshold = settings.high_value_threshold

    findings = []
    for entry in entries:
        value = parse_amount(entry["amount"])
        if value <= threshold:
            continue
        findings.append(ValidationFinding(
            code="UNUSUALLY_HIGH_VALUE",
            message=f"Valor excepcionalmente alto detectado: R$ {value:,.2f}",
            severity="medium",
            check="outliers",
            affected_data={"lancamento_id": entry["id"], "valor": float(value), "historico": entry["description"]},
            suggested_fix="Verificar se o valor está correto ou se há erro de digitação",
        ))
    return findings, {"threshold": float(threshold)}


# 5. Anomalies

async def check_anomalies(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    entries = await fetch_period_entries(db, period.from_, period.to, unidade_id)
    findings = []
    details: Dict[str, Any] = {}

    if entries:
        values = np.array([float(parse_amount(e["amount"])) for e in entries])
        mean = float(values.mean())
        std = float(values.std())
        details = {"media": round(mean, 2), "desvio_padrao": round(std, 2)}

        if std > 0:
            limit = settings.outlier_std_devs * std
            for entry, value in zip(entries, values):
                if abs(value - mean) > limit:
                    findings.append(ValidationFinding(
                        code="STATISTICAL_OUTLIER",
                        message="Valor estatisticamente atípico detectado",
                        severity="low",
                        check="anomalies",
                        affected_data={
                            "lancamento_id": entry["id"],
                            "valor": float(value),
                            "media": round(mean, 2),
                            "desvio_padrao": round(std, 2),
                        },
                    ))

    for group in find_duplicates(entries):
        findings.append(ValidationFinding(
            code="POSSIBLE_DUPLICATE",
            message=f"{len(group)} lançamentos com mesmo valor, data e histórico",
            severity="medium",
            check="anomalies",
            affected_data={
                "lancamentos_ids": [e["id"] for e in group],
                "valor": float(parse_amount(group[0]["amount"])),
                "data_competencia": group[0]["competence_date"].isoformat(),
                "historico": group[0]["description"],
            },
            suggested_fix="Verificar se o lançamento foi registrado em duplicidade",
        ))

    for entry in entries:
        gap = abs((entry["launch_date"] - entry["competence_date"]).days)
        if gap > settings.max_date_gap_days:
            findings.append(ValidationFinding(
                code="DATE_MISMATCH",
                message="Grande diferença entre data de lançamento e competência",
                severity="medium",
                check="anomalies",
                affected_data={
                    "lancamento_id": entry["id"],
                    "data_lancamento": entry["launch_date"].isoformat(),
                    "data_competencia": entry["competence_date"].isoformat(),
                    "dias": gap,
                },
                suggested_fix="Verificar se as datas estão corretas",
            ))

    return findings, details


# 6. Completeness

async def check_completeness(db: AsyncSession, period: Period, unidade_id: str) -> CheckOutcome:
    entries = await fetch_period_entries(db, period.from_, period.to, unidade_id, confirmed_only=False)
    findings = []

    missing = [e["id"] for e in entries if not (e["description"] or "").strip()]
    if missing:
        findings.append(ValidationFinding(
            code="MISSING_HISTORICO",
            message=f"{len(missing)} lançamento(s) sem histórico",
            severity="low",
            check="completeness",
            affected_data={"count": len(missing), "lancamentos_ids": missing},
            suggested_fix="Preencher o histórico dos lançamentos",
        ))

    total_days = period.days + 1
    details: Dict[str, Any] = {"total_days": total_days}
    if period.days > settings.completeness_min_period_days:
        days_with_entries = len({e["competence_date"] for e in entries})
        days_without = total_days - days_with_entries
        details["days_without_transactions"] = days_without
        if days_without > total_days * settings.completeness_max_gap_ratio:
            findings.append(ValidationFinding(
                code="DATA_GAPS",
                message=f"{days_without} dias sem lançamentos no período",
                severity="low",
                check="completeness",
                affected_data={
                    "days_without_transactions": days_without,
                    "total_days": total_days,
                    "percentage": round(days_without / total_days * 100, 1),
                },
            ))

    return findings, details


CHECKS: List[ValidationCheck] = [
    ValidationCheck("referential_integrity", True, check_referential_integrity),
    ValidationCheck("balance", True, check_balance),
    ValidationCheck("invalid_values", True, check_invalid_values),
    ValidationCheck("outliers", False, check_outliers),
    ValidationCheck("anomalies", False, check_anomalies),
    ValidationCheck("completeness", False, check_completeness),
]


class FinancialValidator:

    @staticmethod
    async def run_check(
        session_factory: async_sessionmaker,
        item: ValidationCheck,
        period: Period,
        unidade_id: str,
    ) -> Tuple[CheckResult, List[ValidationFinding]]:
        async with session_factory() as session:
            findings, details = await store_call(item.run(session, period, unidade_id), StoreUnavailable)

        if not findings:
            status = "passed"
        elif item.blocking:
            status = "failed"
        else:
            status = "warning"

        result = CheckResult(
            name=item.name,
            status=status,
            blocking=item.blocking,
            findings_count=len(findings),
            details=details,
        )
        return result, findings

    @staticmethod
    async def validate(
        db: AsyncSession,
        session_factory: async_sessionmaker,
        period: Period,
        unidade_id: Optional[str] = None,
        include_detailed_audit: bool = False,
        actor: Optional[dict] = None,
        checks: Optional[List[ValidationCheck]] = None,
    ) -> ReportResult[FinancialValidation]:
        """
        Run all checks and summarize.

        The result always reports six checks. ``isValid`` is False when a
        blocking check failed or any check was inconclusive. Without
        ``include_detailed_audit`` each check contributes at most
        MAX_FINDINGS_PER_CHECK findings; ``findings_count`` keeps the total.
        """
        unidade_id = unidade_id or settings.default_unidade_id
        checks = checks or CHECKS

        outcomes = await asyncio.gather(
            *(FinancialValidator.run_check(session_factory, item, period, unidade_id) for item in checks),
            return_exceptions=True,
        )

        results: List[CheckResult] = []
        findings: List[ValidationFinding] = []
        for item, outcome in zip(checks, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Validation check inconclusive",
                    extra={"check": item.name, "reason": type(outcome).__name__},
                )
                results.append(CheckResult(
                    name=item.name,
                    status="inconclusive",
                    blocking=item.blocking,
                    error=getattr(outcome, "message", None) or type(outcome).__name__,
                ))
                continue

            result, check_findings = outcome
            results.append(result)
            findings.extend(check_findings if include_detailed_audit else check_findings[:MAX_FINDINGS_PER_CHECK])

        summary = ValidationSummary(
            total_checks=TOTAL_CHECKS,
            passed=sum(1 for r in results if r.status == "passed"),
            failed=sum(1 for r in results if r.status == "failed"),
            warnings=sum(1 for r in results if r.status == "warning"),
            inconclusive=sum(1 for r in results if r.status == "inconclusive"),
        )
        is_valid = summary.inconclusive == 0 and not any(r.blocking and r.status == "failed" for r in results)

        validation = FinancialValidation(
            isValid=is_valid,
            periodo=DREPeriod(data_inicio=period.from_, data_fim=period.to, unidade_id=unidade_id),
            summary=summary,
            checks=results,
            findings=findings,
            generated_at=datetime.now(timezone.utc),
        )

        actor_id = str(actor.get("sub")) if actor else SYSTEM_ACTOR
        await try_log_event(
            db,
            AuditAction.FINANCIAL_VALIDATION_RUN,
            actor_id=actor_id,
            actor_username=actor_id,
            resource="FINANCIAL",
            metadata={
                "periodo": {"from": period.from_.isoformat(), "to": period.to.isoformat()},
                "unidade_id": unidade_id,
                "is_valid": is_valid,
                "summary": summary.model_dump(),
            },
        )

        logger.info(
            "Financial validation finished",
            extra={"unidade_id": unidade_id, "is_valid": is_valid, "passed": summary.passed},
        )
        return ReportResult[FinancialValidation](success=True, data=validation)
