"""
Financial Validator and Audit Report Tests.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from finance_backend.app.core.config import settings
from finance_backend.app.domain.reports.audit_report import AuditReportService
from finance_backend.app.domain.reports.validator import CHECKS, ValidationCheck, FinancialValidator
from finance_backend.app.models.audit_log import AuditLog
from finance_backend.app.models.ledger_entry import LedgerLine
from finance_backend.app.models.ledger_enums import LedgerLineType
from finance_backend.app.schemas.reports import Period
from finance_backend.app.services.audit import AuditAction

JANUARY = Period(**{"from": date(2024, 1, 1), "to": date(2024, 1, 31)})
ONE_WEEK = Period(**{"from": date(2024, 1, 10), "to": date(2024, 1, 16)})


def codes(validation):
    return {f.code for f in validation.findings}


def check(validation, name):
    return next(c for c in validation.checks if c.name == name)


def replace_check(name, run):
    return [ValidationCheck(item.name, item.blocking, run) if item.name == name else item for item in CHECKS]


@pytest.mark.asyncio
async def test_balanced_ledger_passes(db_session, session_factory, accounts, add_entry):
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 500, date(2024, 1, 10), "Corte")
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 300, date(2024, 1, 12), "Barba")

    result = await FinancialValidator.validate(db_session, session_factory, JANUARY)

    assert result.success is True
    validation = result.data
    balance = check(validation, "balance")
    assert balance.status == "passed"
    assert balance.details["total_debitos"] == 800.0
    assert balance.details["total_creditos"] == 800.0
    assert balance.details["diferenca"] == 0.0
    assert validation.summary.total_checks == 6
    assert len(validation.checks) == 6
    assert validation.isValid is True


@pytest.mark.asyncio
async def test_short_clean_period_has_no_findings(db_session, session_factory, accounts, add_entry):
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 500, date(2024, 1, 10), "Corte")
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 300, date(2024, 1, 12), "Barba")

    validation = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data

    assert validation.findings == []
    assert validation.summary.passed == 6


@pytest.mark.asyncio
async def test_imbalance_is_blocking(db_session, session_factory, accounts, add_entry):
    entry = await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 100, date(2024, 1, 10))
    db_session.add(LedgerLine(
        entry_id=entry.id, account_id=accounts["1.1.1.1"], line_type=LedgerLineType.DEBIT, amount=Decimal("50")
    ))
    await db_session.commit()

    validation = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data

    balance = check(validation, "balance")
    assert balance.status == "failed"
    assert balance.details["diferenca"] == 50.0
    assert "ACCOUNTING_IMBALANCE" in codes(validation)
    assert validation.isValid is False


@pytest.mark.asyncio
async def test_broken_references(db_session, session_factory, accounts, add_entry):
    await add_entry(9999, accounts["4.1.1.1"], 100, date(2024, 1, 10))
    await add_entry(accounts["1.1.1.1"], 8888, 100, date(2024, 1, 11))
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 100, date(2024, 1, 12), client_id=4242)

    validation = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data

    found = codes(validation)
    assert {"INVALID_DEBIT_ACCOUNT", "INVALID_CREDIT_ACCOUNT", "INVALID_LINE_ACCOUNT", "INVALID_CLIENT"} <= found
    assert check(validation, "referential_integrity").status == "failed"
    assert all(f.severity == "critical" for f in validation.findings if f.check == "referential_integrity")
    assert validation.isValid is False


@pytest.mark.asyncio
async def test_non_positive_value(db_session, session_factory, accounts, add_entry):
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 0, date(2024, 1, 10))

    validation = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data

    finding = next(f for f in validation.findings if f.code == "INVALID_VALUE")
    assert finding.severity == "high"
    assert check(validation, "invalid_values").status == "failed"
    assert validation.isValid is False


@pytest.mark.asyncio
async def test_advisory_findings_do_not_invalidate(db_session, session_factory, accounts, add_entry):
    cash, revenue = accounts["1.1.1.1"], accounts["4.1.1.1"]
    await add_entry(cash, revenue, 150000, date(2024, 1, 10), "Venda de equipamento")
    await add_entry(cash, revenue, 80, date(2024, 1, 11), "Corte")
    await add_entry(cash, revenue, 80, date(2024, 1, 11), "Corte")
    await add_entry(cash, revenue, 40, date(2024, 1, 12), "", launch_date=date(2024, 3, 20))

    validation = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data

    found = codes(validation)
    assert "UNUSUALLY_HIGH_VALUE" in found
    assert "POSSIBLE_DUPLICATE" in found
    assert "DATE_MISMATCH" in found
    assert "MISSING_HISTORICO" in found
    assert check(validation, "outliers").status == "warning"
    assert check(validation, "anomalies").status == "warning"
    assert check(validation, "completeness").status == "warning"
    assert validation.summary.warnings == 3
    assert validation.isValid is True


@pytest.mark.asyncio
async def test_statistical_outlier(db_session, session_factory, accounts, add_entry):
    for day in range(1, 11):
        await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 50, date(2024, 1, day), f"Corte {day}")
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 5000, date(2024, 1, 11), "Pacote anual")

    validation = (await FinancialValidator.validate(db_session, session_factory, JANUARY)).data

    outliers = [f for f in validation.findings if f.code == "STATISTICAL_OUTLIER"]
    assert len(outliers) == 1
    assert outliers[0].affected_data["valor"] == 5000.0


@pytest.mark.asyncio
async def test_data_gaps_on_sparse_period(db_session, session_factory, accounts, add_entry):
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 100, date(2024, 1, 10), "Corte")

    validation = (await FinancialValidator.validate(db_session, session_factory, JANUARY)).data

    gap = next(f for f in validation.findings if f.code == "DATA_GAPS")
    assert gap.affected_data["days_without_transactions"] == 30
    assert gap.affected_data["total_days"] == 31


@pytest.mark.asyncio
async def test_failing_check_is_inconclusive(db_session, session_factory, accounts, add_entry):
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 100, date(2024, 1, 10), "Corte")

    async def broken(db, period, unidade_id):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    result = await FinancialValidator.validate(
        db_session, session_factory, ONE_WEEK, checks=replace_check("anomalies", broken)
    )

    validation = result.data
    anomalies = check(validation, "anomalies")
    assert anomalies.status == "inconclusive"
    assert anomalies.error == "Banco de dados indisponível"
    assert validation.summary.inconclusive == 1
    assert validation.summary.passed == 5
    assert validation.isValid is False


@pytest.mark.asyncio
async def test_slow_check_times_out_as_inconclusive(db_session, session_factory, accounts, monkeypatch):
    async def slow(db, period, unidade_id):
        await asyncio.sleep(0.5)
        return [], {}

    monkeypatch.setattr(settings, "store_timeout_seconds", 0.05)

    validation = (await FinancialValidator.validate(
        db_session, session_factory, ONE_WEEK, checks=replace_check("balance", slow)
    )).data

    assert check(validation, "balance").status == "inconclusive"
    assert validation.isValid is False


@pytest.mark.asyncio
async def test_unexpected_check_error_does_not_abort_siblings(db_session, session_factory, accounts):
    async def buggy(db, period, unidade_id):
        raise KeyError("saldo")

    validation = (await FinancialValidator.validate(
        db_session, session_factory, ONE_WEEK, checks=replace_check("outliers", buggy)
    )).data

    assert check(validation, "outliers").status == "inconclusive"
    assert check(validation, "outliers").error == "KeyError"
    assert validation.summary.passed == 5


@pytest.mark.asyncio
async def test_findings_are_capped_without_detailed_audit(db_session, session_factory, accounts, add_entry):
    for i in range(25):
        await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 0, date(2024, 1, 10), f"Zerado {i}")

    summary = (await FinancialValidator.validate(db_session, session_factory, ONE_WEEK)).data
    detailed = (await FinancialValidator.validate(
        db_session, session_factory, ONE_WEEK, include_detailed_audit=True
    )).data

    assert check(summary, "invalid_values").findings_count == 25
    assert len([f for f in summary.findings if f.code == "INVALID_VALUE"]) == 20
    assert len([f for f in detailed.findings if f.code == "INVALID_VALUE"]) == 25


@pytest.mark.asyncio
async def test_validation_run_is_audited(db_session, session_factory, accounts):
    await FinancialValidator.validate(db_session, session_factory, ONE_WEEK, actor={"sub": "admin@trato"})

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.FINANCIAL_VALIDATION_RUN)
    )).scalar_one()
    assert audit.actor_id == "admin@trato"
    assert audit.meta_data["is_valid"] is True
    assert audit.meta_data["summary"]["total_checks"] == 6


# Audit report

@pytest.mark.asyncio
async def test_audit_report(db_session, session_factory, accounts, add_entry):
    cash, revenue = accounts["1.1.1.1"], accounts["4.1.1.1"]
    await add_entry(cash, revenue, 500, date(2024, 1, 10), "Corte")
    await add_entry(cash, revenue, 300, date(2024, 1, 11), "Barba")
    first = await add_entry(cash, revenue, 60000, date(2024, 1, 12), "Reforma")
    second = await add_entry(cash, revenue, 60000, date(2024, 1, 12), "Reforma")

    result = await AuditReportService.generate(db_session, session_factory, ONE_WEEK)

    assert result.success is True
    report = result.data
    assert report.reconciliation.total_debits == Decimal("120800.00")
    assert report.reconciliation.is_balanced is True
    assert report.data_quality.completeness_score == Decimal("100.00")
    assert report.data_quality.accuracy_score == Decimal("100.00")
    assert report.data_quality.consistency_score == Decimal("100.00")
    assert report.data_quality.overall_score == Decimal("100.00")

    by_reason = {(s.lancamento_id, s.severity) for s in report.suspicious_entries}
    assert (first.id, "medium") in by_reason
    assert (first.id, "high") in by_reason
    assert (second.id, "high") in by_reason

    audit = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == AuditAction.FINANCIAL_AUDIT_REPORT)
    )).scalar_one()
    assert audit.meta_data["suspicious_count"] == 4


@pytest.mark.asyncio
async def test_audit_report_quality_penalties(db_session, session_factory, accounts, add_entry):
    cash, revenue = accounts["1.1.1.1"], accounts["4.1.1.1"]
    await add_entry(cash, revenue, 100, date(2024, 1, 10), "Corte")
    await add_entry(cash, revenue, 0, date(2024, 1, 11), "")

    report = (await AuditReportService.generate(db_session, session_factory, ONE_WEEK)).data

    # One of two entries has no description; one high finding (INVALID_VALUE)
    assert report.data_quality.completeness_score == Decimal("50.00")
    assert report.data_quality.accuracy_score == Decimal("90.00")
