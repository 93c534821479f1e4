"""
DRE Service (Domain Logic).

Builds the income statement (DRE) from per-account balances, compares two
periods and exports a DRE as JSON or CSV.
Focused on READ-ONLY operations.
"""

import asyncio
import csv
import io
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import FinancialError, ReportUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import ZERO, CENT, parse_amount, percentage, to_money
from finance_backend.app.domain.reports.ledger_queries import fetch_account_balances, fetch_account_entries
from finance_backend.app.models.ledger_enums import AccountType
from finance_backend.app.schemas.reports import (
    DREAccountDetail, DREAuditDetail, DREComparison, DRECustos, DREData, DREDespesas,
    DREExport, DREMargem, DREPeriod, DREReceitas, DREResultado, Period, ReportResult, Variation,
)
from finance_backend.app.services.audit import AuditAction, SYSTEM_ACTOR, try_log_event

logger = logging.getLogger(__name__)

BalanceSource = Callable[[AsyncSession, date, date, str], Awaitable[List[Dict[str, Any]]]]

COMPARED_LINES = {
    "receita_liquida": lambda d: d.receitas.receita_liquida,
    "lucro_bruto": lambda d: d.resultado.lucro_bruto,
    "lucro_operacional": lambda d: d.resultado.lucro_operacional,
    "lucro_liquido": lambda d: d.resultado.lucro_liquido,
}


def _failure(error: FinancialError) -> ReportResult:
    return ReportResult(success=False, error=error.message, error_kind=error.kind, retryable=error.retryable)


def _actor_fields(actor: Optional[dict]) -> Dict[str, Any]:
    if not actor:
        return {"actor_id": SYSTEM_ACTOR, "actor_username": SYSTEM_ACTOR}
    return {"actor_id": str(actor.get("sub")), "actor_username": actor.get("sub")}


def parse_account_row(row: Dict[str, Any]) -> DREAccountDetail:
    """Parse one aggregation row; non-numeric amounts become 0."""
    tipo = row.get("conta_tipo")
    if isinstance(tipo, AccountType):
        tipo = tipo.value
    return DREAccountDetail(
        conta_id=row.get("conta_id"),
        conta_codigo=str(row.get("conta_codigo") or ""),
        conta_nome=str(row.get("conta_nome") or ""),
        conta_tipo=str(tipo or ""),
        saldo_debito=parse_amount(row.get("saldo_debito")),
        saldo_credito=parse_amount(row.get("saldo_credito")),
        saldo_final=parse_amount(row.get("saldo_final")),
    )


def empty_dre(period: Period, unidade_id: str) -> DREData:
    return build_dre([], period, unidade_id)


def build_dre(details: List[DREAccountDetail], period: Period, unidade_id: str) -> DREData:
    """
    Compute the statement from parsed account details.

    Revenue: accounts of type receita. Costs: type custo, or a code under
    the cost prefix. Expenses: type despesa. Net revenue equals gross
    revenue (no deductions are booked). Income tax is provisioned only on
    a positive pre-tax result.
    """
    receitas = [d for d in details if d.conta_tipo == AccountType.REVENUE.value]
    custos = [
        d for d in details
        if d.conta_tipo == AccountType.COST.value or d.conta_codigo.startswith(settings.cost_account_prefix)
    ]
    despesas = [d for d in details if d.conta_tipo == AccountType.EXPENSE.value]

    receita_bruta = sum((d.saldo_final for d in receitas), ZERO)
    deducoes = ZERO
    receita_liquida = receita_bruta - deducoes

    custos_servicos = sum((abs(d.saldo_final) for d in custos), ZERO)
    total_despesas = sum((abs(d.saldo_final) for d in despesas), ZERO)

    lucro_bruto = receita_liquida - custos_servicos
    lucro_operacional = lucro_bruto - total_despesas
    lucro_antes_ir = lucro_operacional
    provisao_ir = to_money(lucro_antes_ir * settings.tax_rate) if lucro_antes_ir > 0 else ZERO
    lucro_liquido = lucro_antes_ir - provisao_ir

    return DREData(
        periodo=DREPeriod(data_inicio=period.from_, data_fim=period.to, unidade_id=unidade_id),
        receitas=DREReceitas(
            receita_bruta=to_money(receita_bruta),
            deducoes=to_money(deducoes),
            receita_liquida=to_money(receita_liquida),
            detalhes=receitas,
        ),
        custos=DRECustos(custos_servicos=to_money(custos_servicos), detalhes=custos),
        despesas=DREDespesas(total_despesas=to_money(total_despesas), detalhes=despesas),
        resultado=DREResultado(
            lucro_bruto=to_money(lucro_bruto),
            lucro_operacional=to_money(lucro_operacional),
            lucro_antes_ir=to_money(lucro_antes_ir),
            provisao_ir=to_money(provisao_ir),
            lucro_liquido=to_money(lucro_liquido),
        ),
        margem=DREMargem(
            margem_bruta=percentage(lucro_bruto, receita_liquida),
            margem_operacional=percentage(lucro_operacional, receita_liquida),
            margem_liquida=percentage(lucro_liquido, receita_liquida),
        ),
    )


def check_consistency(dre: DREData) -> List[str]:
    """Cross-check the derived lines. Returns the inconsistencies found."""
    errors = []

    expected = dre.receitas.receita_bruta - dre.receitas.deducoes
    if abs(dre.receitas.receita_liquida - expected) > CENT:
        errors.append(f"Receita líquida inconsistente: esperado {expected}, atual {dre.receitas.receita_liquida}")

    expected = dre.receitas.receita_liquida - dre.custos.custos_servicos
    if abs(dre.resultado.lucro_bruto - expected) > CENT:
        errors.append(f"Lucro bruto inconsistente: esperado {expected}, atual {dre.resultado.lucro_bruto}")

    expected = dre.resultado.lucro_bruto - dre.despesas.total_despesas
    if abs(dre.resultado.lucro_operacional - expected) > CENT:
        errors.append(
            f"Lucro operacional inconsistente: esperado {expected}, atual {dre.resultado.lucro_operacional}"
        )

    return errors


def variation(current: Decimal, previous: Decimal) -> Variation:
    absolute = current - previous
    pct = to_money(absolute / abs(previous) * 100) if previous != 0 else ZERO
    return Variation(absolute=to_money(absolute), percentage=pct)


def dre_to_csv(dre: DREData) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Seção", "Item", "Valor"])
    writer.writerows([
        ["Receitas", "Receita Bruta", dre.receitas.receita_bruta],
        ["Receitas", "Deduções", dre.receitas.deducoes],
        ["Receitas", "Receita Líquida", dre.receitas.receita_liquida],
        ["Custos", "Custos de Serviços", dre.custos.custos_servicos],
        ["Resultado", "Lucro Bruto", dre.resultado.lucro_bruto],
        ["Despesas", "Total Despesas", dre.despesas.total_despesas],
        ["Resultado", "Lucro Operacional", dre.resultado.lucro_operacional],
        ["Resultado", "Lucro Antes IR", dre.resultado.lucro_antes_ir],
        ["Resultado", "Provisão IR", dre.resultado.provisao_ir],
        ["Resultado", "Lucro Líquido", dre.resultado.lucro_liquido],
        ["Margens", "Margem Bruta %", dre.margem.margem_bruta],
        ["Margens", "Margem Operacional %", dre.margem.margem_operacional],
        ["Margens", "Margem Líquida %", dre.margem.margem_liquida],
    ])
    return buffer.getvalue()


class DREService:

    @staticmethod
    async def get_dre_data(
        db: AsyncSession,
        session_factory: async_sessionmaker,
        period: Period,
        unidade_id: Optional[str] = None,
        include_audit_trail: bool = False,
        actor: Optional[dict] = None,
        balance_source: BalanceSource = fetch_account_balances,
    ) -> ReportResult[DREData]:
        """
        Generate the DRE for a period and tenant.

        Never raises: a store failure or timeout comes back as a failed
        result with kind ReportUnavailable.
        """
        unidade_id = unidade_id or settings.default_unidade_id

        try:
            rows = await store_call(
                balance_source(db, period.from_, period.to, unidade_id),
                ReportUnavailable,
                "Erro ao calcular DRE",
            )
        except FinancialError as e:
            logger.error("DRE aggregation failed", extra={"unidade_id": unidade_id, "error_kind": e.kind})
            return _failure(e)
        except Exception:
            logger.exception("Unexpected error generating DRE", extra={"unidade_id": unidade_id})
            return _failure(ReportUnavailable("Erro inesperado ao gerar DRE"))

        if not rows:
            return ReportResult[DREData](success=True, data=empty_dre(period, unidade_id))

        details = [parse_account_row(row) for row in rows]
        dre = build_dre(details, period, unidade_id)

        if include_audit_trail:
            dre.audit_trail = await DREService.build_audit_trail(session_factory, details, period, unidade_id)

        inconsistencies = check_consistency(dre)
        if inconsistencies:
            logger.warning("DRE inconsistency detected", extra={"errors": inconsistencies})

        await try_log_event(
            db,
            AuditAction.DRE_GENERATED,
            resource="FINANCIAL",
            session_id=f"dre_{int(datetime.now(timezone.utc).timestamp() * 1000)}",
            metadata={
                "periodo": {"from": period.from_.isoformat(), "to": period.to.isoformat()},
                "unidade_id": unidade_id,
                "receita_liquida": str(dre.receitas.receita_liquida),
                "lucro_liquido": str(dre.resultado.lucro_liquido),
                "include_audit_trail": include_audit_trail,
            },
            **_actor_fields(actor),
        )

        logger.info(
            "DRE generated",
            extra={"unidade_id": unidade_id, "from": str(period.from_), "to": str(period.to)},
        )
        return ReportResult[DREData](success=True, data=dre)

    @staticmethod
    async def build_audit_trail(
        session_factory: async_sessionmaker,
        details: List[DREAccountDetail],
        period: Period,
        unidade_id: str,
    ) -> List[DREAuditDetail]:
        """
        Constituent entries per non-zero account, fetched concurrently.

        Each fetch has its own session. An account whose fetch fails is
        left out of the trail.
        """
        accounts = [d for d in details if d.saldo_final != 0 and d.conta_id is not None]

        async def account_trail(detail: DREAccountDetail) -> Optional[DREAuditDetail]:
            async with session_factory() as session:
                entries = await store_call(
                    fetch_account_entries(session, detail.conta_id, period.from_, period.to, unidade_id),
                    ReportUnavailable,
                )
            if not entries:
                return None
            return DREAuditDetail(
                conta_id=detail.conta_id,
                conta_nome=detail.conta_nome,
                total_lancamentos=len(entries),
                lancamentos_ids=[e["id"] for e in entries],
                valores_individuais=[parse_amount(e["amount"]) for e in entries],
            )

        results = await asyncio.gather(*(account_trail(d) for d in accounts), return_exceptions=True)

        trail = []
        for detail, result in zip(accounts, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Audit trail unavailable for account",
                    extra={"conta_id": detail.conta_id, "reason": type(result).__name__},
                )
                continue
            if result is not None:
                trail.append(result)
        return trail

    @staticmethod
    async def get_comparison(
        db: AsyncSession,
        session_factory: async_sessionmaker,
        current: Period,
        previous: Period,
        unidade_id: Optional[str] = None,
        actor: Optional[dict] = None,
    ) -> ReportResult[DREComparison]:
        """DRE of two periods plus the variation of the main result lines."""
        current_result = await DREService.get_dre_data(db, session_factory, current, unidade_id, actor=actor)
        if not current_result.success:
            return current_result.model_copy(
                update={"error": f"Erro ao buscar DRE do período atual: {current_result.error}"}
            )

        previous_result = await DREService.get_dre_data(db, session_factory, previous, unidade_id, actor=actor)
        if not previous_result.success:
            return previous_result.model_copy(
                update={"error": f"Erro ao buscar DRE do período anterior: {previous_result.error}"}
            )

        variations = {
            name: variation(line(current_result.data), line(previous_result.data))
            for name, line in COMPARED_LINES.items()
        }
        return ReportResult[DREComparison](
            success=True,
            data=DREComparison(current=current_result.data, previous=previous_result.data, variations=variations),
        )

    @staticmethod
    async def export(
        db: AsyncSession,
        session_factory: async_sessionmaker,
        period: Period,
        unidade_id: Optional[str] = None,
        export_format: str = "json",
        actor: Optional[dict] = None,
    ) -> ReportResult[DREExport]:
        """Render a DRE (with audit trail) as a JSON or CSV document."""
        result = await DREService.get_dre_data(
            db, session_factory, period, unidade_id, include_audit_trail=True, actor=actor
        )
        if not result.success:
            return ReportResult(
                success=False,
                error=f"Erro ao buscar dados do DRE: {result.error}",
                error_kind=result.error_kind,
                retryable=result.retryable,
            )

        dre = result.data
        timestamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")
        filename = f"DRE_{dre.periodo.data_inicio}_{dre.periodo.data_fim}_{timestamp}.{export_format}"

        if export_format == "csv":
            content = dre_to_csv(dre)
            mime_type = "text/csv"
        else:
            content = dre.model_dump_json(indent=2)
            mime_type = "application/json"

        await try_log_event(
            db,
            AuditAction.DRE_EXPORTED,
            resource="FINANCIAL",
            metadata={
                "periodo": {"from": period.from_.isoformat(), "to": period.to.isoformat()},
                "unidade_id": dre.periodo.unidade_id,
                "format": export_format,
                "filename": filename,
            },
            **_actor_fields(actor),
        )

        return ReportResult[DREExport](success=True, data=DREExport(content=content, filename=filename, mime_type=mime_type))
