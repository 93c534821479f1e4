"""
Financial Summary Service (Domain Logic).

Headline figures for a period, derived from the same per-account balances
as the DRE, plus growth against the previous period of equal length.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import FinancialError, ReportUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import ZERO, percentage, to_money
from finance_backend.app.domain.reports.dre_service import BalanceSource, build_dre, parse_account_row, variation
from finance_backend.app.domain.reports.ledger_queries import fetch_account_balances
from finance_backend.app.models.ledger_enums import AccountType
from finance_backend.app.schemas.reports import (
    DREAccountDetail, DREPeriod, FinancialSummary, Period, ReportResult, SummaryIndicators, SummaryTotals,
)

logger = logging.getLogger(__name__)

ONE = Decimal("1")


def previous_period(period: Period) -> Period:
    """The period of the same length that ends the day before ``period`` starts."""
    shift = timedelta(days=period.days + 1)
    return Period(**{"from": period.from_ - shift, "to": period.to - shift})


def current_liquidity(details: List[DREAccountDetail], total_despesas: Decimal) -> Decimal:
    """Current asset balances (cash and banks) over expenses, the latter floored at 1."""
    ativo_circulante = sum(
        (
            d.saldo_final for d in details
            if d.conta_tipo == AccountType.ASSET.value and d.conta_codigo.startswith(settings.cash_account_prefix)
        ),
        ZERO,
    )
    return to_money(ativo_circulante / max(total_despesas, ONE))


class FinancialSummaryService:

    @staticmethod
    async def get_summary(
        db: AsyncSession,
        period: Period,
        unidade_id: Optional[str] = None,
        balance_source: BalanceSource = fetch_account_balances,
    ) -> ReportResult[FinancialSummary]:
        """
        Totals and indicators for a period.

        Never raises. If the previous period cannot be read the summary is
        still returned, with growth reported as 0.
        """
        unidade_id = unidade_id or settings.default_unidade_id

        try:
            rows = await store_call(
                balance_source(db, period.from_, period.to, unidade_id),
                ReportUnavailable,
                "Erro ao buscar dados para resumo",
            )
        except FinancialError as e:
            logger.error("Summary aggregation failed", extra={"unidade_id": unidade_id, "error_kind": e.kind})
            return ReportResult(success=False, error=e.message, error_kind=e.kind, retryable=e.retryable)
        except Exception:
            logger.exception("Unexpected error generating summary", extra={"unidade_id": unidade_id})
            error = ReportUnavailable("Erro inesperado ao gerar resumo financeiro")
            return ReportResult(success=False, error=error.message, error_kind=error.kind, retryable=error.retryable)

        details = [parse_account_row(row) for row in rows]
        dre = build_dre(details, period, unidade_id)

        previous = previous_period(period)
        try:
            previous_rows = await store_call(
                balance_source(db, previous.from_, previous.to, unidade_id),
                ReportUnavailable,
            )
        except FinancialError as e:
            logger.warning(
                "Previous period unavailable for summary",
                extra={"unidade_id": unidade_id, "error_kind": e.kind},
            )
            crescimento = ZERO
        else:
            previous_dre = build_dre([parse_account_row(row) for row in previous_rows], previous, unidade_id)
            crescimento = variation(
                dre.receitas.receita_liquida, previous_dre.receitas.receita_liquida
            ).percentage

        summary = FinancialSummary(
            periodo=DREPeriod(data_inicio=period.from_, data_fim=period.to, unidade_id=unidade_id),
            resumo=SummaryTotals(
                total_receitas=dre.receitas.receita_liquida,
                total_despesas=dre.despesas.total_despesas + dre.custos.custos_servicos,
                lucro_prejuizo=dre.resultado.lucro_liquido,
                margem_liquida=dre.margem.margem_liquida,
            ),
            indicadores=SummaryIndicators(
                liquidez_atual=current_liquidity(details, dre.despesas.total_despesas),
                rentabilidade=percentage(dre.resultado.lucro_liquido, dre.receitas.receita_liquida),
                crescimento_periodo=crescimento,
            ),
        )

        logger.info(
            "Financial summary generated",
            extra={"unidade_id": unidade_id, "from": str(period.from_), "to": str(period.to)},
        )
        return ReportResult[FinancialSummary](success=True, data=summary)
