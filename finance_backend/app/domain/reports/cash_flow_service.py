"""
Cash Flow Service.

Inflows and outflows on cash accounts grouped by day, week or month,
with a running balance.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import FinancialError, ReportUnavailable
from finance_backend.app.core.reliability import store_call
from finance_backend.app.domain.money import ZERO, parse_amount, to_money
from finance_backend.app.domain.reports.ledger_queries import fetch_cash_entries
from finance_backend.app.schemas.reports import (
    CashFlowData, CashFlowEntry, CashFlowPeriod, CashFlowSeries, CashFlowSummary, Period, ReportResult,
)

logger = logging.getLogger(__name__)


def group_key(day: date, group_by: str) -> date:
    """First day of the bucket: the day itself, the Sunday before, or the 1st."""
    if group_by == "week":
        return day - timedelta(days=(day.weekday() + 1) % 7)
    if group_by == "month":
        return day.replace(day=1)
    return day


def group_label(key: date, group_by: str) -> str:
    if group_by == "week":
        return f"{key:%d/%m/%Y} - {key + timedelta(days=6):%d/%m/%Y}"
    if group_by == "month":
        return f"{key:%m/%Y}"
    return f"{key:%d/%m/%Y}"


class CashFlowService:

    @staticmethod
    async def get_cash_flow(
        db: AsyncSession,
        period: Period,
        unidade_id: Optional[str] = None,
        group_by: str = "day",
    ) -> ReportResult[CashFlowData]:
        """
        Cash flow for a period.

        An entry is an inflow when only its debit side is a cash account and
        an outflow when only its credit side is. Transfers between two cash
        accounts move nothing.
        """
        unidade_id = unidade_id or settings.default_unidade_id
        prefix = settings.cash_account_prefix

        try:
            rows = await store_call(
                fetch_cash_entries(db, period.from_, period.to, unidade_id, prefix),
                ReportUnavailable,
                "Erro ao buscar dados do fluxo de caixa",
            )
        except FinancialError as e:
            logger.error("Cash flow query failed", extra={"unidade_id": unidade_id, "error_kind": e.kind})
            return ReportResult(success=False, error=e.message, error_kind=e.kind, retryable=e.retryable)

        buckets: Dict[date, List[dict]] = defaultdict(list)
        for row in rows:
            buckets[group_key(row["competence_date"], group_by)].append(row)

        entradas: List[CashFlowEntry] = []
        saidas: List[CashFlowEntry] = []
        saldo_liquido: List[CashFlowEntry] = []
        running = ZERO

        for key in sorted(buckets):
            inflow = ZERO
            outflow = ZERO
            for row in buckets[key]:
                amount = parse_amount(row["amount"])
                debit_is_cash = (row["debit_code"] or "").startswith(prefix)
                credit_is_cash = (row["credit_code"] or "").startswith(prefix)
                if debit_is_cash and not credit_is_cash:
                    inflow += amount
                elif credit_is_cash and not debit_is_cash:
                    outflow += amount

            running += inflow - outflow
            label = group_label(key, group_by)
            entradas.append(CashFlowEntry(data=key, valor=to_money(inflow), descricao=f"Entradas do {label}", tipo="entrada"))
            saidas.append(CashFlowEntry(data=key, valor=to_money(outflow), descricao=f"Saídas do {label}", tipo="saida"))
            saldo_liquido.append(
                CashFlowEntry(data=key, valor=to_money(running), descricao=f"Saldo acumulado até {label}", tipo="saldo")
            )

        saldo_medio = (
            sum((s.valor for s in saldo_liquido), ZERO) / len(saldo_liquido) if saldo_liquido else ZERO
        )

        data = CashFlowData(
            periodo=CashFlowPeriod(
                data_inicio=period.from_, data_fim=period.to, unidade_id=unidade_id, agrupamento=group_by
            ),
            fluxo=CashFlowSeries(entradas=entradas, saidas=saidas, saldo_liquido=saldo_liquido),
            resumo=CashFlowSummary(
                total_entradas=to_money(sum((e.valor for e in entradas), ZERO)),
                total_saidas=to_money(sum((s.valor for s in saidas), ZERO)),
                saldo_final=to_money(running),
                saldo_medio=to_money(Decimal(saldo_medio)),
            ),
        )
        return ReportResult[CashFlowData](success=True, data=data)
