"""
Financial Report Schemas.

DRE (P&L), comparison, export, summary, cash flow, validation and audit
report.
Field names follow the report columns the front-end renders.
"""

from datetime import date, datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar
from pydantic import BaseModel, Field, model_validator

from finance_backend.app.schemas.revenue import Money

DataT = TypeVar("DataT")


class Period(BaseModel):
    """Inclusive date range."""
    from_: date = Field(..., alias="from")
    to: date

    class Config:
        populate_by_name = True

    @model_validator(mode="after")
    def check_order(self):
        if self.to < self.from_:
            raise ValueError("Data final deve ser maior ou igual à data inicial")
        return self

    @property
    def days(self) -> int:
        return (self.to - self.from_).days


class ReportResult(BaseModel, Generic[DataT]):
    """``{success, data}`` or ``{success: false, error, error_kind, retryable}``."""
    success: bool
    data: Optional[DataT] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: Optional[bool] = None


# Requests

class DRERequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None
    include_audit_trail: bool = False


class DREComparisonRequest(BaseModel):
    current: Period
    previous: Period
    unidade_id: Optional[str] = None


class DREExportRequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None
    format: Literal["json", "csv"] = "json"


class CashFlowRequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None
    group_by: Literal["day", "week", "month"] = "day"


class ValidationRequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None
    include_detailed_audit: bool = False


class AuditReportRequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None


class SummaryRequest(BaseModel):
    period: Period
    unidade_id: Optional[str] = None


# DRE

class DREPeriod(BaseModel):
    data_inicio: date
    data_fim: date
    unidade_id: str


class DREAccountDetail(BaseModel):
    conta_id: Optional[int] = None
    conta_codigo: str
    conta_nome: str
    conta_tipo: str
    saldo_debito: Money
    saldo_credito: Money
    saldo_final: Money


class DREReceitas(BaseModel):
    receita_bruta: Money
    deducoes: Money
    receita_liquida: Money
    detalhes: List[DREAccountDetail] = []


class DRECustos(BaseModel):
    custos_servicos: Money
    detalhes: List[DREAccountDetail] = []


class DREDespesas(BaseModel):
    total_despesas: Money
    detalhes: List[DREAccountDetail] = []


class DREResultado(BaseModel):
    lucro_bruto: Money
    lucro_operacional: Money
    lucro_antes_ir: Money
    provisao_ir: Money
    lucro_liquido: Money


class DREMargem(BaseModel):
    """Margins in percent of net revenue."""
    margem_bruta: Money
    margem_operacional: Money
    margem_liquida: Money


class DREAuditDetail(BaseModel):
    conta_id: Optional[int] = None
    conta_nome: str
    total_lancamentos: int
    lancamentos_ids: List[int]
    valores_individuais: List[Money]


class DREData(BaseModel):
    periodo: DREPeriod
    receitas: DREReceitas
    custos: DRECustos
    despesas: DREDespesas
    resultado: DREResultado
    margem: DREMargem
    audit_trail: Optional[List[DREAuditDetail]] = None


class Variation(BaseModel):
    absolute: Money
    percentage: Money


class DREComparison(BaseModel):
    current: DREData
    previous: DREData
    variations: Dict[str, Variation]


class DREExport(BaseModel):
    content: str
    filename: str
    mime_type: str


# Financial summary

class SummaryTotals(BaseModel):
    total_receitas: Money
    total_despesas: Money = Field(..., description="Expenses plus service costs")
    lucro_prejuizo: Money
    margem_liquida: Money


class SummaryIndicators(BaseModel):
    liquidez_atual: Money = Field(..., description="Current assets over expenses")
    rentabilidade: Money
    crescimento_periodo: Money = Field(..., description="Net revenue growth over the previous period, in %")


class FinancialSummary(BaseModel):
    periodo: DREPeriod
    resumo: SummaryTotals
    indicadores: SummaryIndicators


# Cash flow

class CashFlowEntry(BaseModel):
    data: date
    valor: Money
    descricao: str
    tipo: Literal["entrada", "saida", "saldo"]


class CashFlowPeriod(DREPeriod):
    agrupamento: str


class CashFlowSeries(BaseModel):
    entradas: List[CashFlowEntry]
    saidas: List[CashFlowEntry]
    saldo_liquido: List[CashFlowEntry]


class CashFlowSummary(BaseModel):
    total_entradas: Money
    total_saidas: Money
    saldo_final: Money
    saldo_medio: Money


class CashFlowData(BaseModel):
    periodo: CashFlowPeriod
    fluxo: CashFlowSeries
    resumo: CashFlowSummary


# Validation

Severity = Literal["critical", "high", "medium", "low"]
CheckStatus = Literal["passed", "failed", "warning", "inconclusive"]


class ValidationFinding(BaseModel):
    code: str
    message: str
    severity: Severity
    check: str
    affected_data: Dict[str, Any] = {}
    suggested_fix: Optional[str] = None


class CheckResult(BaseModel):
    name: str
    status: CheckStatus
    blocking: bool
    findings_count: int = 0
    details: Dict[str, Any] = {}
    error: Optional[str] = None


class ValidationSummary(BaseModel):
    total_checks: int
    passed: int
    failed: int
    warnings: int
    inconclusive: int


class FinancialValidation(BaseModel):
    isValid: bool
    periodo: DREPeriod
    summary: ValidationSummary
    checks: List[CheckResult]
    findings: List[ValidationFinding]
    generated_at: datetime


# Audit report

class Reconciliation(BaseModel):
    total_debits: Money
    total_credits: Money
    balance_difference: Money
    is_balanced: bool


class DataQuality(BaseModel):
    completeness_score: Money
    accuracy_score: Money
    consistency_score: Money
    overall_score: Money


class SuspiciousEntry(BaseModel):
    lancamento_id: int
    reason: str
    severity: Severity
    details: Dict[str, Any] = {}


class AuditReport(BaseModel):
    periodo: DREPeriod
    validations: FinancialValidation
    reconciliation: Reconciliation
    data_quality: DataQuality
    suspicious_entries: List[SuspiciousEntry]
