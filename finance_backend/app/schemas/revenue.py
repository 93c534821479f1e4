"""
Revenue Schemas.

Payment provider webhook payloads and revenue pipeline results.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Dict, Optional, List
from pydantic import BaseModel, Field, PlainSerializer
from finance_backend.app.models.ledger_enums import RevenueStatus

# Decimal internally, JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class PaymentWebhookData(BaseModel):
    """
    Payment object sent by Asaas.

    ``value`` is in minor units (cents): 50000 means 500.00.
    """
    id: str = Field(..., min_length=1, description="Provider payment id")
    customer: str = Field(..., min_length=1, description="Provider customer id")
    subscription: Optional[str] = None
    value: Decimal = Field(..., description="Amount in minor units")
    description: str = ""
    payment_date: date = Field(..., alias="date")
    next_due_date: Optional[date] = Field(default=None, alias="nextDueDate")
    billing_type: Optional[str] = Field(default=None, alias="billingType")
    invoice_url: Optional[str] = Field(default=None, alias="invoiceUrl")
    transaction_receipt_url: Optional[str] = Field(default=None, alias="transactionReceiptUrl")
    status: Optional[str] = None

    class Config:
        populate_by_name = True


class AsaasWebhookEvent(BaseModel):
    """Webhook envelope: ``{event, payment, id?}``."""
    event: str
    payment: PaymentWebhookData
    id: Optional[str] = Field(default=None, description="Webhook delivery id")
    timestamp: Optional[datetime] = None


class AutomaticRevenueResponse(BaseModel):
    """Schema for displaying an automatic revenue record."""
    id: int
    payment_id: str
    customer_id: Optional[str]
    subscription_id: Optional[str] = None
    value: Money
    description: Optional[str] = None
    billing_type: Optional[str] = None
    invoice_url: Optional[str] = None
    transaction_receipt_url: Optional[str] = None
    ledger_entry_id: int
    unidade_id: str
    status: RevenueStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RevenueProcessingResult(BaseModel):
    """
    Outcome of one pipeline run.

    Either ``success`` with the created record, or a failure carrying the
    error message, its kind and whether the queue may retry it.
    """
    success: bool
    data: Optional[AutomaticRevenueResponse] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: Optional[bool] = None


class WebhookAck(BaseModel):
    """Response returned to the payment provider."""
    received: bool = True
    processed: bool = False
    result: Optional[RevenueProcessingResult] = None


class RevenueListResponse(BaseModel):
    """Paginated automatic revenue listing."""
    items: List[AutomaticRevenueResponse]
    total: int
    page: int
    page_size: int


class RevenueStatsResponse(BaseModel):
    """Automatic revenue statistics for one tenant."""
    unidade_id: str
    total_count: int
    total_value: Money = Field(..., description="Sum of processed revenue values")
    by_status: Dict[str, int]
    last_30_days_count: int
    generated_at: datetime
