"""
Automatic revenue database model.

One row per confirmed provider payment, linked to the ledger entry that
booked it.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, JSON, Enum
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.ledger_enums import RevenueStatus


class AutomaticRevenue(Base):
    """
    AutomaticRevenue model (receitas_automaticas).

    payment_id is UNIQUE: the store-level constraint backing the duplicate
    guard when two deliveries of the same payment race each other.
    """
    __tablename__ = "receitas_automaticas"
    # created_at is read back in the INSERT so the committed row needs no refresh
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Provider references
    payment_id = Column(String(100), nullable=False, unique=True, index=True)
    customer_id = Column(String(100), nullable=True, index=True)
    subscription_id = Column(String(100), nullable=True)

    # Financials (major units)
    value = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)
    billing_type = Column(String(50), nullable=True)
    invoice_url = Column(String(500), nullable=True)
    transaction_receipt_url = Column(String(500), nullable=True)

    ledger_entry_id = Column(Integer, ForeignKey("lancamentos_contabeis.id"), nullable=False, index=True)

    unidade_id = Column(String(50), nullable=False, index=True)
    status = Column(
        Enum(RevenueStatus, name="revenue_status", values_callable=lambda e: [m.value for m in e]),
        default=RevenueStatus.PROCESSED,
        nullable=False,
        index=True,
    )
    webhook_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AutomaticRevenue(id={self.id}, payment='{self.payment_id}', value={self.value})>"
