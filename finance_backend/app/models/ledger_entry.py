"""
Ledger entry database models.

Immutable double-entry accounting records.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Date, Enum, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.ledger_enums import EntryStatus, LedgerLineType


class LedgerEntry(Base):
    """
    Ledger Entry model (lancamentos_contabeis).

    Every entry carries exactly one debit line and one credit line of equal
    amount. NO updates allowed; the only deletion path is the compensating
    rollback of the revenue pipeline.

    Account and client ids are logical references only (no FK), so broken
    references stay visible to the financial validator.
    """
    __tablename__ = "lancamentos_contabeis"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Accounts (logical references to contas_contabeis.id)
    debit_account_id = Column(Integer, nullable=False, index=True)
    credit_account_id = Column(Integer, nullable=False, index=True)

    # Financials
    amount = Column(Numeric(15, 2), nullable=False)

    # Dates
    launch_date = Column(Date, nullable=False)
    competence_date = Column(Date, nullable=False, index=True)

    document_number = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    # Tenant / links
    unidade_id = Column(String(50), nullable=False, index=True)
    client_id = Column(Integer, nullable=True, index=True)

    status = Column(
        Enum(EntryStatus, name="entry_status", values_callable=lambda e: [m.value for m in e]),
        default=EntryStatus.CONFIRMED,
        nullable=False,
        index=True,
    )
    created_by = Column(String(100), nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    lines = relationship(
        "LedgerLine",
        back_populates="entry",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, amount={self.amount}, competence={self.competence_date})>"


class LedgerLine(Base):
    """
    One side (debit or credit) of a ledger entry.
    """
    __tablename__ = "lancamentos_contabeis_partidas"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    entry_id = Column(
        Integer,
        ForeignKey("lancamentos_contabeis.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id = Column(Integer, nullable=False, index=True)
    line_type = Column(
        Enum(LedgerLineType, name="ledger_line_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount = Column(Numeric(15, 2), nullable=False)

    entry = relationship("LedgerEntry", back_populates="lines")

    def __repr__(self):
        return f"<LedgerLine(id={self.id}, type='{self.line_type.value}', amount={self.amount})>"
