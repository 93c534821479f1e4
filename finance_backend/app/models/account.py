"""
Chart-of-accounts database model.

Reference data: looked up by (code, active) and never written by the
revenue pipeline.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base
from finance_backend.app.models.ledger_enums import AccountType


class Account(Base):
    """
    Account model (contas_contabeis).

    Codes are hierarchical strings, e.g. "4.1.1.1" (RECEITA DE SERVIÇOS)
    under "4.1.1" under "4.1" under "4".
    """
    __tablename__ = "contas_contabeis"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    code = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(
        Enum(AccountType, name="account_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    level = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Account(id={self.id}, code='{self.code}', type='{self.account_type.value}')>"
