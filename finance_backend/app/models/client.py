"""
Client database model.

Read-only from the revenue pipeline's perspective: only used to link a
ledger entry to the customer that paid.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base


class Client(Base):
    """Client model, matched to payments by the provider customer id."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    asaas_customer_id = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"
