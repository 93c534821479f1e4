"""
Audit Log Database Model.

Tracks financial state transitions and report generation for compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from finance_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - FINANCIAL_REVENUE_CREATED / FINANCIAL_REVENUE_PROCESSING_ERROR
    - DRE_GENERATED
    - FINANCIAL_VALIDATION_RUN
    - DLQ_RETRIED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action ("system" for webhook processing)
    actor_id = Column(String(100), index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(50), nullable=True, index=True)

    # Request context (webhook id, report session id)
    session_id = Column(String(100), nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username})>"
