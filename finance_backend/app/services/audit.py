"""
Audit logging service for tracking financial events.

Provides centralized logging for compliance and security monitoring.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from finance_backend.app.core.exceptions import FinancialError, StoreUnavailable
from finance_backend.app.core.reliability import safe_rollback, store_call
from finance_backend.app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Revenue pipeline
    FINANCIAL_REVENUE_CREATED = "FINANCIAL_REVENUE_CREATED"
    FINANCIAL_REVENUE_PROCESSING_ERROR = "FINANCIAL_REVENUE_PROCESSING_ERROR"

    # Reports
    DRE_GENERATED = "DRE_GENERATED"
    DRE_EXPORTED = "DRE_EXPORTED"
    FINANCIAL_VALIDATION_RUN = "FINANCIAL_VALIDATION_RUN"
    FINANCIAL_AUDIT_REPORT = "FINANCIAL_AUDIT_REPORT"

    # Ops
    DLQ_RETRIED = "DLQ_RETRIED"
    CACHE_CLEARED = "CACHE_CLEARED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    actor_username: Optional[str] = None,
    resource: Optional[str] = None,
    session_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a financial or admin event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action ("system" for webhooks)
        actor_username: Username of actor
        resource: Table or report the event refers to
        session_id: Request context (webhook id, report request id)
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        resource=resource,
        session_id=session_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def try_log_event(db: AsyncSession, action: str, **kwargs) -> Optional[AuditLog]:
    """
    Log an event without letting an audit failure reach the caller.

    Used after a financial operation has already reached its outcome.
    """
    try:
        return await store_call(log_event(db, action, **kwargs), StoreUnavailable)
    except FinancialError:
        logger.warning("Failed to write audit event", extra={"action": action}, exc_info=True)
        await safe_rollback(db)
        return None

