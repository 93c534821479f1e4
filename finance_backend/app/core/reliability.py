"""
Reliability utilities.

Bounds every store round-trip with a timeout and maps store failures to
the financial error kind of the calling step.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Type
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from finance_backend.app.core.config import settings
from finance_backend.app.core.exceptions import FinancialError

logger = logging.getLogger(__name__)


async def store_call(
    awaitable: Awaitable[Any],
    error_cls: Type[FinancialError],
    message: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    Await a store operation with a timeout.

    A timeout and a driver/ORM error both surface as ``error_cls``, so a
    slow store and a broken store look the same to the caller.
    """
    timeout = timeout if timeout is not None else settings.store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error(
            "Store call timed out",
            extra={"error_kind": error_cls.kind, "timeout_seconds": timeout},
        )
        raise error_cls(message, details={"reason": "timeout"}) from e
    except (SQLAlchemyError, OSError) as e:
        logger.error(
            "Store call failed",
            extra={"error_kind": error_cls.kind, "reason": type(e).__name__},
        )
        raise error_cls(message, details={"reason": type(e).__name__}) from e


async def safe_rollback(db: AsyncSession, timeout: Optional[float] = None) -> bool:
    """
    Roll back the session, bounded by the store timeout.

    Runs on failure paths only, so it never raises: the caller's original
    error stays the one reported. Returns False when the rollback failed.
    """
    timeout = timeout if timeout is not None else settings.store_timeout_seconds
    try:
        await asyncio.wait_for(db.rollback(), timeout=timeout)
    except (asyncio.TimeoutError, SQLAlchemyError, OSError) as e:
        logger.error("Session rollback failed", extra={"reason": type(e).__name__})
        return False
    return True
