"""
FastAPI Application Entry Point.

This is the main application file for the Finance Backend: Asaas revenue
ingestion and financial reports.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from finance_backend.app.core.config import settings
from finance_backend.app.api.v1.router import router as api_v1_router
from finance_backend.app.db.session import engine, Base
from finance_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from finance_backend.app.core.redis_client import ping_redis
from finance_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from finance_backend.app.models.account import Account
from finance_backend.app.models.client import Client
from finance_backend.app.models.ledger_entry import LedgerEntry, LedgerLine
from finance_backend.app.models.automatic_revenue import AutomaticRevenue
from finance_backend.app.models.audit_log import AuditLog
from finance_backend.app.models.dlq import DeadLetterQueue


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Applies the configured log level.
    2. Creates database tables on startup.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Asaas revenue ingestion and financial reports (DRE, cash flow, validation)",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and cache reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "up" if redis_ok else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Finance Backend API",
        "docs": "/docs",
        "health": "/health",
    }
