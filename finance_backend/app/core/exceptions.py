"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the financial error taxonomy and
global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Financial error taxonomy
#
# Each kind states whether the queue/caller may retry it. The revenue
# pipeline and the report services catch these at their boundary and turn
# them into structured results.

class FinancialError(AppException):
    """Base class for revenue pipeline and report failures."""

    kind = "FinancialError"
    retryable = False
    default_message = "Erro financeiro"

    def __init__(self, message: str = None, details: Dict[str, Any] = None,
                 error_code: str = "ERR_FIN_000", status_code: int = 500):
        super().__init__(
            message=message or self.default_message,
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class DuplicateRevenue(FinancialError):
    """The same payment was already applied. Terminal, not retryable."""

    kind = "DuplicateRevenue"
    default_message = "Receita já processada para este pagamento"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_DUPLICATE", status.HTTP_409_CONFLICT)


class AccountNotFound(FinancialError):
    """A required chart-of-accounts entry is missing. Needs an operator."""

    kind = "AccountNotFound"
    default_message = "Conta contábil padrão não encontrada"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_ACCOUNT", status.HTTP_422_UNPROCESSABLE_ENTITY)


class InvalidPaymentData(FinancialError):
    """The payment cannot produce a valid ledger entry (e.g. non-positive value)."""

    kind = "InvalidPaymentData"
    default_message = "Valor do pagamento inválido"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_PAYMENT", status.HTTP_422_UNPROCESSABLE_ENTITY)


class StoreUnavailable(FinancialError):
    """The store failed or timed out on a read."""

    kind = "StoreUnavailable"
    retryable = True
    default_message = "Banco de dados indisponível"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_STORE", status.HTTP_503_SERVICE_UNAVAILABLE)


class LedgerWriteFailed(FinancialError):
    """The ledger entry insert failed. Nothing to compensate."""

    kind = "LedgerWriteFailed"
    retryable = True
    default_message = "Erro ao criar lançamento contábil"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_LEDGER", status.HTTP_503_SERVICE_UNAVAILABLE)


class RevenueWriteFailed(FinancialError):
    """The revenue insert failed after the ledger entry was written."""

    kind = "RevenueWriteFailed"
    retryable = True
    default_message = "Erro ao criar registro de receita"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_REVENUE", status.HTTP_503_SERVICE_UNAVAILABLE)


class ReportUnavailable(FinancialError):
    """A read-side report could not be produced."""

    kind = "ReportUnavailable"
    retryable = True
    default_message = "Erro ao gerar relatório"

    def __init__(self, message: str = None, details: Dict[str, Any] = None):
        super().__init__(message, details, "ERR_FIN_REPORT", status.HTTP_503_SERVICE_UNAVAILABLE)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Dados inválidos",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "Erro interno do servidor",
            "details": {}
        }
    )
