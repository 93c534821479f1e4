"""
Authentication dependencies for FastAPI.

JWT bearer authentication for the report endpoints and shared-secret
verification for the payment provider webhook.
"""

import hmac
import logging
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from finance_backend.app.core.jwt import decode_access_token
from finance_backend.app.core.config import settings

logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Users live in the identity provider; the token is the only source of
    the caller's identity and role.

    Raises:
        HTTPException: 401 if the token is invalid or carries no subject
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def verify_asaas_token(
    asaas_access_token: Optional[str] = Header(default=None, alias="asaas-access-token"),
) -> None:
    """
    Verify the shared secret sent by Asaas on every webhook call.

    Verification is skipped when no token is configured (local setups).
    """
    expected = settings.asaas_webhook_token
    if not expected:
        return

    if not asaas_access_token or not hmac.compare_digest(asaas_access_token, expected):
        logger.warning("Rejected webhook call with invalid access token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de webhook inválido",
        )
