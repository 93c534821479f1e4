"""
Security guards for role-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, status
from finance_backend.app.models.enums import UserRole
from finance_backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/reports/dre")
        async def dre(current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.MANAGER]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        # Convert string role to UserRole enum
        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


# Shared guards
require_finance_reader = require_role([UserRole.ADMIN, UserRole.MANAGER])
require_admin = require_role([UserRole.ADMIN])


def resolve_unidade(current_user: dict, requested: Optional[str]) -> Optional[str]:
    """
    Tenant the caller is allowed to read.

    A token bound to a unit (``unidade_id`` claim) reads only that unit,
    unless it belongs to an ADMIN. Unbound tokens read the unit requested.

    Raises:
        HTTPException 403 if a bound token asks for another unit
    """
    bound = current_user.get("unidade_id")
    if not bound or current_user.get("role") == UserRole.ADMIN.value:
        return requested

    if requested and requested != bound:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado à unidade solicitada"
        )
    return bound
