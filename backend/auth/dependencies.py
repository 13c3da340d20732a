"""
FastAPI dependencies for authentication and role-based access control.

Usage in routers::

    from auth.dependencies import require_admin, get_current_user

    @router.delete("/devices/{id}")
    async def delete_device(user: User = Depends(require_admin)):
        ...

    @router.get("/alerts")
    async def list_alerts(user: User = Depends(require_any_authenticated)):
        ...
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.user import User

from .jwt_service import subject_user_id, verify_access_token
from .permissions import Role

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate JWT from the ``Authorization: Bearer <token>`` header.

    Returns the authenticated :class:`User`.

    Raises:
        HTTPException 401 if token is missing, invalid, or the user is inactive.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = verify_access_token(credentials.credentials)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = subject_user_id(payload)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


def require_role(*allowed_roles: Role):
    """
    Dependency factory for role-based access control.

    Returns a FastAPI dependency that validates the authenticated user
    has one of the specified roles.  The role is re-read from the user row
    on every request, so a role change takes effect without a new token.

    Usage::

        @router.delete("/alerts/{id}")
        async def delete_alert(
            alert_id: int,
            user: User = Depends(require_role(Role.ADMIN)),
        ):
            ...
    """
    allowed = {Role(r) for r in allowed_roles}

    async def _check_role(user: User = Depends(get_current_user)) -> User:
        role = Role.from_value(user.role)
        if role not in allowed:
            logger.warning(
                f"Role '{role.value}' denied; required: "
                f"{', '.join(sorted(r.value for r in allowed))}",
                extra={"user_id": user.id},
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    f"Insufficient permissions. Your role '{role.value}' "
                    f"does not have access. Required: "
                    f"{', '.join(sorted(r.value for r in allowed))}"
                ),
            )
        return user

    return _check_role


# ── Convenience shortcuts ──────────────────────────────────────────────
require_admin = require_role(Role.ADMIN)
require_any_authenticated = require_role(Role.USER, Role.ADMIN)
