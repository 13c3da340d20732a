"""
Role model and device permission resolution.

The role stored on a user row is mapped onto the closed :class:`Role`
enumeration; capabilities are asked of the role rather than compared as
strings at call sites.

Device permission policy:
    admin — permitted on every device, unconditionally
    user  — no explicit device permission (no per-device ACL exists yet)

The resolver fails closed: a storage error during the user lookup is logged
and answered with "no permission".
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Role":
        """Map a stored role string onto the enum; unknown values get least privilege."""
        try:
            return cls(value)
        except ValueError:
            return cls.USER

    @property
    def can_access_all_devices(self) -> bool:
        return self is Role.ADMIN


VALID_ROLES = frozenset(role.value for role in Role)


class PermissionResolver:
    """Answers "does user U have explicit permission to access device D?"."""

    async def has_permission(
        self,
        db: AsyncSession,
        user_id: int,
        device_id: int,
    ) -> bool:
        try:
            result = await db.execute(select(User.role).where(User.id == user_id))
            stored_role = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.error(
                "Error checking device permissions",
                exc_info=True,
                extra={"user_id": user_id, "device_id": device_id},
            )
            return False

        if stored_role is None:
            return False

        return Role.from_value(stored_role).can_access_all_devices


permission_resolver = PermissionResolver()
