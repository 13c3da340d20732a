"""
JWT access tokens (python-jose, HS256 by default).

Tokens carry only the user id (``sub``) and the role at issue time; the role
used for authorization is always re-read from the database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings

TOKEN_TYPE = "access"


def token_lifetime() -> timedelta:
    return timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)


def create_access_token(
    user_id: int,
    role: str,
    extra_claims: Optional[Dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token for ``user_id``.

    Args:
        user_id: Database user ID, stored as the string ``sub`` claim.
        role: Role at issue time (informational only).
        extra_claims: Additional claims; may override the defaults.
        expires_delta: Custom lifetime (default ``JWT_EXPIRATION_MINUTES``).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": str(role),
        "iat": now,
        "exp": now + (expires_delta if expires_delta is not None else token_lifetime()),
        "type": TOKEN_TYPE,
    }
    if extra_claims:
        payload.update(extra_claims)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Decode ``token`` and check it is an access token.

    Raises:
        JWTError: bad signature, expired, or a different token type.
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != TOKEN_TYPE:
        raise JWTError("Not an access token")
    return payload


def subject_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """The numeric user id in ``sub``, or None when it is missing or malformed."""
    sub = str(payload.get("sub") or "")
    if not sub.isdigit():
        return None
    return int(sub)
