"""
Append-only writers for blocked attempts and security alerts.

Both recorders are best-effort: a failed write is logged, the session is
rolled back, and ``None`` is returned.  They never raise, so an audit write
can not change a decision that has already been made.

Repeated attempts from the same source are not coalesced; every call
inserts a new row with ``attempt_count = 1`` unless the caller says otherwise.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import BlockedAttempt, SecurityAlert

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_REASON = "unauthorized_access"


async def record_blocked_attempt(
    db: AsyncSession,
    *,
    user_id: Optional[int],
    source_ip: str,
    target_device_id: Optional[int],
    attempt_type: str,
    user_agent: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    attempt_count: int = 1,
) -> Optional[BlockedAttempt]:
    """
    Insert a blocked attempt row.

    ``request_details`` always carries ``user_id`` and ``blocked_reason``
    (taken from ``details["reason"]``), merged with the caller's details.
    """
    details = details or {}
    # Caller details never override the acting user or the reason
    request_details = {
        **details,
        "user_id": user_id,
        "blocked_reason": details.get("reason", DEFAULT_BLOCKED_REASON),
    }
    context = {"user_id": user_id, "device_id": target_device_id, "source_ip": source_ip}

    try:
        attempt = BlockedAttempt(
            source_ip=source_ip,
            target_device_id=target_device_id,
            attempt_type=attempt_type,
            blocked_at=datetime.now(timezone.utc),
            attempt_count=attempt_count,
            user_agent=user_agent,
            request_details=request_details,
        )
        db.add(attempt)
        await db.commit()
        await db.refresh(attempt)
    except Exception:
        logger.error("Error logging blocked attempt", exc_info=True, extra=context)
        await _rollback_quietly(db)
        return None

    logger.warning(
        f"Blocked device access attempt logged: {attempt_type} "
        f"(reason={request_details['blocked_reason']})",
        extra=context,
    )
    return attempt


async def record_security_alert(
    db: AsyncSession,
    *,
    device_id: Optional[int],
    alert_type: str,
    severity: str,
    description: Optional[str],
    source_ip: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[SecurityAlert]:
    """Insert a security alert with status ``active`` stamped at server time."""
    context = {"device_id": device_id, "source_ip": source_ip}

    try:
        alert = SecurityAlert(
            device_id=device_id,
            alert_type=alert_type,
            severity=severity,
            description=description,
            source_ip=source_ip,
            detected_at=datetime.now(timezone.utc),
            status="active",
            alert_metadata=metadata,
        )
        db.add(alert)
        await db.commit()
        await db.refresh(alert)
    except Exception:
        logger.error("Error creating security alert", exc_info=True, extra=context)
        await _rollback_quietly(db)
        return None

    logger.warning(
        f"Security alert created: {alert_type} [{severity}]",
        extra=context,
    )
    return alert


async def _rollback_quietly(db: AsyncSession) -> None:
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.warning("Rollback after failed audit write also failed", exc_info=True)
