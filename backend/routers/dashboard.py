"""
Dashboard endpoints.

    GET /api/dashboard/stats   — headline counters
    GET /api/dashboard         — counters plus recent active alerts and device status
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import BlockedAttempt, Device, SecurityAlert, User
from auth.dependencies import require_any_authenticated

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])

BLOCKED_WINDOW = timedelta(hours=24)
OVERVIEW_LIMIT = 10


def last_seen_label(last_seen: Optional[datetime], now: datetime) -> str:
    """Human readable age of ``last_seen``: never / now / N min ago / N hours ago."""
    if last_seen is None:
        return "never"
    if last_seen.tzinfo is None:
        # SQLite hands back naive values; everything is stored in UTC
        last_seen = last_seen.replace(tzinfo=timezone.utc)
    age = now - last_seen
    if age <= timedelta(minutes=5):
        return "now"
    if age <= timedelta(hours=1):
        return f"{int(age.total_seconds() // 60)} min ago"
    return f"{int(age.total_seconds() // 3600)} hours ago"


async def _collect_stats(db: AsyncSession) -> dict[str, Any]:
    now = datetime.now(timezone.utc)

    total_devices = (await db.execute(select(func.count(Device.id)))).scalar() or 0
    active_threats = (
        await db.execute(
            select(func.count(SecurityAlert.id)).where(SecurityAlert.status == "active")
        )
    ).scalar() or 0
    blocked_attempts = (
        await db.execute(
            select(func.count(BlockedAttempt.id)).where(
                BlockedAttempt.blocked_at >= now - BLOCKED_WINDOW
            )
        )
    ).scalar() or 0

    return {
        "totalDevices": total_devices,
        "activeThreats": active_threats,
        "blockedAttempts": blocked_attempts,
        "systemStatus": "Active",
        "timestamp": now.isoformat(),
    }


@router.get("/stats")
async def dashboard_stats(
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Total devices, active alerts and blocked attempts in the last 24 hours."""
    return await _collect_stats(db)


@router.get("")
async def dashboard_overview(
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Dashboard counters with the latest active alerts and device status."""
    stats = await _collect_stats(db)
    now = datetime.now(timezone.utc)

    alerts_result = await db.execute(
        select(
            SecurityAlert.id,
            SecurityAlert.alert_type,
            Device.name,
            SecurityAlert.detected_at,
            SecurityAlert.severity,
        )
        .outerjoin(Device, SecurityAlert.device_id == Device.id)
        .where(SecurityAlert.status == "active")
        .order_by(SecurityAlert.detected_at.desc(), SecurityAlert.id.desc())
        .limit(OVERVIEW_LIMIT)
    )
    recent_alerts = [
        {
            "id": alert_id,
            "type": alert_type,
            "device": device_name or "Unknown Device",
            "timestamp": detected_at,
            "severity": severity,
        }
        for alert_id, alert_type, device_name, detected_at, severity in alerts_result.all()
    ]

    devices_result = await db.execute(
        select(Device.id, Device.name, Device.status, Device.last_seen)
        .order_by(Device.last_seen.desc().nullslast(), Device.id)
        .limit(OVERVIEW_LIMIT)
    )
    devices = [
        {
            "id": device_id,
            "name": name,
            "status": status,
            "last_seen": last_seen,
            "last_seen_label": last_seen_label(last_seen, now),
        }
        for device_id, name, status, last_seen in devices_result.all()
    ]

    return {
        "stats": stats,
        "recent_alerts": recent_alerts,
        "devices": devices,
    }
