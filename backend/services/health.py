"""
Health check service.

Reports database reachability, a device fleet summary and whether the
built-in JWT/session secrets are still in use.  Only the database check can
make the service ``unhealthy``; anything else degrades it.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import func, select, text

from config import settings
from database import AsyncSessionLocal
from models import Device

logger = logging.getLogger(__name__)

_started = time.monotonic()

_DEFAULT_SECRETS = {"change-me-in-production", "change-me-session-secret"}
_CRITICAL_CHECKS = {"database"}


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "degraded" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


async def check_database() -> ComponentHealth:
    start = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(
            name="database",
            status="error",
            message="Database unreachable",
            response_time_ms=_elapsed_ms(start),
        )
    return ComponentHealth(name="database", status="ok", response_time_ms=_elapsed_ms(start))


async def check_devices() -> ComponentHealth:
    """Summarise the registered fleet; an empty fleet is still healthy."""
    start = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            total = await session.scalar(select(func.count(Device.id)))
            online = await session.scalar(
                select(func.count(Device.id)).where(Device.status == "online")
            )
    except Exception as e:
        logger.warning(f"Device summary unavailable: {e}")
        return ComponentHealth(
            name="devices",
            status="degraded",
            message="Device summary unavailable",
            response_time_ms=_elapsed_ms(start),
        )
    return ComponentHealth(
        name="devices",
        status="ok",
        message=f"{online or 0} of {total or 0} devices online",
        response_time_ms=_elapsed_ms(start),
    )


def check_secrets() -> ComponentHealth:
    if {settings.JWT_SECRET, settings.SESSION_SECRET} & _DEFAULT_SECRETS:
        return ComponentHealth(
            name="secrets",
            status="degraded",
            message="Default JWT or session secret in use",
        )
    return ComponentHealth(name="secrets", status="ok")


def _overall(checks: list[ComponentHealth]) -> str:
    if any(c.status == "error" and c.name in _CRITICAL_CHECKS for c in checks):
        return "unhealthy"
    if any(c.status != "ok" for c in checks):
        return "degraded"
    return "healthy"


async def run_health_checks() -> HealthResponse:
    checks = [await check_database(), await check_devices(), check_secrets()]
    return HealthResponse(
        status=_overall(checks),
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _started, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
