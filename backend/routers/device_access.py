"""
Device access endpoints.

    GET  /device-access                          — page data: devices, current connection, recent activity
    POST /device-access/connect/{device_id}      — run the access decision table
    POST /device-access/disconnect/{device_id}   — drop the session's connection

The device id is accepted as a raw path string so a malformed id is
reported by the decision engine (400 ``Invalid device ID``) rather than by
request validation.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import BlockedAttempt, Device, User
from auth.dependencies import require_any_authenticated
from schemas import BlockedAttemptResponse, DeviceResponse
from services.access_control import (
    CONNECT_FAILURE_MESSAGE,
    AccessDecision,
    AccessOutcome,
    access_engine,
)
from services.session_tracker import session_tracker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/device-access", tags=["device-access"])

RECENT_ACTIVITY_LIMIT = 10


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.get("")
async def device_access_overview(
    request: Request,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Devices with their security posture, the caller's connection and recent blocked attempts."""
    result = await db.execute(select(Device).order_by(Device.name))
    devices = result.scalars().all()

    activity_result = await db.execute(
        select(BlockedAttempt)
        .where(BlockedAttempt.request_details["user_id"].as_integer() == user.id)
        .order_by(BlockedAttempt.blocked_at.desc(), BlockedAttempt.id.desc())
        .limit(RECENT_ACTIVITY_LIMIT)
    )

    connection = session_tracker.get(request.session, user.id)

    return {
        "devices": [DeviceResponse.model_validate(d) for d in devices],
        "connected_device": connection.to_dict() if connection else None,
        "recent_activity": [
            BlockedAttemptResponse.model_validate(a)
            for a in activity_result.scalars().all()
        ],
    }


@router.post("/connect/{device_id}")
async def connect_device(
    device_id: str,
    request: Request,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Attempt to connect the caller's session to a device."""
    try:
        decision = await access_engine.connect(
            db,
            request.session,
            user_id=user.id,
            raw_device_id=device_id,
            source_ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except Exception:
        logger.error(
            "Device connection failed unexpectedly",
            exc_info=True,
            extra={"user_id": user.id, "device_id": device_id},
        )
        decision = AccessDecision(AccessOutcome.STORAGE_FAILURE, CONNECT_FAILURE_MESSAGE)
    return JSONResponse(status_code=decision.http_status, content=decision.to_response())


@router.post("/disconnect/{device_id}")
async def disconnect_device(
    device_id: str,
    request: Request,
    user: User = Depends(require_any_authenticated),
):
    """Disconnect the caller's session from a device it is connected to."""
    decision = access_engine.disconnect(
        request.session,
        user_id=user.id,
        raw_device_id=device_id,
    )
    return JSONResponse(status_code=decision.http_status, content=decision.to_response())
