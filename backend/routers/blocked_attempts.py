"""
Blocked attempt endpoints.

Blocked attempts are an append-only audit trail: rows can be listed and
created, never updated or deleted through the API.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models import BlockedAttempt, User
from auth.dependencies import require_any_authenticated
from schemas import BlockedAttemptCreate, BlockedAttemptResponse, PaginatedResponse
from services.recorders import record_blocked_attempt
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/blocked-attempts", tags=["blocked-attempts"])


@router.get("", response_model=PaginatedResponse)
async def list_blocked_attempts(
    attempt_type: Optional[str] = Query(None),
    source_ip: Optional[str] = Query(None),
    device_id: Optional[int] = Query(None, ge=1, description="Filter by target device"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """List blocked attempts, newest first."""
    filters = []
    if attempt_type:
        filters.append(BlockedAttempt.attempt_type == attempt_type.lower())
    if source_ip:
        filters.append(BlockedAttempt.source_ip == source_ip)
    if device_id is not None:
        filters.append(BlockedAttempt.target_device_id == device_id)

    count_result = await db.execute(select(func.count(BlockedAttempt.id)).where(*filters))
    total = count_result.scalar()

    result = await db.execute(
        select(BlockedAttempt)
        .where(*filters)
        .order_by(BlockedAttempt.blocked_at.desc(), BlockedAttempt.id.desc())
        .offset(offset)
        .limit(limit)
    )

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "items": [BlockedAttemptResponse.model_validate(a) for a in result.scalars().all()],
    }


@router.get("/stats/summary")
async def blocked_attempt_stats(
    hours: int = Query(settings.ALERT_RECENT_WINDOW_HOURS, ge=1, le=24 * 365),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Attempt totals, count in the last ``hours``, and a per-type breakdown."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    total = (await db.execute(select(func.count(BlockedAttempt.id)))).scalar()
    recent = (
        await db.execute(
            select(func.count(BlockedAttempt.id)).where(BlockedAttempt.blocked_at >= cutoff)
        )
    ).scalar()

    type_result = await db.execute(
        select(BlockedAttempt.attempt_type, func.count(BlockedAttempt.id))
        .group_by(BlockedAttempt.attempt_type)
        .order_by(func.count(BlockedAttempt.id).desc())
    )

    return {
        "total": total,
        "recent": recent,
        "window_hours": hours,
        "by_type": {attempt_type: count for attempt_type, count in type_result.all()},
    }


@router.post("", response_model=BlockedAttemptResponse, status_code=201)
async def create_blocked_attempt(
    attempt: BlockedAttemptCreate,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a blocked attempt reported by a device or an operator.

    The target device is not validated, so attempts against unknown ids are kept.
    """
    details = dict(attempt.request_details or {})
    details["reported_by"] = user.id

    created = await record_blocked_attempt(
        db,
        user_id=None,
        source_ip=attempt.source_ip,
        target_device_id=attempt.target_device_id,
        attempt_type=attempt.attempt_type,
        user_agent=attempt.user_agent,
        details=details,
        attempt_count=attempt.attempt_count,
    )
    if created is None:
        raise HTTPException(status_code=500, detail="Failed to record blocked attempt")

    audit.log_blocked_attempt(
        created.id, created.attempt_type, created.source_ip, created.target_device_id
    )

    return BlockedAttemptResponse.model_validate(created)
