"""
Security alert endpoints.

    GET    /api/alerts                  — list (filters, newest first)
    GET    /api/alerts/stats/summary    — totals and active severity breakdown
    GET    /api/alerts/{id}             — single alert
    POST   /api/alerts                  — create (status always ``active``)
    PUT    /api/alerts/{id}/resolve     — active -> resolved transition
    DELETE /api/alerts/{id}             — delete (admin)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from config import settings
from database import get_db
from models import Device, SecurityAlert, User
from auth.dependencies import require_admin, require_any_authenticated
from schemas import (
    PaginatedResponse,
    SecurityAlertCreate,
    SecurityAlertResolve,
    SecurityAlertResponse,
)
from services.recorders import record_security_alert
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/alerts", tags=["alerts"])

Resolver = aliased(User)


def _alert_with_refs(
    alert: SecurityAlert,
    device_name: Optional[str],
    device_type: Optional[str],
    resolved_by_name: Optional[str],
) -> dict[str, Any]:
    data = SecurityAlertResponse.model_validate(alert).model_dump()
    data["device_name"] = device_name
    data["device_type"] = device_type
    data["resolved_by_name"] = resolved_by_name
    return data


def _joined_query():
    return (
        select(SecurityAlert, Device.name, Device.device_type, Resolver.name)
        .outerjoin(Device, SecurityAlert.device_id == Device.id)
        .outerjoin(Resolver, SecurityAlert.resolved_by == Resolver.id)
    )


@router.get("", response_model=PaginatedResponse)
async def list_alerts(
    status: Optional[str] = Query(None, description="Filter by alert status"),
    severity: Optional[str] = Query(None, description="Filter by severity"),
    device_id: Optional[int] = Query(None, ge=1),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """
    List security alerts, newest first, with device and resolver names joined.

    Query parameters:
    - status / severity / device_id: Optional filters
    - limit: Page size (default 50, max 500)
    - offset: Number of alerts to skip
    """
    filters = []
    if status:
        filters.append(SecurityAlert.status == status.lower())
    if severity:
        filters.append(SecurityAlert.severity == severity.lower())
    if device_id is not None:
        filters.append(SecurityAlert.device_id == device_id)

    count_result = await db.execute(select(func.count(SecurityAlert.id)).where(*filters))
    total = count_result.scalar()

    result = await db.execute(
        _joined_query()
        .where(*filters)
        .order_by(SecurityAlert.detected_at.desc(), SecurityAlert.id.desc())
        .offset(offset)
        .limit(limit)
    )

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "items": [_alert_with_refs(*row) for row in result.all()],
    }


@router.get("/stats/summary")
async def alert_stats(
    hours: int = Query(settings.ALERT_RECENT_WINDOW_HOURS, ge=1, le=24 * 365),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Alert totals, count detected in the last ``hours``, and active alerts by severity."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    total = (await db.execute(select(func.count(SecurityAlert.id)))).scalar()
    active = (
        await db.execute(
            select(func.count(SecurityAlert.id)).where(SecurityAlert.status == "active")
        )
    ).scalar()
    recent = (
        await db.execute(
            select(func.count(SecurityAlert.id)).where(SecurityAlert.detected_at >= cutoff)
        )
    ).scalar()

    severity_result = await db.execute(
        select(SecurityAlert.severity, func.count(SecurityAlert.id))
        .where(SecurityAlert.status == "active")
        .group_by(SecurityAlert.severity)
    )
    by_severity = {"low": 0, "medium": 0, "high": 0, "critical": 0}
    for severity, count in severity_result.all():
        by_severity[severity] = count

    return {
        "total": total,
        "active": active,
        "recent": recent,
        "window_hours": hours,
        "by_severity": by_severity,
    }


@router.get("/{alert_id}")
async def get_alert(
    alert_id: int,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Get a single alert by ID."""
    result = await db.execute(_joined_query().where(SecurityAlert.id == alert_id))
    row = result.first()
    if not row:
        raise HTTPException(status_code=404, detail="Security alert not found")
    return _alert_with_refs(*row)


@router.post("", response_model=SecurityAlertResponse, status_code=201)
async def create_alert(
    alert: SecurityAlertCreate,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Create a security alert.  A referenced device must exist."""
    if alert.device_id is not None:
        device = await db.execute(select(Device.id).where(Device.id == alert.device_id))
        if device.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Referenced device does not exist")

    created = await record_security_alert(
        db,
        device_id=alert.device_id,
        alert_type=alert.alert_type,
        severity=alert.severity,
        description=alert.description,
        source_ip=alert.source_ip,
        metadata=alert.metadata,
    )
    if created is None:
        raise HTTPException(status_code=500, detail="Failed to create security alert")

    audit.log_alert_change("CREATE", created.id, created.severity, created.status)

    return SecurityAlertResponse.model_validate(created)


@router.put("/{alert_id}/resolve", response_model=SecurityAlertResponse)
async def resolve_alert(
    alert_id: int,
    body: Optional[SecurityAlertResolve] = None,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """
    Resolve an active alert.

    ``resolved_by`` defaults to the caller and must reference an existing user.
    A ``resolution_note`` is merged into the alert metadata.  Status,
    ``resolved_at``, ``resolved_by`` and metadata change in one conditional
    UPDATE, so an alert that is no longer active is never touched.
    """
    body = body or SecurityAlertResolve()

    result = await db.execute(select(SecurityAlert).where(SecurityAlert.id == alert_id))
    alert = result.scalar_one_or_none()
    if not alert:
        raise HTTPException(status_code=404, detail="Security alert not found")

    resolver_id = user.id
    if body.resolved_by is not None:
        resolver = await db.execute(select(User.id).where(User.id == body.resolved_by))
        if resolver.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="resolved_by does not reference an existing user")
        resolver_id = body.resolved_by

    if alert.status != "active":
        raise HTTPException(
            status_code=400,
            detail=f"Alert is '{alert.status}' and cannot be resolved",
        )

    metadata = dict(alert.alert_metadata or {})
    if body.resolution_note:
        metadata["resolution_note"] = body.resolution_note

    update_result = await db.execute(
        update(SecurityAlert)
        .where(SecurityAlert.id == alert_id, SecurityAlert.status == "active")
        .values({
            SecurityAlert.status: "resolved",
            SecurityAlert.resolved_at: datetime.now(timezone.utc),
            SecurityAlert.resolved_by: resolver_id,
            SecurityAlert.alert_metadata: metadata,
        })
        .execution_options(synchronize_session=False)
    )
    if update_result.rowcount == 0:
        # Resolved concurrently between the read and the update
        await db.rollback()
        raise HTTPException(status_code=400, detail="Alert is no longer active and cannot be resolved")

    await db.commit()
    await db.refresh(alert)

    logger.info(f"Security alert {alert_id} resolved", extra={"user_id": resolver_id})
    audit.log_alert_change(
        "RESOLVE", alert_id, alert.severity, alert.status,
        {"resolved_by": resolver_id},
    )

    return SecurityAlertResponse.model_validate(alert)


@router.delete("/{alert_id}", status_code=204)
async def delete_alert(
    alert_id: int,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a security alert (admin only)."""
    result = await db.execute(select(SecurityAlert).where(SecurityAlert.id == alert_id))
    alert = result.scalar_one_or_none()
    if not alert:
        raise HTTPException(status_code=404, detail="Security alert not found")

    severity = alert.severity
    await db.delete(alert)
    await db.commit()

    audit.log_alert_change("DELETE", alert_id, severity)

    return None
