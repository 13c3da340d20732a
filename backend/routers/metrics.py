"""System metric endpoints backed by the ``system_metrics`` table."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Device, SystemMetric, User
from auth.dependencies import require_any_authenticated
from schemas import SystemMetricCreate, SystemMetricResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.post("", response_model=SystemMetricResponse, status_code=201)
async def record_metric(
    metric: SystemMetricCreate,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Record a metric sample.  ``device_id`` is omitted for system-wide values."""
    if metric.device_id is not None:
        device = await db.execute(select(Device.id).where(Device.id == metric.device_id))
        if device.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Referenced device does not exist")

    db_metric = SystemMetric(
        metric_type=metric.metric_type,
        metric_value=metric.metric_value,
        unit=metric.unit,
        device_id=metric.device_id,
    )
    db.add(db_metric)
    await db.commit()
    await db.refresh(db_metric)

    return SystemMetricResponse.model_validate(db_metric)


@router.get("/latest", response_model=list[SystemMetricResponse])
async def latest_metrics(
    device_id: Optional[int] = Query(None, ge=1, description="Device metrics instead of system-wide"),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Most recent sample for each metric type."""
    scope = (
        SystemMetric.device_id == device_id
        if device_id is not None
        else SystemMetric.device_id.is_(None)
    )

    latest_ids = (
        select(func.max(SystemMetric.id))
        .where(scope)
        .group_by(SystemMetric.metric_type)
    )
    result = await db.execute(
        select(SystemMetric)
        .where(SystemMetric.id.in_(latest_ids))
        .order_by(SystemMetric.metric_type)
    )
    return [SystemMetricResponse.model_validate(m) for m in result.scalars().all()]
