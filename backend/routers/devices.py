import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Device, DeviceLog, SecurityAlert, SystemMetric, User
from auth.dependencies import require_admin, require_any_authenticated
from schemas import (
    DeviceCreate,
    DeviceLogCreate,
    DeviceLogResponse,
    DeviceResponse,
    DeviceUpdate,
    PaginatedResponse,
)
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/devices", tags=["devices"])


async def _get_device_or_404(db: AsyncSession, device_id: int) -> Device:
    result = await db.execute(select(Device).where(Device.id == device_id))
    device = result.scalar_one_or_none()
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


async def _ensure_mac_available(
    db: AsyncSession, mac_address: Optional[str], exclude_id: Optional[int] = None
) -> None:
    if not mac_address:
        return
    query = select(Device.id).where(Device.mac_address == mac_address)
    if exclude_id is not None:
        query = query.where(Device.id != exclude_id)
    result = await db.execute(query)
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=409,
            detail=f"Device with MAC address {mac_address} already exists",
        )


@router.get("", response_model=PaginatedResponse)
async def list_devices(
    status: Optional[str] = Query(None, description="Filter by status (online/offline/alert)"),
    device_type: Optional[str] = Query(None, description="Filter by device type"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """
    List registered devices, most recently seen first.

    Query parameters:
    - status: Only devices in this state
    - device_type: Only devices of this type
    - limit / offset: Pagination (default 100, max 500)
    """
    filters = []
    if status:
        filters.append(Device.status == status.lower())
    if device_type:
        filters.append(Device.device_type == device_type)

    count_result = await db.execute(select(func.count(Device.id)).where(*filters))
    total = count_result.scalar()

    result = await db.execute(
        select(Device)
        .where(*filters)
        .order_by(Device.last_seen.desc().nullslast(), Device.id)
        .offset(offset)
        .limit(limit)
    )
    devices = result.scalars().all()

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "items": [DeviceResponse.model_validate(d) for d in devices],
    }


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(
    device_id: int,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Get a single device by ID."""
    device = await _get_device_or_404(db, device_id)
    return DeviceResponse.model_validate(device)


@router.post("", response_model=DeviceResponse, status_code=201)
async def create_device(
    device: DeviceCreate,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new device.

    New devices start ``offline`` until their first heartbeat.
    """
    await _ensure_mac_available(db, device.mac_address)

    db_device = Device(
        name=device.name,
        device_type=device.device_type,
        mac_address=device.mac_address,
        ip_address=device.ip_address,
        location=device.location,
        firmware_version=device.firmware_version,
        status="offline",
    )
    db.add(db_device)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=409,
            detail=f"Device with MAC address {device.mac_address} already exists",
        )
    await db.refresh(db_device)

    logger.info(f"Device registered: {db_device.name}", extra={"device_id": db_device.id})
    audit.log_device_crud("CREATE", db_device.id, db_device.name)

    return DeviceResponse.model_validate(db_device)


@router.put("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: int,
    device_update: DeviceUpdate,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Update a device.  Only fields present in the body are changed.

    Moving a device to ``online`` also stamps ``last_seen``.
    """
    db_device = await _get_device_or_404(db, device_id)

    update_data = device_update.model_dump(exclude_unset=True)
    if "mac_address" in update_data:
        await _ensure_mac_available(db, update_data["mac_address"], exclude_id=device_id)

    now = datetime.now(timezone.utc)
    changes = {}
    for field, value in update_data.items():
        old_value = getattr(db_device, field)
        if old_value != value:
            changes[field] = {"old": old_value, "new": value}
        setattr(db_device, field, value)

    if update_data.get("status") == "online":
        db_device.last_seen = now
    db_device.updated_at = now

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Device update conflicts with an existing device")
    await db.refresh(db_device)

    audit.log_device_crud("UPDATE", db_device.id, db_device.name, changes)

    return DeviceResponse.model_validate(db_device)


@router.delete("/{device_id}", status_code=204)
async def delete_device(
    device_id: int,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a device together with its logs and metrics.

    Devices referenced by security alerts are kept (409), since alerts are
    audit records and must keep pointing at the device they describe.
    """
    db_device = await _get_device_or_404(db, device_id)

    alert_count = await db.execute(
        select(func.count(SecurityAlert.id)).where(SecurityAlert.device_id == device_id)
    )
    if alert_count.scalar():
        raise HTTPException(
            status_code=409,
            detail="Device has security alerts and cannot be deleted",
        )

    device_name = db_device.name
    await db.execute(delete(DeviceLog).where(DeviceLog.device_id == device_id))
    await db.execute(delete(SystemMetric).where(SystemMetric.device_id == device_id))
    await db.delete(db_device)
    await db.commit()

    audit.log_device_crud("DELETE", device_id, device_name)

    return None


@router.post("/{device_id}/heartbeat", response_model=DeviceResponse)
async def device_heartbeat(
    device_id: int,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Mark a device as online and refresh ``last_seen``."""
    db_device = await _get_device_or_404(db, device_id)

    now = datetime.now(timezone.utc)
    was_status = db_device.status
    db_device.status = "online"
    db_device.last_seen = now
    db_device.updated_at = now
    await db.commit()
    await db.refresh(db_device)

    if was_status != "online":
        logger.info(f"Device back online: {db_device.name}", extra={"device_id": device_id})
        audit.log_device_crud(
            "HEARTBEAT", device_id, db_device.name,
            {"status": {"old": was_status, "new": "online"}},
        )

    return DeviceResponse.model_validate(db_device)


@router.get("/{device_id}/logs", response_model=list[DeviceLogResponse])
async def list_device_logs(
    device_id: int,
    log_level: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """List a device's log lines, newest first."""
    await _get_device_or_404(db, device_id)

    query = select(DeviceLog).where(DeviceLog.device_id == device_id)
    if log_level:
        query = query.where(DeviceLog.log_level == log_level.lower())
    result = await db.execute(
        query.order_by(DeviceLog.created_at.desc(), DeviceLog.id.desc()).limit(limit)
    )
    return [DeviceLogResponse.model_validate(entry) for entry in result.scalars().all()]


@router.post("/{device_id}/logs", response_model=DeviceLogResponse, status_code=201)
async def create_device_log(
    device_id: int,
    entry: DeviceLogCreate,
    user: User = Depends(require_any_authenticated),
    db: AsyncSession = Depends(get_db),
):
    """Append a log line for a device."""
    await _get_device_or_404(db, device_id)

    db_entry = DeviceLog(
        device_id=device_id,
        log_level=entry.log_level,
        message=entry.message,
        event_type=entry.event_type,
        log_metadata=entry.metadata,
    )
    db.add(db_entry)
    await db.commit()
    await db.refresh(db_entry)

    return DeviceLogResponse.model_validate(db_entry)
