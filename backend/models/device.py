from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Index
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Device(Base):
    """SQLAlchemy model for registered IoT devices."""

    __tablename__ = "devices"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    name = Column(String(255), nullable=False)
    device_type = Column(String(100), nullable=False)  # camera/sensor/router/thermostat/etc
    mac_address = Column(String(17), unique=True, nullable=True)
    ip_address = Column(String(45), nullable=True)

    # State
    status = Column(String(50), nullable=False, default="offline")  # online/offline/alert
    location = Column(String(255), nullable=True)

    # A non-empty firmware version marks the device as enforcing its own access control
    firmware_version = Column(String(50), nullable=True)

    # Timestamps
    last_seen = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("idx_devices_status", "status"),
        Index("idx_devices_last_seen", "last_seen"),
    )

    @property
    def has_security_enabled(self) -> bool:
        return bool(self.firmware_version)

    def __repr__(self):
        return f"<Device(id={self.id}, name={self.name}, status={self.status})>"
