from datetime import datetime, timezone
from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Text, JSON, Index

from database import Base


class DeviceLog(Base):
    """Log line reported by (or about) a device."""

    __tablename__ = "device_logs"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)
    log_level = Column(String(20), nullable=False)  # debug/info/warning/error
    message = Column(Text, nullable=False)
    event_type = Column(String(100), nullable=True)  # connection/disconnection/data_transmission/etc
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    log_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_device_logs_device_id", "device_id"),
        Index("idx_device_logs_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<DeviceLog(id={self.id}, device_id={self.device_id}, level={self.log_level})>"
