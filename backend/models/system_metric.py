from datetime import datetime, timezone
from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Numeric, Index

from database import Base


class SystemMetric(Base):
    """Point-in-time system metric; ``device_id`` is NULL for system-wide values."""

    __tablename__ = "system_metrics"

    id = Column(Integer, primary_key=True, index=True)
    metric_type = Column(String(50), nullable=False)  # cpu/memory/network/storage
    metric_value = Column(Numeric(5, 2, asdecimal=False), nullable=False)
    unit = Column(String(20), nullable=False, default="percent")
    recorded_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)

    __table_args__ = (Index("idx_system_metrics_recorded_at", "recorded_at"),)

    def __repr__(self):
        return f"<SystemMetric({self.metric_type}={self.metric_value}{self.unit})>"
