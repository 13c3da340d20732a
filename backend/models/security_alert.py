"""
Security alert model.

An alert is a mutable record of a detected security-relevant condition.  The
only mutation after creation is the resolve transition (``active`` ->
``resolved``), which stamps ``resolved_at`` and ``resolved_by`` in a single
write.  ``resolved_at`` is non-null exactly when ``status == "resolved"``.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Text, JSON, Index

from database import Base


class SecurityAlert(Base):
    """SQLAlchemy model for security alerts."""

    __tablename__ = "security_alerts"

    id = Column(Integer, primary_key=True, index=True)

    # No cascading deletes: alerts outlive the device/user they reference
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)
    alert_type = Column(String(100), nullable=False)  # "Unauthorized Device Access", etc
    severity = Column(String(20), nullable=False)  # low/medium/high/critical
    description = Column(Text, nullable=True)
    source_ip = Column(String(45), nullable=True)

    detected_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    resolved_at = Column(DateTime, nullable=True)
    status = Column(String(50), nullable=False, default="active")  # active/investigating/resolved/false_positive
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Named "alert_metadata" to avoid conflict with SQLAlchemy's Base.metadata
    alert_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        Index("idx_security_alerts_device_id", "device_id"),
        Index("idx_security_alerts_detected_at", "detected_at"),
        Index("idx_security_alerts_status", "status"),
    )

    def __repr__(self):
        return (
            f"<SecurityAlert(id={self.id}, type={self.alert_type}, "
            f"severity={self.severity}, status={self.status})>"
        )
