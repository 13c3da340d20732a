from datetime import datetime, timezone
from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Text, JSON, Index

from database import Base


class BlockedAttempt(Base):
    """
    Immutable audit row for a denied or invalid access action.

    ``target_device_id`` is kept even when it points at a device that does not
    exist (``invalid_device`` attempts), so it is not enforced as a foreign key.
    """

    __tablename__ = "blocked_attempts"

    id = Column(Integer, primary_key=True, index=True)

    source_ip = Column(String(45), nullable=False)
    target_device_id = Column(Integer, nullable=True)
    attempt_type = Column(String(100), nullable=False)  # brute_force/port_scan/malware/unauthorized_access/...
    blocked_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    attempt_count = Column(Integer, nullable=False, default=1)
    user_agent = Column(Text, nullable=True)

    # Free-form payload; the access engine always writes user_id and blocked_reason
    request_details = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_blocked_attempts_source_ip", "source_ip"),
        Index("idx_blocked_attempts_blocked_at", "blocked_at"),
    )

    def __repr__(self):
        return (
            f"<BlockedAttempt(id={self.id}, source_ip={self.source_ip}, "
            f"type={self.attempt_type}, device={self.target_device_id})>"
        )
