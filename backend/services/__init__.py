"""Services package for the IoT Intrusion Dashboard."""

from .access_control import (
    AccessDecision,
    AccessDecisionEngine,
    AccessOutcome,
    access_engine,
    parse_device_id,
)
from .recorders import record_blocked_attempt, record_security_alert
from .session_tracker import (
    DeviceSnapshot,
    SessionConnection,
    SessionConnectionTracker,
    session_tracker,
)

__all__ = [
    "AccessDecision",
    "AccessDecisionEngine",
    "AccessOutcome",
    "access_engine",
    "parse_device_id",
    "record_blocked_attempt",
    "record_security_alert",
    "DeviceSnapshot",
    "SessionConnection",
    "SessionConnectionTracker",
    "session_tracker",
]
