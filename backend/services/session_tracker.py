"""
Session connection tracking.

A user session holds at most one device connection: a snapshot of the device
taken at connect time plus the connection timestamp.  The connection lives
only in the session mapping (the signed session cookie in production) and is
never written to the database.

The session mapping is always passed in explicitly; nothing here reads
request-global state.  Setting a connection overwrites any previous one
without an implicit disconnect.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

from models.device import Device

logger = logging.getLogger(__name__)

SESSION_CONNECTION_KEY = "connected_device"
SESSION_USER_KEY = "session_user_id"


@dataclass(frozen=True)
class DeviceSnapshot:
    """Read-only copy of the device fields shown to a connected user."""

    id: int
    name: str
    device_type: str
    mac_address: Optional[str]
    ip_address: Optional[str]
    location: Optional[str]
    firmware_version: Optional[str]
    status: str

    @classmethod
    def from_device(cls, device: Device) -> "DeviceSnapshot":
        return cls(
            id=device.id,
            name=device.name,
            device_type=device.device_type,
            mac_address=device.mac_address,
            ip_address=device.ip_address,
            location=device.location,
            firmware_version=device.firmware_version,
            status=device.status,
        )

    @property
    def has_security_enabled(self) -> bool:
        return bool(self.firmware_version)


@dataclass(frozen=True)
class SessionConnection:
    device: DeviceSnapshot
    connected_at: datetime

    @property
    def device_id(self) -> int:
        return self.device.id

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self.device)
        data["connected_at"] = self.connected_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SessionConnection"]:
        """Rebuild a connection from session data; malformed data yields None."""
        if not isinstance(data, dict):
            return None
        try:
            fields = {
                key: data[key]
                for key in DeviceSnapshot.__dataclass_fields__
            }
            connected_at = datetime.fromisoformat(data["connected_at"])
            return cls(device=DeviceSnapshot(**fields), connected_at=connected_at)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed session connection data")
            return None

    @classmethod
    def start(cls, device: DeviceSnapshot) -> "SessionConnection":
        return cls(device=device, connected_at=datetime.now(timezone.utc))


class SessionConnectionTracker:
    """Get/set/clear the single device connection stored in a session."""

    def get(
        self,
        session: MutableMapping[str, Any],
        user_id: Optional[int] = None,
    ) -> Optional[SessionConnection]:
        """
        Return the session's connection, or None.

        When ``user_id`` is given, a connection recorded for a different user
        is treated as absent.
        """
        if user_id is not None and session.get(SESSION_USER_KEY) not in (None, user_id):
            return None
        return SessionConnection.from_dict(session.get(SESSION_CONNECTION_KEY))

    def set(
        self,
        session: MutableMapping[str, Any],
        connection: SessionConnection,
        user_id: Optional[int] = None,
    ) -> Optional[SessionConnection]:
        """Store ``connection``, replacing any previous one.  Returns the replaced connection."""
        previous = self.get(session, user_id)
        session[SESSION_CONNECTION_KEY] = connection.to_dict()
        if user_id is not None:
            session[SESSION_USER_KEY] = user_id
        return previous

    def clear(self, session: MutableMapping[str, Any]) -> Optional[SessionConnection]:
        """Remove the connection.  Returns the removed connection, if any."""
        previous = SessionConnection.from_dict(session.pop(SESSION_CONNECTION_KEY, None))
        session.pop(SESSION_USER_KEY, None)
        return previous


session_tracker = SessionConnectionTracker()
