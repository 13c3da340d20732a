"""
Device access decision engine.

Decides whether a user's connect request for a device is allowed, allowed
with a security alert, or blocked, and performs the side effects in a fixed
order: validate -> decide -> record -> update session -> respond.

Decision table (first match wins):

    1. device missing                        -> NOT_FOUND          + blocked attempt (invalid_device)
    2. device status != online               -> DEVICE_OFFLINE     + blocked attempt (offline_device)
    3. no permission, firmware set           -> FORBIDDEN          + blocked attempt (unauthorized_access)
    4. no permission, no firmware            -> ALLOWED_WITH_ALERT + security alert (medium)
    5. permitted                             -> ALLOWED, no audit row

Lookups that fail abort with STORAGE_FAILURE.  Audit writes are best-effort
(see ``services.recorders``) and never change the outcome.
"""

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, MutableMapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.permissions import PermissionResolver, permission_resolver
from models import Device
from services.recorders import record_blocked_attempt, record_security_alert
from services.session_tracker import (
    DeviceSnapshot,
    SessionConnection,
    SessionConnectionTracker,
    session_tracker,
)
from utils.audit import audit

logger = logging.getLogger(__name__)

# Largest id a 32-bit INTEGER primary key can hold
MAX_DEVICE_ID = 2**31 - 1

_DIGITS_RE = re.compile(r"[0-9]+")

UNSECURED_ACCESS_ALERT_TYPE = "Unauthorized Device Access"
UNSECURED_ACCESS_SEVERITY = "medium"

CONNECT_FAILURE_MESSAGE = "An error occurred while connecting to the device"


class AccessOutcome(str, Enum):
    ALLOWED = "allowed"
    ALLOWED_WITH_ALERT = "allowed_with_alert"
    DISCONNECTED = "disconnected"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    DEVICE_OFFLINE = "device_offline"
    FORBIDDEN = "forbidden"
    NOT_CONNECTED = "not_connected"
    STORAGE_FAILURE = "storage_failure"


_HTTP_STATUS = {
    AccessOutcome.ALLOWED: 200,
    AccessOutcome.ALLOWED_WITH_ALERT: 200,
    AccessOutcome.DISCONNECTED: 200,
    AccessOutcome.INVALID_INPUT: 400,
    AccessOutcome.NOT_FOUND: 404,
    AccessOutcome.DEVICE_OFFLINE: 400,
    AccessOutcome.FORBIDDEN: 403,
    AccessOutcome.NOT_CONNECTED: 400,
    AccessOutcome.STORAGE_FAILURE: 500,
}

_SUCCESS_OUTCOMES = frozenset({
    AccessOutcome.ALLOWED,
    AccessOutcome.ALLOWED_WITH_ALERT,
    AccessOutcome.DISCONNECTED,
})


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    message: str
    device_id: Optional[int] = None
    connection: Optional[SessionConnection] = None
    permitted: Optional[bool] = None
    security_enabled: Optional[bool] = None

    @property
    def success(self) -> bool:
        return self.outcome in _SUCCESS_OUTCOMES

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.outcome]

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.connection is not None:
            body["device"] = self.connection.to_dict()
        return body


def parse_device_id(raw: Any) -> Optional[int]:
    """Parse a path/body device id; anything but a positive integer yields None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not _DIGITS_RE.fullmatch(text):
            return None
        value = int(text)
    if value < 1 or value > MAX_DEVICE_ID:
        return None
    return value


class AccessDecisionEngine:
    """Evaluates connect/disconnect requests against the decision table."""

    def __init__(
        self,
        resolver: Optional[PermissionResolver] = None,
        tracker: Optional[SessionConnectionTracker] = None,
    ):
        self.resolver = resolver or permission_resolver
        self.tracker = tracker or session_tracker

    async def connect(
        self,
        db: AsyncSession,
        session: MutableMapping[str, Any],
        *,
        user_id: int,
        raw_device_id: Any,
        source_ip: str,
        user_agent: Optional[str] = None,
    ) -> AccessDecision:
        start = time.perf_counter()
        device_id = parse_device_id(raw_device_id)
        context = {"user_id": user_id, "device_id": device_id, "source_ip": source_ip}

        if device_id is None:
            logger.info(f"Rejected malformed device id {raw_device_id!r}", extra=context)
            return self._decided(
                AccessDecision(AccessOutcome.INVALID_INPUT, "Invalid device ID"),
                context, start,
            )

        try:
            result = await db.execute(select(Device).where(Device.id == device_id))
            device = result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.error("Device lookup failed", exc_info=True, extra=context)
            return self._decided(
                AccessDecision(
                    AccessOutcome.STORAGE_FAILURE,
                    CONNECT_FAILURE_MESSAGE,
                    device_id=device_id,
                ),
                context, start,
            )

        if device is None:
            await record_blocked_attempt(
                db,
                user_id=user_id,
                source_ip=source_ip,
                target_device_id=device_id,
                attempt_type="invalid_device",
                user_agent=user_agent,
                details={"reason": "device_not_found"},
            )
            return self._decided(
                AccessDecision(AccessOutcome.NOT_FOUND, "Device not found", device_id=device_id),
                context, start,
            )

        # Copy before any write: a failed audit write rolls back and expires the row
        snapshot = DeviceSnapshot.from_device(device)

        if snapshot.status != "online":
            await record_blocked_attempt(
                db,
                user_id=user_id,
                source_ip=source_ip,
                target_device_id=device_id,
                attempt_type="offline_device",
                user_agent=user_agent,
                details={"reason": "device_offline", "device_status": snapshot.status},
            )
            return self._decided(
                AccessDecision(
                    AccessOutcome.DEVICE_OFFLINE,
                    "Device is currently offline",
                    device_id=device_id,
                ),
                context, start,
            )

        security_enabled = snapshot.has_security_enabled
        permitted = await self.resolver.has_permission(db, user_id, device_id)

        if not permitted and security_enabled:
            await record_blocked_attempt(
                db,
                user_id=user_id,
                source_ip=source_ip,
                target_device_id=device_id,
                attempt_type="unauthorized_access",
                user_agent=user_agent,
                details={
                    "reason": "no_permission_secured_device",
                    "device_name": snapshot.name,
                    "security_enabled": True,
                },
            )
            return self._decided(
                AccessDecision(
                    AccessOutcome.FORBIDDEN,
                    "Access denied. This device requires explicit permission "
                    "and has security enabled.",
                    device_id=device_id,
                    permitted=False,
                    security_enabled=True,
                ),
                context, start,
            )

        outcome = AccessOutcome.ALLOWED
        if not permitted:
            await record_security_alert(
                db,
                device_id=device_id,
                alert_type=UNSECURED_ACCESS_ALERT_TYPE,
                severity=UNSECURED_ACCESS_SEVERITY,
                description=(
                    "User accessed unsecured device without explicit permission: "
                    f"{snapshot.name}"
                ),
                source_ip=source_ip,
                metadata={
                    "user_id": user_id,
                    "device_name": snapshot.name,
                    "access_granted": True,
                    "security_enabled": False,
                    "reason": "unsecured_device_access",
                },
            )
            logger.warning(
                f"Unsecured device accessed without permission: {snapshot.name}",
                extra=context,
            )
            outcome = AccessOutcome.ALLOWED_WITH_ALERT

        connection = SessionConnection.start(snapshot)
        previous = self.tracker.set(session, connection, user_id=user_id)
        if previous is not None and previous.device_id != device_id:
            logger.info(
                f"Session connection to device {previous.device_id} replaced",
                extra=context,
            )

        logger.info(f"Device connection established: {snapshot.name}", extra=context)
        return self._decided(
            AccessDecision(
                outcome,
                f"Successfully connected to {snapshot.name}",
                device_id=device_id,
                connection=connection,
                permitted=permitted,
                security_enabled=security_enabled,
            ),
            context, start,
        )

    def disconnect(
        self,
        session: MutableMapping[str, Any],
        *,
        user_id: int,
        raw_device_id: Any,
    ) -> AccessDecision:
        device_id = parse_device_id(raw_device_id)
        context = {"user_id": user_id, "device_id": device_id}

        if device_id is None:
            return AccessDecision(AccessOutcome.INVALID_INPUT, "Invalid device ID")

        current = self.tracker.get(session, user_id)
        if current is None or current.device_id != device_id:
            logger.info("Disconnect requested without a matching connection", extra=context)
            return AccessDecision(
                AccessOutcome.NOT_CONNECTED,
                "You are not connected to this device",
                device_id=device_id,
            )

        self.tracker.clear(session)
        logger.info(f"Device disconnection: {current.device.name}", extra=context)
        audit.log_disconnect(user_id, device_id, current.device.name)

        return AccessDecision(
            AccessOutcome.DISCONNECTED,
            f"Successfully disconnected from {current.device.name}",
            device_id=device_id,
        )

    def _decided(
        self,
        decision: AccessDecision,
        context: dict[str, Any],
        start: float,
    ) -> AccessDecision:
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Access decision: {decision.outcome.value}",
            extra={**context, "outcome": decision.outcome.value, "duration_ms": duration_ms},
        )
        details: dict[str, Any] = {}
        if decision.permitted is not None:
            details["permitted"] = decision.permitted
        if decision.security_enabled is not None:
            details["security_enabled"] = decision.security_enabled
        audit.log_access_decision(
            decision.outcome.value,
            context["user_id"],
            context["device_id"],
            context.get("source_ip"),
            details,
        )
        return decision


access_engine = AccessDecisionEngine()
