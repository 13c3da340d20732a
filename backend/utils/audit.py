"""
Structured audit logging for the dashboard backend.

Every significant operation is written as one JSON line to the dedicated
``audit`` logger.  The request id and acting user are carried across async
calls with ``contextvars`` so helpers deep in the service layer do not need
them passed explicitly.

These log lines complement, and never replace, the durable audit rows in
``blocked_attempts`` and ``security_alerts``.
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)

_actor_context: ContextVar[Optional[str]] = ContextVar(
    'actor', default=None
)


class AuditLogger:
    """
    Structured audit logger.

    All events share the same envelope: timestamp, action, actor, resource,
    resource_id, status, request_id and a free-form ``details`` dict.
    """

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def set_request_id(self, request_id: str) -> None:
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def set_actor(self, actor: Optional[str]) -> None:
        """Set the authenticated user for this request context."""
        _actor_context.set(actor)

    def get_actor(self) -> Optional[str]:
        return _actor_context.get()

    def log(
        self,
        action: str,
        actor: str,
        resource: str,
        resource_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Core method to log a structured audit event.

        Args:
            action: Type of action performed (e.g. 'CONNECT', 'RESOLVE', 'DELETE')
            actor: User performing the action; ``'user'`` resolves to the
                context actor set by the request middleware
            resource: Type of resource affected (e.g. 'Device', 'SecurityAlert')
            resource_id: Identifier of the affected resource
            status: Result status (e.g. 'success', 'failure', an access outcome)
            details: Optional dict of additional context
        """
        event = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'action': action,
            'actor': actor if actor != 'user' else (self.get_actor() or 'user'),
            'resource': resource,
            'resource_id': str(resource_id),
            'status': status,
            'request_id': self.get_request_id(),
            'details': details or {},
        }
        self.logger.info(json.dumps(event, default=str))

    def log_access_decision(
        self,
        outcome: str,
        user_id: int,
        device_id: Optional[int],
        source_ip: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log the outcome of a device connect request.

        Args:
            outcome: Access outcome value (``allowed``, ``forbidden``, ...)
            user_id: Acting user id
            device_id: Parsed device id, or None when the id was malformed
            source_ip: Client address of the request
            details: Optional decision context (permission, security flag)
        """
        payload = {'source_ip': source_ip}
        if details:
            payload.update(details)

        self.log(
            action='CONNECT',
            actor=f"user:{user_id}",
            resource='Device',
            resource_id=device_id if device_id is not None else 'invalid',
            status=outcome,
            details=payload,
        )

    def log_disconnect(self, user_id: int, device_id: int, device_name: Optional[str]) -> None:
        self.log(
            action='DISCONNECT',
            actor=f"user:{user_id}",
            resource='Device',
            resource_id=device_id,
            status='success',
            details={'device_name': device_name} if device_name else {},
        )

    def log_alert_change(
        self,
        operation: str,
        alert_id: int,
        severity: Optional[str] = None,
        alert_status: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log security alert creation, resolution or deletion.

        Args:
            operation: 'CREATE', 'RESOLVE' or 'DELETE'
            alert_id: Alert identifier
            severity: Optional alert severity
            alert_status: Optional alert status after the change
            details: Optional extra context
        """
        payload = dict(details or {})
        if severity:
            payload['severity'] = severity
        if alert_status:
            payload['alert_status'] = alert_status

        self.log(
            action=operation,
            actor='user',
            resource='SecurityAlert',
            resource_id=alert_id,
            status='success',
            details=payload,
        )

    def log_device_crud(
        self,
        operation: str,
        device_id: int,
        device_name: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log device Create/Update/Delete operations.

        Args:
            operation: CRUD operation ('CREATE', 'UPDATE', 'DELETE', 'HEARTBEAT')
            device_id: Device identifier
            device_name: Optional device name
            changes: Optional dict of changed fields (for UPDATE operations)
        """
        details: Dict[str, Any] = {}
        if device_name:
            details['device_name'] = device_name
        if changes:
            details['changes'] = changes

        self.log(
            action=operation,
            actor='user',
            resource='Device',
            resource_id=device_id,
            status='success',
            details=details,
        )

    def log_blocked_attempt(
        self,
        attempt_id: int,
        attempt_type: str,
        source_ip: str,
        target_device_id: Optional[int],
    ) -> None:
        self.log(
            action='CREATE',
            actor='user',
            resource='BlockedAttempt',
            resource_id=attempt_id,
            status='success',
            details={
                'attempt_type': attempt_type,
                'source_ip': source_ip,
                'target_device_id': target_device_id,
            },
        )


# Global audit logger instance for convenient import
audit = AuditLogger()
