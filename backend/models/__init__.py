from .user import User
from .device import Device
from .security_alert import SecurityAlert
from .blocked_attempt import BlockedAttempt
from .device_log import DeviceLog
from .system_metric import SystemMetric

__all__ = [
    "User",
    "Device",
    "SecurityAlert",
    "BlockedAttempt",
    "DeviceLog",
    "SystemMetric",
]
