from .auth import router as auth_router
from .devices import router as devices_router
from .device_access import router as device_access_router
from .alerts import router as alerts_router
from .blocked_attempts import router as blocked_attempts_router
from .dashboard import router as dashboard_router
from .metrics import router as metrics_router

__all__ = [
    "auth_router",
    "devices_router",
    "device_access_router",
    "alerts_router",
    "blocked_attempts_router",
    "dashboard_router",
    "metrics_router",
]
