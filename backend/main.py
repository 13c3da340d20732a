"""
FastAPI application for the IoT Intrusion Dashboard.

Wires the routers, the signed session cookie that carries each user's device
connection, CORS, request-id tracking and the structured 422 handler.
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError
from sqlalchemy import select
from starlette.middleware.sessions import SessionMiddleware

from auth.jwt_service import verify_access_token
from auth.passwords import hash_password
from config import settings
from database import AsyncSessionLocal, init_db, close_db
from models import User
from routers import (
    auth_router,
    devices_router,
    device_access_router,
    alerts_router,
    blocked_attempts_router,
    dashboard_router,
    metrics_router,
)
from services.health import HealthResponse, run_health_checks
from utils.logging_utils import setup_logging, get_logger, LogTimer
from utils.audit import audit

setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)

_ROUTERS = (
    auth_router,
    devices_router,
    device_access_router,
    alerts_router,
    blocked_attempts_router,
    dashboard_router,
    metrics_router,
)


async def _bootstrap_local_admin() -> None:
    """Create the admin account from LOCAL_ADMIN_* env vars (first run only)."""
    email = settings.LOCAL_ADMIN_EMAIL.strip().lower()
    async with AsyncSessionLocal() as db:
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none():
            return
        db.add(User(
            name=settings.LOCAL_ADMIN_NAME,
            email=email,
            password_hash=hash_password(settings.LOCAL_ADMIN_PASSWORD),
            role="admin",
            is_active=True,
        ))
        await db.commit()
        logger.info(f"Bootstrap admin user '{email}' created")


def _log_startup_health(health: HealthResponse) -> None:
    for check in health.checks:
        icon = "+" if check.status == "ok" else "!"
        detail = f" ({check.message})" if check.message else ""
        if check.response_time_ms is not None:
            detail += f" [{check.response_time_ms:.1f}ms]"
        logger.info(f"  {icon} {check.name}: {check.status}{detail}")
    if health.status != "healthy":
        logger.warning(f"STARTUP HEALTH: {health.status.upper()} - some checks failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=" * 60)
    logger.info(f"{settings.APP_NAME.upper()} v{settings.APP_VERSION} STARTING UP")

    with LogTimer(logger, "Database initialization"):
        await init_db()

    _log_startup_health(await run_health_checks())

    if settings.LOCAL_ADMIN_EMAIL and settings.LOCAL_ADMIN_PASSWORD:
        await _bootstrap_local_admin()

    logger.info("STARTUP COMPLETE - Ready to accept requests")
    logger.info("=" * 60)

    yield

    logger.info(f"{settings.APP_NAME.upper()} SHUTTING DOWN")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


# ── Validation errors ─────────────────────────────────────────────────

def _error_field(loc) -> str:
    parts = [str(x) for x in loc or ()]
    if parts and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts) or "unknown"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Flatten Pydantic errors into ``{field, message, type}`` entries."""
    errors = []
    for error in exc.errors():
        message = error.get("msg", "Validation error")
        # Pydantic prefixes messages raised from our own validators
        message = message.removeprefix("Value error, ")
        errors.append({
            "field": _error_field(error.get("loc")),
            "message": message,
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation failed", "errors": errors},
    )


# ── Request ID + request logging ──────────────────────────────────────

@app.middleware("http")
async def request_lifecycle(request: Request, call_next):
    request_id = str(uuid.uuid4())
    audit.set_request_id(request_id)
    audit.set_actor(None)

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            payload = verify_access_token(auth_header[7:])
            audit.set_actor(f"user:{payload.get('sub', 'unknown')}")
        except JWTError:
            # The route's auth dependency answers 401
            logger.debug("Request carries an invalid bearer token")

    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    indicator = "+" if response.status_code < 400 else "!"
    logger.info(
        f"{indicator} {request.method} {request.url.path} "
        f"[{response.status_code}] {duration_ms:.1f}ms rid={request_id[:8]}"
    )
    response.headers["X-Request-ID"] = request_id
    return response


# Signed cookie holding the per-session device connection
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie=settings.SESSION_COOKIE_NAME,
    max_age=settings.SESSION_MAX_AGE,
    https_only=settings.SESSION_HTTPS_ONLY,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

for router in _ROUTERS:
    app.include_router(router)


@app.get("/health", tags=["health"])
async def health_check():
    """Component health; 503 only when the database is unreachable."""
    health = await run_health_checks()
    status_code = 503 if health.status == "unhealthy" else 200
    return JSONResponse(content=health.model_dump(), status_code=status_code)


@app.get("/api/info", tags=["info"])
async def get_app_info():
    return {"name": settings.APP_NAME, "version": settings.APP_VERSION}


@app.get("/api", tags=["root"])
async def api_root():
    """Entry point listing the resource collections."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "endpoints": {
            "auth": "/api/auth",
            "devices": "/api/devices",
            "device_access": "/device-access",
            "alerts": "/api/alerts",
            "blocked_attempts": "/api/blocked-attempts",
            "dashboard": "/api/dashboard",
            "metrics": "/api/metrics",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
