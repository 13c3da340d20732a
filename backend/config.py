from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/iot_intrusion.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "IoT Intrusion Dashboard"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Authentication ─────────────────────────────────────────────────
    # JWT
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 60

    # Password hashing
    BCRYPT_ROUNDS: int = 12

    # Session cookie (holds the per-session device connection)
    SESSION_SECRET: str = "change-me-session-secret"
    SESSION_COOKIE_NAME: str = "iot_session"
    SESSION_MAX_AGE: int = 24 * 60 * 60
    SESSION_HTTPS_ONLY: bool = False

    # Local admin bootstrap (set via env vars for first-run setup)
    LOCAL_ADMIN_NAME: str = "Administrator"
    LOCAL_ADMIN_EMAIL: Optional[str] = None
    LOCAL_ADMIN_PASSWORD: Optional[str] = None

    # ── Statistics ─────────────────────────────────────────────────────
    # Window used by "recent" counters on the alert/attempt/dashboard stats
    ALERT_RECENT_WINDOW_HOURS: int = 24

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
