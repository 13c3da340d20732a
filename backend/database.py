"""
Async SQLAlchemy engine, session factory and schema bootstrap.

Devices, alerts, blocked attempts, logs and metrics all live in a single
SQLite file (``DATABASE_URL``).  Tables are created on startup; columns added
after the first release are patched in by :func:`_upgrade_schema`.
"""

from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings

_SQLITE_PREFIX = "sqlite:///"


def _async_url(url: str) -> str:
    """Map a plain ``sqlite:///`` URL onto the aiosqlite driver."""
    if url.startswith(_SQLITE_PREFIX):
        return "sqlite+aiosqlite:///" + url[len(_SQLITE_PREFIX):]
    return url


def _ensure_sqlite_directory(url: str) -> None:
    if not url.startswith(_SQLITE_PREFIX):
        return
    db_file = url[len(_SQLITE_PREFIX):]
    if db_file and db_file != ":memory:":
        Path(db_file).parent.mkdir(parents=True, exist_ok=True)


_ensure_sqlite_directory(settings.DATABASE_URL)

engine = create_async_engine(
    _async_url(settings.DATABASE_URL),
    echo=settings.DEBUG,
    future=True,
)

# Rows handed to response models must stay readable after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session; uncommitted work is rolled back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create missing tables and patch older SQLite files."""
    # Register every model on Base.metadata before create_all
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if conn.dialect.name == "sqlite":
            await conn.run_sync(_upgrade_schema)


# table -> [(column, DDL)] for columns introduced after the initial schema
_ADDED_COLUMNS = {
    "devices": [
        ("firmware_version", "firmware_version VARCHAR(50)"),
        ("updated_at", "updated_at DATETIME"),
    ],
    "security_alerts": [
        ("resolved_by", "resolved_by INTEGER"),
    ],
    "blocked_attempts": [
        ("user_agent", "user_agent TEXT"),
    ],
}


def _upgrade_schema(sync_conn) -> None:
    for table, columns in _ADDED_COLUMNS.items():
        present = {
            row[1]
            for row in sync_conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
        }
        for column_name, ddl in columns:
            if column_name not in present:
                sync_conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {ddl}"))


async def close_db():
    """Dispose of the engine's connection pool."""
    await engine.dispose()
