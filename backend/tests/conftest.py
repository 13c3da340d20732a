"""
Pytest configuration and fixtures for the IoT Intrusion Dashboard API tests.

Provides:
- Async SQLite in-memory database shared through a StaticPool
- FastAPI app with dependency overrides
- AsyncClient for testing async endpoints (cookies persist, so the
  session connection survives between requests)
- Factories for users, bearer headers and devices
"""

import os

# Configure before config/database are imported by the app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.jwt_service import create_access_token
from auth.passwords import hash_password
from database import Base, get_db
from main import app
from models import Device, User

DEFAULT_PASSWORD = "password123"


@pytest_asyncio.fixture
async def session_factory():
    """
    Session factory bound to a fresh in-memory database.

    StaticPool keeps a single connection so every session sees the same
    tables and rows.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def async_client(session_factory):
    """
    Create an AsyncClient pointing to the FastAPI app with the test database.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(session_factory):
    """Factory: ``await make_user(role="admin")`` inserts and returns a user."""
    counter = {"n": 0}

    async def _make_user(
        role: str = "user",
        email: str = None,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True,
        name: str = None,
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        async with session_factory() as db:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def make_device(session_factory):
    """Factory: ``await make_device(status="online", firmware_version="1.0")``."""
    counter = {"n": 0}

    async def _make_device(**overrides) -> Device:
        counter["n"] += 1
        fields = {
            "name": f"Device {counter['n']}",
            "device_type": "sensor",
            "status": "online",
            "firmware_version": None,
        }
        fields.update(overrides)
        device = Device(**fields)
        async with session_factory() as db:
            db.add(device)
            await db.commit()
            await db.refresh(device)
        return device

    return _make_device


def bearer(user: User) -> dict:
    """Authorization header for ``user``."""
    token = create_access_token(user_id=user.id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_user(make_user):
    return await make_user(role="admin", email="admin@example.com")


@pytest_asyncio.fixture
async def regular_user(make_user):
    return await make_user(role="user", email="user@example.com")


@pytest_asyncio.fixture
async def admin_headers(admin_user):
    return bearer(admin_user)


@pytest_asyncio.fixture
async def user_headers(regular_user):
    return bearer(regular_user)


@pytest_asyncio.fixture
async def headers_for():
    """Factory fixture returning :func:`bearer` for users created inside a test."""
    return bearer
