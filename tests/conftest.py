"""Shared test fixtures — async DB, client, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test configuration before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RUN_STARTUP_ACCRUAL", "false")

from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from workday.attendance.storage import LocalPhotoStorage, get_photo_storage
from workday.auth.service import create_session
from workday.common.constants import UserRole
from workday.common.rate_limit import limiter
from workday.database import Base, get_db
from workday.main import create_app
from workday.users.models import User
from workday.users.service import hash_password

# Import ALL model modules so every table is registered on Base.metadata
import workday.app_settings.models  # noqa: F401
import workday.attendance.models  # noqa: F401
import workday.auth.models  # noqa: F401
import workday.calendar.models  # noqa: F401
import workday.common.audit  # noqa: F401
import workday.leave.models  # noqa: F401


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

# A plain working Wednesday under the default weekly-off mode
WORKDAY = date(2025, 12, 10)
PNG_DATA_URL = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Keep slowapi from counting logins across tests."""
    limiter.enabled = False
    yield
    limiter.enabled = True


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Photo storage ───────────────────────────────────────────────────

@pytest.fixture
def photo_storage(tmp_path) -> LocalPhotoStorage:
    return LocalPhotoStorage(str(tmp_path / "uploads"))


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(photo_storage):
    """Create a fresh app instance with DB and storage dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_photo_storage] = lambda: photo_storage
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

async def make_user(
    db: AsyncSession,
    username: str = "manuj",
    *,
    role: UserRole = UserRole.employee,
    join_date: date = date(2025, 12, 1),
    leave_balance: Decimal = Decimal("0"),
    last_accrual_month: Optional[str] = None,
    password: str = "111",
    is_active: bool = True,
) -> User:
    """Insert and commit a user so API requests can see it."""
    user = User(
        username=username,
        display_name=username.title(),
        password_hash=hash_password(password),
        role=role,
        join_date=join_date,
        leave_balance=leave_balance,
        last_accrual_month=last_accrual_month,
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    return user


async def auth_headers(db: AsyncSession, user: User) -> dict[str, str]:
    """Open a real session for *user* and return Bearer headers."""
    token, _ = await create_session(db, user, "127.0.0.1", "pytest")
    await db.commit()
    return {"Authorization": f"Bearer {token}"}


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Aware timestamp on *day* in the default zone."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=ZoneInfo("Asia/Kolkata"))


# ── Common users ────────────────────────────────────────────────────

@pytest.fixture
async def owner(db) -> User:
    return await make_user(db, "smita", role=UserRole.owner)


@pytest.fixture
async def manager(db) -> User:
    return await make_user(db, "dinesh", role=UserRole.manager)


@pytest.fixture
async def employee(db) -> User:
    return await make_user(db, "manuj", role=UserRole.employee)
