"""Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database through aiosqlite. The schema
is built from the ORM metadata for every test, so each test starts empty.
"""

from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import classwatch.models  # noqa: F401  registers the tables on Base.metadata
from classwatch.database import Base, get_db
from classwatch.models.monitoring import MonitoringEvent


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    """Session factory bound to the test database."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncIterator[AsyncSession]:
    """Provide a database session for a single test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client wired to the app with get_db pointed at the test database."""
    from classwatch.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """A fixed evaluation instant."""
    return datetime(2026, 3, 10, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_event():
    """Build a raw event payload with sensible defaults."""

    def _make(**overrides: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "room_id": "room-1",
            "session_id": "sess-1",
            "participant_email": "asha@school.edu",
            "participant_name": "Asha",
            "event_type": "attentive",
            "confidence": 90,
            "duration_seconds": 30,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def add_event(db):
    """Insert a stored event directly, bypassing evaluation."""

    async def _add(
        *,
        created_at: datetime,
        event_type: str,
        duration_seconds: int,
        room_id: str = "room-1",
        participant_email: str = "asha@school.edu",
        participant_name: str = "Asha",
    ) -> MonitoringEvent:
        event = MonitoringEvent(
            room_id=room_id,
            participant_email=participant_email,
            participant_name=participant_name,
            event_type=event_type,
            confidence=100,
            duration_seconds=duration_seconds,
            details={},
            created_at=created_at,
        )
        db.add(event)
        await db.commit()
        return event

    return _add
