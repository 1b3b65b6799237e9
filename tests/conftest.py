"""
Pytest configuration and fixtures.

This module provides fixtures that simulate a night at the venue:
- A fixed, steppable clock starting at 20:00
- Nomination types for main and in-house nominations
- A checked-in visit at one table
- Three casts available for engagements
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from venue_billing.database import Base, get_session
from venue_billing.models import NominationType, Visit
from venue_billing.services.visit_session import VisitSessionManager


# Use SQLite for testing (in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OPENING_TIME = datetime(2026, 1, 10, 20, 0, 0)


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 0, seconds: int = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(OPENING_TIME)


@pytest.fixture
def cast_ids() -> List[UUID]:
    """Three casts on tonight's roster."""
    return [uuid4(), uuid4(), uuid4()]


@pytest.fixture
def session_manager(db_session: AsyncSession, clock: FakeClock) -> VisitSessionManager:
    return VisitSessionManager(db_session, clock=clock)


@pytest_asyncio.fixture
async def nomination_types(db_session: AsyncSession) -> List[NominationType]:
    """
    Nomination catalog:
    - MAIN: the guest's designated cast
    - INHOUSE: a cast requested on the night
    - RETIRED: no longer offered
    """
    types = [
        NominationType(
            code="MAIN",
            display_name="Main nomination",
            price=3000,
            back_rate=Decimal("50"),
            priority=1,
            is_active=True,
        ),
        NominationType(
            code="INHOUSE",
            display_name="In-house nomination",
            price=2000,
            back_rate=Decimal("30"),
            priority=2,
            is_active=True,
        ),
        NominationType(
            code="RETIRED",
            display_name="Old companion fee",
            price=500,
            back_rate=Decimal("10"),
            priority=9,
            is_active=False,
        ),
    ]
    db_session.add_all(types)
    await db_session.commit()
    return types


@pytest_asyncio.fixture
async def sample_visit(session_manager: VisitSessionManager) -> Visit:
    """A party of two seated at the bar at opening time."""
    return await session_manager.check_in(
        primary_customer_id=uuid4(),
        table_id=uuid4(),
        guest_count=2,
        main_guest_name="Tanaka",
    )


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test session injected."""
    from venue_billing.main import app

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
