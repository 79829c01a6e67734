from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from care_billing.main import app
from care_billing.database import Base, get_db
from care_billing.schemas.period import PeriodType
from care_billing.services.period_resolver import resolve_period

from tests.factories import (
    BookingFactory,
    ClientFactory,
    RateScheduleFactory,
    PERIOD_START,
    PERIOD_END,
    visit_at,
)

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(test_db: AsyncSession):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def period():
    """Custom period covering the week of 2 March 2026."""
    return resolve_period(PeriodType.custom, (PERIOD_START, PERIOD_END))


@pytest_asyncio.fixture
async def billable_client(test_db: AsyncSession):
    """Client with a 20.00/hour schedule and two completed one-hour visits."""
    client = ClientFactory(first_name="Ada", last_name="Able")
    test_db.add(client)
    await test_db.flush()
    test_db.add(RateScheduleFactory(client_id=client.id))
    for day in (date(2026, 3, 3), date(2026, 3, 5)):
        start, end = visit_at(day)
        test_db.add(BookingFactory(client_id=client.id, start_time=start, end_time=end))
    await test_db.commit()
    return client


@pytest_asyncio.fixture
async def unrated_client(test_db: AsyncSession):
    """Client with one completed visit and no rate basis."""
    client = ClientFactory(first_name="Ben", last_name="Baker")
    test_db.add(client)
    await test_db.flush()
    start, end = visit_at(date(2026, 3, 4))
    test_db.add(BookingFactory(client_id=client.id, start_time=start, end_time=end))
    await test_db.commit()
    return client
