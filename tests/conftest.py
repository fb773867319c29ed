"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from core.config import Settings
from core.timeutils import provider_window
from ingestion.runner import SyncEngine
from models.base import Base
from models.price_data import PriceData

# In-memory database shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COUNTRIES = ["lt", "ee", "lv", "fi"]

# Monday 2024-01-15 10:00 UTC (12:00 in Vilnius)
FIXED_NOW = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)


class FakeEleringClient:
    """
    Stands in for EleringClient; serves one price per hour of the provider window.

    ``available_from`` limits data to windows on or after that date so long
    backfills stay small.
    """

    def __init__(
        self,
        countries: Optional[List[str]] = None,
        available_from: Optional[date] = None,
        price: float = 50.0
    ):
        self.countries = countries or list(COUNTRIES)
        self.available_from = available_from
        self.price = price
        self.calls: List[tuple] = []
        self.failures: Dict[int, Exception] = {}

    def fail_on_call(self, call_number: int, error: Exception):
        self.failures[call_number] = error

    def _items(self, start: date, end: date) -> List[dict]:
        if self.available_from and end < self.available_from:
            return []
        first = max(start, self.available_from) if self.available_from else start
        window_start, window_end = provider_window(first, end)

        items = []
        current = window_start
        while current <= window_end:
            items.append({"timestamp": int(current.timestamp()), "price": self.price})
            current += timedelta(hours=1)
        return items

    def _record(self, call: tuple):
        self.calls.append(call)
        error = self.failures.get(len(self.calls))
        if error is not None:
            raise error

    async def fetch_all_countries(self, start: date, end: date) -> Dict[str, List[dict]]:
        self._record(("all", start, end))
        items = self._items(start, end)
        return {country: list(items) for country in self.countries}

    async def fetch_range(self, start: date, end: date, country: str) -> List[dict]:
        self._record((country, start, end))
        return self._items(start, end) if country in self.countries else []

    async def test_connection(self) -> bool:
        return True


@pytest.fixture
def test_settings():
    """Settings with throttling disabled"""
    return Settings(CHUNK_PAUSE_SECONDS=0.0, ETL_BATCH_SIZE=100, SCHEDULER_ENABLED=False)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_client():
    return FakeEleringClient()


@pytest.fixture
def sync_engine(session_factory, fake_client, test_settings):
    """SyncEngine on the test database with a frozen clock and no real sleeping"""
    return SyncEngine(
        session_factory,
        client=fake_client,
        config=test_settings,
        clock=lambda: FIXED_NOW,
        sleep=AsyncMock()
    )


async def seed_prices(session_factory, country: str, start_ts: int, hours: int, price: float = 42.0):
    """Insert ``hours`` consecutive hourly prices starting at ``start_ts``."""
    async with session_factory() as session:
        for i in range(hours):
            ts = start_ts + i * 3600
            session.add(PriceData(
                timestamp=ts,
                price=price,
                country=country,
                date=datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")
            ))
        await session.commit()
