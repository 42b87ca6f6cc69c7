"""
Shared fixtures: a throwaway SQLite database per test, an in-process fake
Redis for table locks, and a clock the tests move by hand.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-tables.db")

import fakeredis
import pytest
import pytest_asyncio

from backend.app.core.locks import TableLocks
from backend.app.db.session import build_engine, build_sessionmaker
from backend.app.db.tables import metadata
from backend.app.domain.policy import SchedulingPolicy
from backend.app.services.scheduler import AvailabilityScheduler
from backend.app.services.tables import TableRegistry
from backend.tests.helpers import FakeClock, at


@pytest.fixture
def clock():
    return FakeClock(at(12))


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tables.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def locks(redis):
    return TableLocks(redis, ttl_ms=5_000, wait_seconds=0.5, poll_seconds=0.01)


@pytest.fixture
def policy():
    return SchedulingPolicy()


@pytest.fixture
def scheduler(sessions, locks, policy, clock):
    return AvailabilityScheduler(sessions, locks, policy, clock)


@pytest.fixture
def add_table(sessions, clock):
    """Register a table the way the admin side would and return its record."""

    async def _add(number: int, capacity: int, location: str | None = None):
        async with sessions() as session, session.begin():
            return await TableRegistry(session, clock).register(number, capacity, location)

    return _add
