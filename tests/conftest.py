"""Test configuration and fixtures for the booking engine."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trainerhub.config.database import Base
from trainerhub.core import locks
from trainerhub.core.models import utcnow
from trainerhub.domains.colleges.models import College
from trainerhub.domains.trainers.models import Trainer, TrainerStatus

# Test database URL - use SQLite in-memory for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def memory_locks():
    """Use in-memory resource locks instead of Redis."""
    locks._memory_locks.clear()
    locks._memory_lock_users.clear()
    with patch("trainerhub.core.locks.get_redis", new_callable=AsyncMock, return_value=None):
        yield locks._memory_locks
    locks._memory_locks.clear()
    locks._memory_lock_users.clear()


@pytest.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    # Import all models to register them
    from trainerhub.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def now() -> datetime:
    """Fixed reference time, whole minutes so windows compare exactly."""
    return utcnow().replace(second=0, microsecond=0)


@pytest.fixture
def tomorrow(now: datetime) -> datetime:
    """Start of a window safely in the future."""
    return (now + timedelta(days=1)).replace(hour=10, minute=0)


@pytest.fixture
def make_trainer(db_session: AsyncSession) -> Callable[..., Awaitable[Trainer]]:
    """Factory creating committed trainers."""
    counter = {"n": 0}

    async def _make(
        name: str | None = None,
        status_override: TrainerStatus | None = None,
        **fields,
    ) -> Trainer:
        counter["n"] += 1
        trainer = Trainer(
            name=name or f"Trainer {counter['n']}",
            email=f"trainer{counter['n']}@example.com",
            specialization=fields.pop("specialization", ["Python"]),
            status_override=status_override,
            **fields,
        )
        db_session.add(trainer)
        await db_session.commit()
        await db_session.refresh(trainer)
        return trainer

    return _make


@pytest.fixture
def make_college(db_session: AsyncSession) -> Callable[..., Awaitable[College]]:
    """Factory creating committed colleges."""
    counter = {"n": 0}

    async def _make(name: str | None = None, **fields) -> College:
        counter["n"] += 1
        college = College(name=name or f"College {counter['n']}", **fields)
        db_session.add(college)
        await db_session.commit()
        await db_session.refresh(college)
        return college

    return _make


@pytest.fixture
async def sample_trainer(make_trainer) -> Trainer:
    """An AVAILABLE trainer with no bookings or assignments."""
    return await make_trainer(
        name="Asha Rao",
        specialization=["Python", "Data Science"],
        experience=6,
        rating=4.7,
        location="Pune",
    )


@pytest.fixture
async def sample_college(make_college) -> College:
    """A college with no trainer assigned."""
    return await make_college(name="Riverside Engineering College", city="Pune", state="MH")
