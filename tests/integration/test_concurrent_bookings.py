"""Concurrency tests: racing requests against one trainer, separate sessions."""
import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trainerhub.config.database import Base
from trainerhub.core.exceptions import ConflictError
from trainerhub.domains.bookings.models import BookingStatus, TrainerBooking
from trainerhub.domains.bookings.service import BookingService
from trainerhub.domains.bookings.sweep import ExpirationSweep
from trainerhub.domains.colleges.models import College
from trainerhub.domains.colleges.service import AssignmentService
from trainerhub.domains.trainers.models import Trainer, TrainerStatus


@pytest.fixture
async def session_factory(tmp_path):
    """Sessions sharing one file-backed database, one connection each."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")

    from trainerhub.domains import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as db:
        trainer = Trainer(name="Race Trainer", email="race@example.com", specialization=[])
        colleges = [College(name="North Campus"), College(name="South Campus")]
        db.add(trainer)
        db.add_all(colleges)
        await db.commit()
        return trainer.id, [c.id for c in colleges]


async def _count_active(session_factory, trainer_id) -> int:
    async with session_factory() as db:
        return await db.scalar(
            select(func.count(TrainerBooking.id)).where(
                TrainerBooking.trainer_id == trainer_id,
                TrainerBooking.status == BookingStatus.ACTIVE,
            )
        )


class TestConcurrentBookings:
    @pytest.mark.asyncio
    async def test_only_one_of_two_overlapping_creates_succeeds(
        self, session_factory, seeded, tomorrow
    ):
        trainer_id, _ = seeded

        async def attempt(title: str):
            async with session_factory() as db:
                return await BookingService(db).create_booking(
                    trainer_id=trainer_id,
                    start_time=tomorrow,
                    end_time=tomorrow + timedelta(hours=1),
                    title=title,
                )

        results = await asyncio.gather(attempt("A"), attempt("B"), return_exceptions=True)

        successes = [r for r in results if isinstance(r, TrainerBooking)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert conflicts[0].code == "BOOKING_OVERLAP"
        assert await _count_active(session_factory, trainer_id) == 1

    @pytest.mark.asyncio
    async def test_cancel_racing_create_leaves_consistent_status(
        self, session_factory, seeded, tomorrow
    ):
        """Whatever the interleaving, the trainer ends BOOKED iff something is active."""
        trainer_id, _ = seeded
        async with session_factory() as db:
            first = await BookingService(db).create_booking(
                trainer_id=trainer_id,
                start_time=tomorrow,
                end_time=tomorrow + timedelta(hours=1),
                title="First",
            )

        async def cancel():
            async with session_factory() as db:
                await BookingService(db).cancel_booking(first.id)

        async def create():
            async with session_factory() as db:
                await BookingService(db).create_booking(
                    trainer_id=trainer_id,
                    start_time=tomorrow + timedelta(hours=2),
                    end_time=tomorrow + timedelta(hours=3),
                    title="Second",
                )

        await asyncio.gather(cancel(), create())

        async with session_factory() as db:
            trainer = await db.get(Trainer, trainer_id)
            assert trainer.status == TrainerStatus.BOOKED
        assert await _count_active(session_factory, trainer_id) == 1

    @pytest.mark.asyncio
    async def test_sweep_racing_assignment_keeps_trainer_booked(
        self, session_factory, seeded, tomorrow
    ):
        trainer_id, college_ids = seeded
        async with session_factory() as db:
            await BookingService(db).create_booking(
                trainer_id=trainer_id,
                start_time=tomorrow,
                end_time=tomorrow + timedelta(hours=1),
                title="Expiring",
            )

        async def sweep():
            async with session_factory() as db:
                return await ExpirationSweep(db).sweep_expired(now=tomorrow + timedelta(hours=2))

        async def assign():
            async with session_factory() as db:
                await AssignmentService(db).assign(college_ids[0], trainer_id)

        sweep_result, _ = await asyncio.gather(sweep(), assign())

        assert sweep_result.updated_count == 1
        async with session_factory() as db:
            trainer = await db.get(Trainer, trainer_id)
            assert trainer.status == TrainerStatus.BOOKED

    @pytest.mark.asyncio
    async def test_two_trainers_racing_for_one_college(self, session_factory, seeded):
        trainer_id, college_ids = seeded
        async with session_factory() as db:
            rival = Trainer(name="Rival", email="rival@example.com", specialization=[])
            db.add(rival)
            await db.commit()
            rival_id = rival.id

        async def assign(tid):
            async with session_factory() as db:
                return await AssignmentService(db).assign(college_ids[1], tid)

        results = await asyncio.gather(
            assign(trainer_id), assign(rival_id), return_exceptions=True
        )

        assert sum(isinstance(r, College) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 1
