"""Tests for ExpirationSweep - completing expired bookings."""

from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.domains.bookings.models import BookingStatus
from trainerhub.domains.bookings.service import BookingService
from trainerhub.domains.bookings.sweep import ExpirationSweep
from trainerhub.domains.colleges.service import AssignmentService
from trainerhub.domains.trainers.models import TrainerStatus


async def _book(db: AsyncSession, trainer, start, hours: int = 1, title: str = "Session"):
    return await BookingService(db).create_booking(
        trainer_id=trainer.id,
        start_time=start,
        end_time=start + timedelta(hours=hours),
        title=title,
    )


class TestSweepExpired:
    """Tests for the expiration sweep."""

    async def test_completes_expired_booking_and_releases_trainer(
        self, db_session: AsyncSession, sample_trainer, tomorrow
    ):
        booking = await _book(db_session, sample_trainer, tomorrow)

        result = await ExpirationSweep(db_session).sweep_expired(now=tomorrow + timedelta(hours=2))

        assert result.updated_count == 1
        assert result.failed_ids == []

        await db_session.refresh(booking)
        await db_session.refresh(sample_trainer)
        assert booking.status == BookingStatus.COMPLETED
        assert sample_trainer.status == TrainerStatus.AVAILABLE

    async def test_leaves_running_and_future_bookings(
        self, db_session: AsyncSession, sample_trainer, tomorrow
    ):
        running = await _book(db_session, sample_trainer, tomorrow, hours=3)
        future = await _book(db_session, sample_trainer, tomorrow + timedelta(days=1))

        result = await ExpirationSweep(db_session).sweep_expired(now=tomorrow + timedelta(hours=1))

        assert result.updated_count == 0
        await db_session.refresh(running)
        await db_session.refresh(future)
        assert running.status == BookingStatus.ACTIVE
        assert future.status == BookingStatus.ACTIVE

    async def test_booking_ending_exactly_now_is_not_expired(
        self, db_session: AsyncSession, sample_trainer, tomorrow
    ):
        await _book(db_session, sample_trainer, tomorrow)

        result = await ExpirationSweep(db_session).sweep_expired(now=tomorrow + timedelta(hours=1))

        assert result.updated_count == 0

    async def test_trainer_stays_booked_with_remaining_consumers(
        self, db_session: AsyncSession, sample_trainer, sample_college, tomorrow
    ):
        await _book(db_session, sample_trainer, tomorrow)
        await AssignmentService(db_session).assign(sample_college.id, sample_trainer.id)

        result = await ExpirationSweep(db_session).sweep_expired(now=tomorrow + timedelta(hours=2))

        assert result.updated_count == 1
        await db_session.refresh(sample_trainer)
        assert sample_trainer.status == TrainerStatus.BOOKED

    async def test_cancelled_bookings_are_not_completed(
        self, db_session: AsyncSession, sample_trainer, tomorrow
    ):
        booking = await _book(db_session, sample_trainer, tomorrow)
        await BookingService(db_session).cancel_booking(booking.id)

        result = await ExpirationSweep(db_session).sweep_expired(now=tomorrow + timedelta(hours=2))

        assert result.updated_count == 0
        await db_session.refresh(booking)
        assert booking.status == BookingStatus.CANCELLED

    async def test_sweep_is_idempotent(self, db_session: AsyncSession, sample_trainer, tomorrow):
        await _book(db_session, sample_trainer, tomorrow)
        sweep = ExpirationSweep(db_session)
        cutoff = tomorrow + timedelta(hours=2)

        first = await sweep.sweep_expired(now=cutoff)
        second = await sweep.sweep_expired(now=cutoff)

        assert first.updated_count == 1
        assert second.updated_count == 0

    async def test_failure_on_one_booking_does_not_stop_the_rest(
        self, db_session: AsyncSession, sample_trainer, make_trainer, tomorrow
    ):
        """A failing booking is reported and stays ACTIVE; others still complete."""
        other = await make_trainer()
        broken = await _book(db_session, sample_trainer, tomorrow, title="Broken")
        fine = await _book(db_session, other, tomorrow, title="Fine")

        sweep = ExpirationSweep(db_session)
        original = sweep._complete_booking

        async def flaky(booking_id, trainer_id, now):
            if booking_id == broken.id:
                raise RuntimeError("database hiccup")
            return await original(booking_id, trainer_id, now)

        with patch.object(sweep, "_complete_booking", side_effect=flaky), patch(
            "trainerhub.domains.bookings.sweep.capture_exception"
        ) as mock_capture:
            result = await sweep.sweep_expired(now=tomorrow + timedelta(hours=2))

        assert result.updated_count == 1
        assert result.failed_ids == [broken.id]
        mock_capture.assert_called_once()

        await db_session.refresh(broken)
        await db_session.refresh(fine)
        assert broken.status == BookingStatus.ACTIVE
        assert fine.status == BookingStatus.COMPLETED

    async def test_accepts_iso_cutoff(self, db_session: AsyncSession, sample_trainer, tomorrow):
        await _book(db_session, sample_trainer, tomorrow)
        cutoff = (tomorrow + timedelta(hours=2)).isoformat()

        result = await ExpirationSweep(db_session).sweep_expired(now=cutoff)

        assert result.updated_count == 1
