"""Tests for interval overlap detection."""

from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.domains.bookings.conflicts import find_conflicting_bookings, intervals_overlap
from trainerhub.domains.bookings.models import BookingStatus, TrainerBooking

T0 = datetime(2030, 1, 1, 10, 0, tzinfo=timezone.utc)


def hours(n: float) -> datetime:
    return T0 + timedelta(hours=n)


class TestIntervalsOverlap:
    """Tests for the half-open interval predicate."""

    def test_partial_overlap(self):
        assert intervals_overlap(hours(0), hours(2), hours(1), hours(3))
        assert intervals_overlap(hours(1), hours(3), hours(0), hours(2))

    def test_containment(self):
        assert intervals_overlap(hours(0), hours(4), hours(1), hours(2))
        assert intervals_overlap(hours(1), hours(2), hours(0), hours(4))

    def test_identical_windows(self):
        assert intervals_overlap(hours(0), hours(1), hours(0), hours(1))

    def test_touching_boundaries_do_not_overlap(self):
        """A booking ending exactly when another starts is not a conflict."""
        assert not intervals_overlap(hours(0), hours(1), hours(1), hours(2))
        assert not intervals_overlap(hours(1), hours(2), hours(0), hours(1))

    def test_disjoint_windows(self):
        assert not intervals_overlap(hours(0), hours(1), hours(5), hours(6))


class TestFindConflictingBookings:
    """Tests for the conflict query."""

    async def _book(self, db: AsyncSession, trainer, start, end, status=BookingStatus.ACTIVE):
        booking = TrainerBooking(
            trainer_id=trainer.id,
            start_time=start,
            end_time=end,
            title="Session",
            status=status,
        )
        db.add(booking)
        await db.commit()
        return booking

    async def test_returns_overlapping_active_bookings(self, db_session, sample_trainer):
        """Overlapping ACTIVE bookings are returned ordered by start."""
        later = await self._book(db_session, sample_trainer, hours(2), hours(4))
        earlier = await self._book(db_session, sample_trainer, hours(0), hours(2))

        conflicts = await find_conflicting_bookings(
            db_session, sample_trainer.id, hours(1), hours(3)
        )

        assert [b.id for b in conflicts] == [earlier.id, later.id]

    async def test_boundary_is_not_a_conflict(self, db_session, sample_trainer):
        await self._book(db_session, sample_trainer, hours(0), hours(1))

        conflicts = await find_conflicting_bookings(
            db_session, sample_trainer.id, hours(1), hours(2)
        )

        assert conflicts == []

    async def test_ignores_cancelled_and_completed(self, db_session, sample_trainer):
        await self._book(db_session, sample_trainer, hours(0), hours(2), BookingStatus.CANCELLED)
        await self._book(db_session, sample_trainer, hours(0), hours(2), BookingStatus.COMPLETED)

        conflicts = await find_conflicting_bookings(
            db_session, sample_trainer.id, hours(0), hours(2)
        )

        assert conflicts == []

    async def test_ignores_other_trainers(self, db_session, sample_trainer, make_trainer):
        other = await make_trainer()
        await self._book(db_session, other, hours(0), hours(2))

        conflicts = await find_conflicting_bookings(
            db_session, sample_trainer.id, hours(0), hours(2)
        )

        assert conflicts == []

    async def test_excludes_given_booking(self, db_session, sample_trainer):
        """Moving a booking must not conflict with its own previous interval."""
        booking = await self._book(db_session, sample_trainer, hours(0), hours(2))

        conflicts = await find_conflicting_bookings(
            db_session,
            sample_trainer.id,
            hours(1),
            hours(3),
            exclude_booking_id=booking.id,
        )

        assert conflicts == []
