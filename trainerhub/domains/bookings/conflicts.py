"""Interval conflict detection for trainer bookings.

Bookings occupy half-open intervals ``[start, end)``. Two intervals overlap
iff ``s1 < e2 and s2 < e1``; a booking ending exactly when another starts does
not conflict.
"""
import uuid
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.domains.bookings.models import BookingStatus, TrainerBooking


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Check whether two half-open intervals share any instant."""
    return start_a < end_b and start_b < end_a


def overlap_clause(start_time: datetime, end_time: datetime):
    """SQL form of ``intervals_overlap`` against the booking columns."""
    return and_(
        TrainerBooking.start_time < end_time,
        TrainerBooking.end_time > start_time,
    )


async def find_conflicting_bookings(
    db: AsyncSession,
    trainer_id: uuid.UUID,
    start_time: datetime,
    end_time: datetime,
    exclude_booking_id: uuid.UUID | None = None,
) -> list[TrainerBooking]:
    """Return the trainer's ACTIVE bookings overlapping ``[start_time, end_time)``.

    Args:
        db: Database session
        trainer_id: Trainer whose bookings are checked
        start_time: Proposed window start
        end_time: Proposed window end
        exclude_booking_id: Booking to ignore, used when moving an existing booking

    Returns:
        Conflicting bookings ordered by start time, empty if none
    """
    query = select(TrainerBooking).where(
        TrainerBooking.trainer_id == trainer_id,
        TrainerBooking.status == BookingStatus.ACTIVE,
        overlap_clause(start_time, end_time),
    )
    if exclude_booking_id is not None:
        query = query.where(TrainerBooking.id != exclude_booking_id)

    result = await db.execute(query.order_by(TrainerBooking.start_time))
    return list(result.scalars().all())
