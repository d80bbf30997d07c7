"""Derives a trainer's status from its active bookings and assignments."""
import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.domains.bookings.models import BookingStatus, TrainerBooking
from trainerhub.domains.colleges.models import AssignmentStatus, CollegeTrainer
from trainerhub.domains.trainers.models import Trainer, TrainerStatus

logger = structlog.get_logger(__name__)


def derive_status(active_count: int) -> TrainerStatus:
    """Computed status for a trainer with ``active_count`` active consumers."""
    return TrainerStatus.BOOKED if active_count > 0 else TrainerStatus.AVAILABLE


class StatusReconciler:
    """Recomputes ``Trainer.computed_status`` inside the caller's transaction.

    Never commits. Callers invoke it after their mutation so the count reflects
    the post-mutation state; pending changes are flushed first.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_active_bookings(self, trainer_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(TrainerBooking.id)).where(
                TrainerBooking.trainer_id == trainer_id,
                TrainerBooking.status == BookingStatus.ACTIVE,
            )
        )
        return count or 0

    async def count_active_assignments(self, trainer_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count(CollegeTrainer.id)).where(
                CollegeTrainer.trainer_id == trainer_id,
                CollegeTrainer.status == AssignmentStatus.ACTIVE,
            )
        )
        return count or 0

    async def active_consumer_count(self, trainer_id: uuid.UUID) -> int:
        """Number of ACTIVE bookings plus active college assignments."""
        await self.db.flush()
        bookings = await self.count_active_bookings(trainer_id)
        assignments = await self.count_active_assignments(trainer_id)
        return bookings + assignments

    async def reconcile(self, trainer: Trainer) -> TrainerStatus:
        """Bring ``computed_status`` in line with the active-consumer set.

        An operator override (NOT_AVAILABLE / INACTIVE) keeps winning in the
        visible ``status``; the computed half is still kept current so clearing
        the override exposes the right value. Safe to call redundantly.

        Returns:
            The trainer's visible status after reconciliation
        """
        active_count = await self.active_consumer_count(trainer.id)
        computed = derive_status(active_count)

        if trainer.computed_status != computed:
            previous = trainer.status
            trainer.computed_status = computed
            await self.db.flush()
            logger.info(
                "trainer_status_reconciled",
                trainer_id=str(trainer.id),
                active_count=active_count,
                computed_status=computed.value,
                previous_status=previous.value,
                status=trainer.status.value,
            )

        return trainer.status
