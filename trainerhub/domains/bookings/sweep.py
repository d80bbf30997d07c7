"""Expiration sweep: completes bookings whose end time has passed."""
import uuid
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.config.database import end_unchanged_transaction
from trainerhub.core.locks import trainer_lock
from trainerhub.core.models import utcnow
from trainerhub.core.observability import capture_exception
from trainerhub.domains.bookings.models import BookingStatus, TrainerBooking
from trainerhub.domains.bookings.schemas import SweepResult
from trainerhub.domains.bookings.service import to_utc
from trainerhub.domains.trainers.reconciler import StatusReconciler
from trainerhub.domains.trainers.store import TrainerStore

logger = structlog.get_logger(__name__)


class ExpirationSweep:
    """Moves expired ACTIVE bookings to COMPLETED and reconciles their trainers.

    Each booking is its own unit of work under its trainer's lock, so the
    sweep can run alongside booking requests. A failure on one booking is
    rolled back and reported; the remaining bookings are still processed and
    the failed one is picked up again by the next run.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.trainers = TrainerStore(db)
        self.reconciler = StatusReconciler(db)

    async def sweep_expired(self, now: datetime | str | None = None) -> SweepResult:
        """Complete every ACTIVE booking with ``end_time < now``."""
        now = to_utc(now) if now is not None else utcnow()

        result = await self.db.execute(
            select(TrainerBooking.id, TrainerBooking.trainer_id)
            .where(
                TrainerBooking.status == BookingStatus.ACTIVE,
                TrainerBooking.end_time < now,
            )
            .order_by(TrainerBooking.end_time)
        )
        expired = list(result.all())
        # Release the scan's read transaction before taking per-trainer locks
        await self.db.commit()

        updated_count = 0
        failed_ids: list[uuid.UUID] = []

        for booking_id, trainer_id in expired:
            try:
                if await self._complete_booking(booking_id, trainer_id, now):
                    updated_count += 1
            except Exception as e:
                failed_ids.append(booking_id)
                logger.error(
                    "expired_booking_completion_failed",
                    booking_id=str(booking_id),
                    trainer_id=str(trainer_id),
                    error=str(e),
                    type=type(e).__name__,
                )
                capture_exception(
                    e,
                    extra={"booking_id": str(booking_id), "trainer_id": str(trainer_id)},
                    tags={"component": "expiration_sweep"},
                )

        logger.info(
            "expired_bookings_swept",
            found=len(expired),
            updated_count=updated_count,
            failed_count=len(failed_ids),
        )
        return SweepResult(updated_count=updated_count, failed_ids=failed_ids)

    async def _complete_booking(
        self,
        booking_id: uuid.UUID,
        trainer_id: uuid.UUID,
        now: datetime,
    ) -> bool:
        async with trainer_lock(trainer_id):
            try:
                trainer = await self.trainers.require_trainer(trainer_id, for_update=True)
                result = await self.db.execute(
                    select(TrainerBooking)
                    .where(TrainerBooking.id == booking_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                booking = result.scalar_one_or_none()

                # Cancelled or moved by another request since the scan
                if (
                    booking is None
                    or booking.status != BookingStatus.ACTIVE
                    or booking.end_time >= now
                ):
                    await end_unchanged_transaction(self.db)
                    return False

                booking.status = BookingStatus.COMPLETED
                await self.db.flush()

                await self.reconciler.reconcile(trainer)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info("trainer_booking_completed", booking_id=str(booking_id), trainer_id=str(trainer_id))
        return True
