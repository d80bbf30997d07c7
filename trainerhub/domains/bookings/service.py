"""Trainer booking service: availability checks and booking lifecycle."""
import uuid
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trainerhub.config.database import end_unchanged_transaction
from trainerhub.core.exceptions import (
    ConflictError,
    DomainException,
    InvalidInputError,
    NotFoundError,
)
from trainerhub.core.locks import trainer_lock
from trainerhub.core.models import utcnow
from trainerhub.core.schemas import Pagination
from trainerhub.domains.bookings.conflicts import find_conflicting_bookings
from trainerhub.domains.bookings.models import (
    NO_OVERLAP_CONSTRAINT,
    BookingStatus,
    TrainerBooking,
)
from trainerhub.domains.bookings.schemas import (
    AvailabilityCalendar,
    AvailabilityResult,
    BookingListResponse,
    BookingResponse,
    BookingSummary,
    BookingUpdate,
)
from trainerhub.domains.colleges.models import AssignmentStatus, College, CollegeTrainer
from trainerhub.domains.trainers.models import OVERRIDE_STATUSES, Trainer, TrainerStatus
from trainerhub.domains.trainers.reconciler import StatusReconciler
from trainerhub.domains.trainers.schemas import TrainerSummary
from trainerhub.domains.trainers.store import TrainerStore

logger = structlog.get_logger(__name__)


def to_utc(value: datetime | str) -> datetime:
    """Parse ISO-8601 strings and treat naive datetimes as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise InvalidInputError(
                f"Invalid timestamp: {value}",
                code="INVALID_TIMESTAMP",
            ) from e
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_window(
    start_time: datetime,
    end_time: datetime,
    now: datetime | None = None,
    require_future: bool = True,
) -> None:
    """Reject empty or inverted windows, and past starts when required."""
    if end_time <= start_time:
        raise InvalidInputError(
            "End time must be after start time",
            code="INVALID_TIME_WINDOW",
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )
    if require_future and start_time <= (now or utcnow()):
        raise InvalidInputError(
            "Start time must be in the future",
            code="START_TIME_IN_PAST",
            details={"start_time": start_time.isoformat()},
        )


def is_overlap_violation(error: IntegrityError) -> bool:
    """Whether the storage-level no-overlap constraint rejected a write."""
    orig = getattr(error, "orig", None)
    message = str(orig if orig is not None else error)
    return NO_OVERLAP_CONSTRAINT in message or "exclusion constraint" in message.lower()


def _unavailable_reason(status: TrainerStatus) -> str:
    return f"Trainer is {status.value.lower().replace('_', ' ')}"


class BookingService:
    """Service for handling trainer booking operations.

    Every write holds the trainer's lock and a row lock on the trainer for the
    whole check-then-write unit of work, and commits or rolls back before the
    lock is released.

    Domain errors are raised before anything is written, and the session keeps
    the objects the caller holds loaded. Database errors roll the session back,
    which expires them; reload before reading them again.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.trainers = TrainerStore(db)
        self.reconciler = StatusReconciler(db)

    # Availability

    async def check_availability(
        self,
        trainer_id: uuid.UUID,
        start_time: datetime | str,
        end_time: datetime | str,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> AvailabilityResult:
        """Check whether a trainer can take a booking over the given window.

        Args:
            trainer_id: The trainer's UUID
            start_time: Proposed window start
            end_time: Proposed window end
            exclude_booking_id: Booking to ignore when checking overlaps

        Returns:
            AvailabilityResult with the reason and any conflicting bookings

        Raises:
            NotFoundError: If the trainer does not exist
        """
        trainer = await self.trainers.require_trainer(trainer_id)
        return await self._evaluate_availability(
            trainer, to_utc(start_time), to_utc(end_time), exclude_booking_id
        )

    async def _evaluate_availability(
        self,
        trainer: Trainer,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: uuid.UUID | None = None,
    ) -> AvailabilityResult:
        summary = TrainerSummary.model_validate(trainer)

        # Fail closed on operator overrides
        if trainer.status in OVERRIDE_STATUSES:
            return AvailabilityResult(
                available=False,
                reason=_unavailable_reason(trainer.status),
                trainer=summary,
            )

        conflicts = await find_conflicting_bookings(
            self.db, trainer.id, start_time, end_time, exclude_booking_id
        )
        if conflicts:
            return AvailabilityResult(
                available=False,
                reason="Trainer has overlapping bookings",
                trainer=summary,
                conflicts=[BookingSummary.model_validate(b) for b in conflicts],
            )

        return AvailabilityResult(available=True, reason="Trainer is available", trainer=summary)

    # Booking lifecycle

    async def create_booking(
        self,
        trainer_id: uuid.UUID,
        start_time: datetime | str,
        end_time: datetime | str,
        title: str,
        description: str | None = None,
        college_id: uuid.UUID | None = None,
        requested_by: str | None = None,
        college_name: str | None = None,
        now: datetime | None = None,
    ) -> TrainerBooking:
        """Book a trainer over ``[start_time, end_time)``.

        The college, when given, only has to exist; the trainer does not need
        to be assigned to it. ``college_name`` is resolved case-insensitively
        when no ``college_id`` is passed.

        Returns:
            The created booking with trainer and college loaded

        Raises:
            InvalidInputError: If the window is empty or does not start in the future
            NotFoundError: If the trainer or college does not exist
            ConflictError: If the trainer is unavailable or already booked in the window
        """
        start_time, end_time = to_utc(start_time), to_utc(end_time)
        validate_window(start_time, end_time, now=now, require_future=True)

        async with trainer_lock(trainer_id):
            try:
                college = await self._resolve_college(college_id, college_name)
                trainer = await self.trainers.require_trainer(trainer_id, for_update=True)

                availability = await self._evaluate_availability(trainer, start_time, end_time)
                if not availability.available:
                    raise ConflictError(
                        f"Cannot book trainer: {availability.reason}",
                        code="BOOKING_OVERLAP" if availability.conflicts else "TRAINER_UNAVAILABLE",
                        details={"trainer_id": str(trainer_id)},
                        conflicts=availability.conflicts,
                    )

                if college is not None:
                    await self._log_college_assignment(college, trainer)

                booking = TrainerBooking(
                    trainer_id=trainer.id,
                    college_id=college.id if college else None,
                    requested_by=requested_by,
                    start_time=start_time,
                    end_time=end_time,
                    title=title,
                    description=description,
                    status=BookingStatus.ACTIVE,
                )
                self.db.add(booking)
                await self.db.flush()

                await self.reconciler.reconcile(trainer)
                await self.db.commit()
            except DomainException:
                await end_unchanged_transaction(self.db)
                raise
            except IntegrityError as e:
                await self.db.rollback()
                if is_overlap_violation(e):
                    raise ConflictError(
                        "Cannot book trainer: Trainer has overlapping bookings",
                        code="BOOKING_OVERLAP",
                    ) from e
                raise
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "trainer_booking_created",
            booking_id=str(booking.id),
            trainer_id=str(trainer_id),
            college_id=str(booking.college_id) if booking.college_id else None,
        )
        return await self._load_booking(booking.id)

    async def update_booking(
        self,
        booking_id: uuid.UUID,
        now: datetime | None = None,
        **fields,
    ) -> TrainerBooking:
        """Update an active booking.

        Moving the window re-runs the overlap check against the trainer's other
        active bookings; the booking's own previous interval is ignored.

        Raises:
            InvalidInputError: If the fields or the new window are invalid
            NotFoundError: If the booking or a referenced college does not exist
            ConflictError: If the booking is no longer active or the new window overlaps
        """
        try:
            changes = BookingUpdate(**fields).model_dump(exclude_unset=True)
        except ValidationError as e:
            raise InvalidInputError(
                "Invalid booking update",
                code="INVALID_BOOKING_UPDATE",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e
        if changes.get("title", "") is None:
            changes.pop("title")

        existing = await self._require_booking(booking_id)

        async with trainer_lock(existing.trainer_id):
            try:
                await self.trainers.require_trainer(existing.trainer_id, for_update=True)
                booking = await self._require_booking(booking_id, for_update=True)

                if booking.status != BookingStatus.ACTIVE:
                    raise ConflictError(
                        f"Cannot edit a {booking.status.value.lower()} booking",
                        code="BOOKING_NOT_ACTIVE",
                        details={"booking_id": str(booking_id), "status": booking.status.value},
                    )

                if changes.get("college_id") is not None:
                    await self._resolve_college(changes["college_id"], None)

                if "start_time" in changes or "end_time" in changes:
                    new_start = to_utc(changes.get("start_time") or booking.start_time)
                    new_end = to_utc(changes.get("end_time") or booking.end_time)
                    validate_window(
                        new_start,
                        new_end,
                        now=now,
                        require_future=new_start != booking.start_time,
                    )

                    conflicts = await find_conflicting_bookings(
                        self.db,
                        booking.trainer_id,
                        new_start,
                        new_end,
                        exclude_booking_id=booking.id,
                    )
                    if conflicts:
                        raise ConflictError(
                            "Cannot update booking: time conflicts with existing bookings",
                            code="BOOKING_OVERLAP",
                            details={"booking_id": str(booking_id)},
                            conflicts=[BookingSummary.model_validate(b) for b in conflicts],
                        )
                    changes["start_time"] = new_start
                    changes["end_time"] = new_end

                for key, value in changes.items():
                    setattr(booking, key, value)

                await self.db.flush()
                await self.db.commit()
            except DomainException:
                await end_unchanged_transaction(self.db)
                raise
            except IntegrityError as e:
                await self.db.rollback()
                if is_overlap_violation(e):
                    raise ConflictError(
                        "Cannot book trainer: Trainer has overlapping bookings",
                        code="BOOKING_OVERLAP",
                    ) from e
                raise
            except Exception:
                await self.db.rollback()
                raise

        logger.info("trainer_booking_updated", booking_id=str(booking_id), fields=sorted(changes))
        return await self._load_booking(booking_id)

    async def cancel_booking(self, booking_id: uuid.UUID) -> TrainerBooking:
        """Cancel an active booking and release the trainer if nothing else holds them.

        Raises:
            NotFoundError: If the booking does not exist
            ConflictError: If the booking is already cancelled or completed
        """
        existing = await self._require_booking(booking_id)

        async with trainer_lock(existing.trainer_id):
            try:
                trainer = await self.trainers.require_trainer(existing.trainer_id, for_update=True)
                booking = await self._require_booking(booking_id, for_update=True)

                if booking.status != BookingStatus.ACTIVE:
                    raise ConflictError(
                        f"Booking is already {booking.status.value.lower()}",
                        code=f"BOOKING_ALREADY_{booking.status.value}",
                        details={"booking_id": str(booking_id)},
                    )

                booking.status = BookingStatus.CANCELLED
                await self.db.flush()

                await self.reconciler.reconcile(trainer)
                await self.db.commit()
            except DomainException:
                await end_unchanged_transaction(self.db)
                raise
            except Exception:
                await self.db.rollback()
                raise

        logger.info("trainer_booking_cancelled", booking_id=str(booking_id), trainer_id=str(trainer.id))
        return await self._load_booking(booking_id)

    async def update_trainer_status(
        self,
        trainer_id: uuid.UUID,
        new_status: TrainerStatus | str,
        notes: str | None = None,
    ) -> Trainer:
        """Operator override of a trainer's status.

        NOT_AVAILABLE and INACTIVE are stored as an override the reconciler
        does not touch. AVAILABLE clears the override, and is refused while the
        trainer still has an active booking. BOOKED cannot be set by hand.

        Raises:
            InvalidInputError: If the status is unknown or BOOKED
            NotFoundError: If the trainer does not exist
            ConflictError: If AVAILABLE is requested while bookings are active
        """
        try:
            new_status = TrainerStatus(new_status)
        except ValueError as e:
            raise InvalidInputError(
                f"Unknown trainer status: {new_status}",
                code="INVALID_TRAINER_STATUS",
            ) from e

        if new_status == TrainerStatus.BOOKED:
            raise InvalidInputError(
                "BOOKED is derived from active bookings and assignments and cannot be set directly",
                code="INVALID_TRAINER_STATUS",
            )

        async with trainer_lock(trainer_id):
            try:
                trainer = await self.trainers.require_trainer(trainer_id, for_update=True)

                if new_status == TrainerStatus.AVAILABLE:
                    active_bookings = await self._active_bookings(trainer.id)
                    if active_bookings:
                        raise ConflictError(
                            "Cannot set trainer to AVAILABLE while having active bookings",
                            code="TRAINER_HAS_ACTIVE_BOOKINGS",
                            details={"trainer_id": str(trainer_id)},
                            conflicts=[BookingSummary.model_validate(b) for b in active_bookings],
                        )
                    trainer.status_override = None
                else:
                    trainer.status_override = new_status

                if notes:
                    trainer.notes = notes

                await self.db.flush()
                await self.reconciler.reconcile(trainer)
                await self.db.commit()
            except DomainException:
                await end_unchanged_transaction(self.db)
                raise
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "trainer_status_updated",
            trainer_id=str(trainer_id),
            requested_status=new_status.value,
            status=trainer.status.value,
        )
        return trainer

    # Queries

    async def get_booking(self, booking_id: uuid.UUID) -> TrainerBooking:
        """Get a booking with trainer and college loaded, or raise NotFoundError."""
        return await self._load_booking(booking_id)

    async def list_bookings(
        self,
        trainer_id: uuid.UUID | None = None,
        college_id: uuid.UUID | None = None,
        college_name: str | None = None,
        status: BookingStatus | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> BookingListResponse:
        """List bookings, most recent start first, with pagination metadata."""
        conditions = []
        if trainer_id:
            conditions.append(TrainerBooking.trainer_id == trainer_id)
        if college_id:
            conditions.append(TrainerBooking.college_id == college_id)
        elif college_name:
            conditions.append(
                TrainerBooking.college.has(College.name.ilike(f"%{college_name}%"))
            )
        if status:
            conditions.append(TrainerBooking.status == status)
        if start_date:
            conditions.append(TrainerBooking.start_time >= to_utc(start_date))
        if end_date:
            conditions.append(TrainerBooking.start_time <= to_utc(end_date))

        total = await self.db.scalar(
            select(func.count(TrainerBooking.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(TrainerBooking)
            .where(*conditions)
            .order_by(TrainerBooking.start_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        bookings = list(result.scalars().all())

        return BookingListResponse(
            bookings=[BookingResponse.model_validate(b) for b in bookings],
            pagination=Pagination.build(page, limit, total or 0),
        )

    async def get_availability_calendar(
        self,
        trainer_id: uuid.UUID,
        start_date: datetime | str,
        end_date: datetime | str,
    ) -> AvailabilityCalendar:
        """Active bookings starting within ``[start_date, end_date]``."""
        trainer = await self.trainers.require_trainer(trainer_id)

        result = await self.db.execute(
            select(TrainerBooking)
            .where(
                TrainerBooking.trainer_id == trainer_id,
                TrainerBooking.status == BookingStatus.ACTIVE,
                TrainerBooking.start_time >= to_utc(start_date),
                TrainerBooking.start_time <= to_utc(end_date),
            )
            .order_by(TrainerBooking.start_time)
        )

        return AvailabilityCalendar(
            trainer=TrainerSummary.model_validate(trainer),
            bookings=[BookingSummary.model_validate(b) for b in result.scalars().all()],
            availability="available" if trainer.status == TrainerStatus.AVAILABLE else "unavailable",
        )

    # Helpers

    async def _require_booking(
        self,
        booking_id: uuid.UUID,
        for_update: bool = False,
    ) -> TrainerBooking:
        query = select(TrainerBooking).where(TrainerBooking.id == booking_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError(
                "Trainer booking not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )
        return booking

    async def _load_booking(self, booking_id: uuid.UUID) -> TrainerBooking:
        result = await self.db.execute(
            select(TrainerBooking)
            .where(TrainerBooking.id == booking_id)
            .options(selectinload(TrainerBooking.trainer), selectinload(TrainerBooking.college))
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError(
                "Trainer booking not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )
        return booking

    async def _active_bookings(self, trainer_id: uuid.UUID) -> list[TrainerBooking]:
        result = await self.db.execute(
            select(TrainerBooking)
            .where(
                TrainerBooking.trainer_id == trainer_id,
                TrainerBooking.status == BookingStatus.ACTIVE,
            )
            .order_by(TrainerBooking.start_time)
        )
        return list(result.scalars().all())

    async def _resolve_college(
        self,
        college_id: uuid.UUID | None,
        college_name: str | None,
    ) -> College | None:
        if college_id is not None:
            college = await self.db.get(College, college_id)
            if college is None:
                raise NotFoundError(
                    "College not found",
                    code="COLLEGE_NOT_FOUND",
                    details={"college_id": str(college_id)},
                )
            return college

        if college_name:
            result = await self.db.execute(
                select(College)
                .where(College.name.ilike(f"%{college_name}%"))
                .order_by(College.name)
                .limit(1)
            )
            college = result.scalar_one_or_none()
            if college is None:
                raise NotFoundError(
                    f'College with name "{college_name}" not found',
                    code="COLLEGE_NOT_FOUND",
                    details={"college_name": college_name},
                )
            logger.info("college_name_resolved", college_name=college_name, college_id=str(college.id))
            return college

        return None

    async def _log_college_assignment(self, college: College, trainer: Trainer) -> None:
        """Bookings do not require an assignment; record whether one exists."""
        assigned = await self.db.scalar(
            select(func.count(CollegeTrainer.id)).where(
                CollegeTrainer.college_id == college.id,
                CollegeTrainer.trainer_id == trainer.id,
                CollegeTrainer.status == AssignmentStatus.ACTIVE,
            )
        )
        logger.info(
            "booking_college_checked",
            college_id=str(college.id),
            trainer_id=str(trainer.id),
            trainer_assigned=bool(assigned),
        )

