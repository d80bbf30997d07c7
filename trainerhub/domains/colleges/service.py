"""College-trainer assignment service.

Handles trainer assignment to colleges with automatic trainer status updates.
The college's ``assigned_trainer_id`` pointer is recomputed from the active
assignment row in the same transaction whenever the assignment table changes.
"""
import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trainerhub.config.database import end_unchanged_transaction
from trainerhub.config.settings import settings
from trainerhub.core.exceptions import ConflictError, DomainException, NotFoundError
from trainerhub.core.locks import college_lock, trainer_lock
from trainerhub.core.models import utcnow
from trainerhub.core.schemas import Pagination
from trainerhub.domains.colleges.models import AssignmentStatus, College, CollegeTrainer
from trainerhub.domains.colleges.schemas import (
    AssignmentListResponse,
    AssignmentResponse,
    AssignmentStats,
    AssignmentStatusCount,
    CollegeWithTrainerResponse,
)
from trainerhub.domains.trainers.models import Trainer, TrainerStatus
from trainerhub.domains.trainers.reconciler import StatusReconciler
from trainerhub.domains.trainers.schemas import TrainerListResponse, TrainerResponse
from trainerhub.domains.trainers.store import TrainerStore

logger = structlog.get_logger(__name__)


class AssignmentService:
    """Service for assigning trainers to colleges.

    Rejected requests leave the session usable with its objects loaded; a
    database error rolls it back and expires them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.trainers = TrainerStore(db)
        self.reconciler = StatusReconciler(db)
        self.max_colleges_per_trainer = settings.MAX_COLLEGES_PER_TRAINER

    # Assignment lifecycle

    async def assign(
        self,
        college_id: uuid.UUID,
        trainer_id: uuid.UUID,
        notes: str | None = None,
    ) -> College:
        """Assign a trainer to a college.

        A college has at most one current trainer; a trainer may serve several
        colleges unless ``MAX_COLLEGES_PER_TRAINER`` is set. Trainers marked
        NOT_AVAILABLE or INACTIVE by an operator cannot be assigned.

        Args:
            college_id: The college's UUID
            trainer_id: The trainer's UUID
            notes: Optional note stored on the assignment row

        Returns:
            The college with its assigned trainer loaded

        Raises:
            NotFoundError: If the college or trainer does not exist
            ConflictError: If the college already has a trainer or the trainer is unavailable
        """
        async with college_lock(college_id), trainer_lock(trainer_id):
            try:
                college = await self._require_college(college_id, for_update=True)
                if college.assigned_trainer_id is not None:
                    current = college.assigned_trainer.name if college.assigned_trainer else None
                    raise ConflictError(
                        f"College already has trainer assigned: {current}",
                        code="COLLEGE_ALREADY_ASSIGNED",
                        details={
                            "college_id": str(college_id),
                            "assigned_trainer_id": str(college.assigned_trainer_id),
                        },
                    )

                trainer = await self.trainers.require_trainer(trainer_id, for_update=True)
                if trainer.is_overridden:
                    raise ConflictError(
                        f"Trainer is not available. Current status: {trainer.status.value}",
                        code="TRAINER_UNAVAILABLE",
                        details={"trainer_id": str(trainer_id), "status": trainer.status.value},
                    )

                if self.max_colleges_per_trainer is not None:
                    active = await self.reconciler.count_active_assignments(trainer.id)
                    if active >= self.max_colleges_per_trainer:
                        raise ConflictError(
                            f"Trainer already serves {active} colleges "
                            f"(limit {self.max_colleges_per_trainer})",
                            code="TRAINER_AT_CAPACITY",
                            details={"trainer_id": str(trainer_id), "active_assignments": active},
                        )

                self.db.add(
                    CollegeTrainer(
                        college_id=college.id,
                        trainer_id=trainer.id,
                        status=AssignmentStatus.ACTIVE,
                        assigned_at=utcnow(),
                        notes=notes,
                    )
                )
                college.last_training_at = utcnow()
                await self.db.flush()
                await self._refresh_pointer(college)

                await self.reconciler.reconcile(trainer)
                await self.db.commit()
            except DomainException:
                await end_unchanged_transaction(self.db)
                raise
            except IntegrityError as e:
                await self.db.rollback()
                raise ConflictError(
                    "College already has an active trainer assignment",
                    code="COLLEGE_ALREADY_ASSIGNED",
                    details={"college_id": str(college_id)},
                ) from e
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "trainer_assigned_to_college",
            college_id=str(college_id),
            trainer_id=str(trainer_id),
        )
        return await self._load_college(college_id)

    async def unassign(
        self,
        college_id: uuid.UUID,
        notes: str | None = None,
    ) -> College:
        """Remove the college's current trainer.

        Raises:
            NotFoundError: If the college does not exist
            ConflictError: If the college has no trainer assigned
        """
        async with college_lock(college_id):
            college = await self._require_college(college_id)
            trainer_id = college.assigned_trainer_id
            if trainer_id is None:
                await end_unchanged_transaction(self.db)
                raise ConflictError(
                    "College does not have a trainer assigned",
                    code="COLLEGE_NOT_ASSIGNED",
                    details={"college_id": str(college_id)},
                )

            async with trainer_lock(trainer_id):
                try:
                    college = await self._require_college(college_id, for_update=True)
                    trainer = await self.trainers.require_trainer(trainer_id, for_update=True)

                    result = await self.db.execute(
                        select(CollegeTrainer).where(
                            CollegeTrainer.college_id == college_id,
                            CollegeTrainer.status == AssignmentStatus.ACTIVE,
                        )
                    )
                    now = utcnow()
                    for assignment in result.scalars().all():
                        assignment.status = AssignmentStatus.INACTIVE
                        assignment.unassigned_at = now
                        if notes:
                            assignment.notes = notes

                    await self.db.flush()
                    await self._refresh_pointer(college)

                    await self.reconciler.reconcile(trainer)
                    await self.db.commit()
                except DomainException:
                    await end_unchanged_transaction(self.db)
                    raise
                except Exception:
                    await self.db.rollback()
                    raise

        logger.info(
            "trainer_unassigned_from_college",
            college_id=str(college_id),
            trainer_id=str(trainer_id),
        )
        return await self._load_college(college_id)

    # Queries

    async def list_available_trainers(
        self,
        specialization: str | None = None,
        location: str | None = None,
        min_experience: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> TrainerListResponse:
        """Trainers currently AVAILABLE for assignment, best rated first."""
        trainers, total = await self.trainers.list_trainers(
            status=TrainerStatus.AVAILABLE,
            specialization=specialization,
            location=location,
            min_experience=min_experience,
            page=page,
            limit=limit,
        )
        return TrainerListResponse(
            trainers=[TrainerResponse.model_validate(t) for t in trainers],
            pagination=Pagination.build(page, limit, total),
        )

    async def list_assignments(
        self,
        college_id: uuid.UUID | None = None,
        trainer_id: uuid.UUID | None = None,
        status: AssignmentStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> AssignmentListResponse:
        """Assignment history, newest first."""
        conditions = []
        if college_id:
            conditions.append(CollegeTrainer.college_id == college_id)
        if trainer_id:
            conditions.append(CollegeTrainer.trainer_id == trainer_id)
        if status:
            conditions.append(CollegeTrainer.status == status)

        total = await self.db.scalar(
            select(func.count(CollegeTrainer.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(CollegeTrainer)
            .where(*conditions)
            .order_by(CollegeTrainer.assigned_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return AssignmentListResponse(
            assignments=[AssignmentResponse.model_validate(a) for a in result.scalars().all()],
            pagination=Pagination.build(page, limit, total or 0),
        )

    async def get_college_with_trainer(self, college_id: uuid.UUID) -> CollegeWithTrainerResponse:
        """College with its current trainer and active assignment rows."""
        college = await self._load_college(college_id)
        result = await self.db.execute(
            select(CollegeTrainer)
            .where(
                CollegeTrainer.college_id == college_id,
                CollegeTrainer.status == AssignmentStatus.ACTIVE,
            )
            .order_by(CollegeTrainer.assigned_at.desc())
        )
        active = [AssignmentResponse.model_validate(a) for a in result.scalars().all()]

        response = CollegeWithTrainerResponse.model_validate(college)
        response.active_assignments = active
        return response

    async def get_assignment_stats(self) -> AssignmentStats:
        """Assignment coverage and trainer utilisation."""
        total_colleges = await self.db.scalar(select(func.count(College.id))) or 0
        colleges_with_trainers = await self.db.scalar(
            select(func.count(College.id)).where(College.assigned_trainer_id.is_not(None))
        ) or 0
        total_trainers = await self.db.scalar(select(func.count(Trainer.id))) or 0
        available_trainers = await self.db.scalar(
            select(func.count(Trainer.id)).where(Trainer.status == TrainerStatus.AVAILABLE)
        ) or 0
        booked_trainers = await self.db.scalar(
            select(func.count(Trainer.id)).where(Trainer.status == TrainerStatus.BOOKED)
        ) or 0

        result = await self.db.execute(
            select(CollegeTrainer.status, func.count(CollegeTrainer.id))
            .group_by(CollegeTrainer.status)
            .order_by(func.count(CollegeTrainer.id).desc())
        )
        by_status = [
            AssignmentStatusCount(status=status, count=count)
            for status, count in result.all()
        ]

        assignment_rate = (colleges_with_trainers / total_colleges) * 100 if total_colleges else 0
        utilization = (booked_trainers / total_trainers) * 100 if total_trainers else 0

        return AssignmentStats(
            total_colleges=total_colleges,
            colleges_with_trainers=colleges_with_trainers,
            colleges_without_trainers=total_colleges - colleges_with_trainers,
            assignment_rate=round(assignment_rate, 2),
            total_trainers=total_trainers,
            available_trainers=available_trainers,
            booked_trainers=booked_trainers,
            trainer_utilization=round(utilization, 2),
            assignments_by_status=by_status,
        )

    # Helpers

    async def _refresh_pointer(self, college: College) -> None:
        """Set the college's pointer from its active assignment row."""
        trainer_id = await self.db.scalar(
            select(CollegeTrainer.trainer_id).where(
                CollegeTrainer.college_id == college.id,
                CollegeTrainer.status == AssignmentStatus.ACTIVE,
            )
        )
        college.assigned_trainer_id = trainer_id
        await self.db.flush()

    async def _require_college(
        self,
        college_id: uuid.UUID,
        for_update: bool = False,
    ) -> College:
        query = select(College).where(College.id == college_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        college = result.scalar_one_or_none()
        if college is None:
            raise NotFoundError(
                "College not found",
                code="COLLEGE_NOT_FOUND",
                details={"college_id": str(college_id)},
            )
        return college

    async def _load_college(self, college_id: uuid.UUID) -> College:
        result = await self.db.execute(
            select(College)
            .where(College.id == college_id)
            .options(selectinload(College.assigned_trainer))
            .execution_options(populate_existing=True)
        )
        college = result.scalar_one_or_none()
        if college is None:
            raise NotFoundError(
                "College not found",
                code="COLLEGE_NOT_FOUND",
                details={"college_id": str(college_id)},
            )
        return college
