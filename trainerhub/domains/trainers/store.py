"""Trainer store: read/write access to trainer records."""
import uuid

from sqlalchemy import String, cast, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trainerhub.core.exceptions import NotFoundError
from trainerhub.domains.trainers.models import Trainer, TrainerStatus


class TrainerStore:
    """Service for loading and listing trainers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_trainer(
        self,
        trainer_id: uuid.UUID,
        for_update: bool = False,
    ) -> Trainer | None:
        """Get a trainer by ID.

        Args:
            trainer_id: The trainer's UUID
            for_update: Lock the row until the current transaction ends

        Returns:
            The Trainer object if found, None otherwise
        """
        query = select(Trainer).where(Trainer.id == trainer_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def require_trainer(
        self,
        trainer_id: uuid.UUID,
        for_update: bool = False,
    ) -> Trainer:
        """Get a trainer by ID or raise NotFoundError."""
        trainer = await self.get_trainer(trainer_id, for_update=for_update)
        if trainer is None:
            raise NotFoundError(
                "Trainer not found",
                code="TRAINER_NOT_FOUND",
                details={"trainer_id": str(trainer_id)},
            )
        return trainer

    async def list_trainers(
        self,
        status: TrainerStatus | None = None,
        specialization: str | None = None,
        location: str | None = None,
        min_experience: int | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Trainer], int]:
        """List trainers with optional filters, best rated first.

        Returns:
            Tuple of (trainers on the requested page, total matching count)
        """
        conditions = []
        if status is not None:
            conditions.append(Trainer.status == status)
        if specialization:
            conditions.append(
                cast(Trainer.specialization, String).ilike(f'%"{specialization}"%')
            )
        if location:
            conditions.append(Trainer.location.ilike(f"%{location}%"))
        if min_experience is not None:
            conditions.append(Trainer.experience >= min_experience)

        total = await self.db.scalar(select(func.count(Trainer.id)).where(*conditions))

        result = await self.db.execute(
            select(Trainer)
            .where(*conditions)
            .order_by(Trainer.rating.desc().nulls_last(), Trainer.name)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
