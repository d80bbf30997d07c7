"""Trainer schemas."""
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from trainerhub.core.schemas import Pagination

from .models import TrainerStatus


class TrainerSummary(BaseModel):
    """Trainer fields embedded in booking and college responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None = None
    status: TrainerStatus


class TrainerResponse(TrainerSummary):
    """Full trainer view."""

    phone: str | None = None
    specialization: list[str] = []
    experience: int | None = None
    rating: float | None = None
    location: str | None = None
    notes: str | None = None
    status_override: TrainerStatus | None = None
    computed_status: TrainerStatus


class TrainerListResponse(BaseModel):
    """Paginated trainers."""

    trainers: list[TrainerResponse]
    pagination: Pagination
