"""College and assignment schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from trainerhub.core.schemas import Pagination
from trainerhub.domains.trainers.schemas import TrainerSummary

from .models import AssignmentStatus


class CollegeSummary(BaseModel):
    """College fields embedded in booking and assignment responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    location: str | None = None
    city: str | None = None
    state: str | None = None


class CollegeResponse(CollegeSummary):
    """College with its current trainer."""

    assigned_trainer_id: UUID | None
    assigned_trainer: TrainerSummary | None = None
    last_training_at: datetime | None = None


class AssignmentResponse(BaseModel):
    """One row of the college-trainer assignment history."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    college_id: UUID
    trainer_id: UUID
    status: AssignmentStatus
    assigned_at: datetime
    unassigned_at: datetime | None = None
    notes: str | None = None
    college: CollegeSummary | None = None
    trainer: TrainerSummary | None = None


class AssignmentListResponse(BaseModel):
    """Paginated assignments."""

    assignments: list[AssignmentResponse]
    pagination: Pagination


class CollegeWithTrainerResponse(CollegeResponse):
    """College with current trainer and active assignment rows."""

    active_assignments: list[AssignmentResponse] = []


class AssignmentStatusCount(BaseModel):
    status: AssignmentStatus
    count: int


class AssignmentStats(BaseModel):
    """Assignment coverage and trainer utilisation figures."""

    total_colleges: int
    colleges_with_trainers: int
    colleges_without_trainers: int
    assignment_rate: float  # percent
    total_trainers: int
    available_trainers: int
    booked_trainers: int
    trainer_utilization: float  # percent
    assignments_by_status: list[AssignmentStatusCount]
