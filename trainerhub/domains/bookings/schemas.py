"""Trainer booking schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from trainerhub.core.schemas import Pagination
from trainerhub.domains.colleges.schemas import CollegeSummary
from trainerhub.domains.trainers.schemas import TrainerSummary

from .models import BookingStatus


class BookingSummary(BaseModel):
    """Minimal booking view, used for conflict lists and calendars."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    description: str | None = None


class BookingUpdate(BaseModel):
    """Fields an operator may change on an active booking."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    college_id: UUID | None = None


class BookingResponse(BaseModel):
    """Booking enriched with trainer and college summaries."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    trainer_id: UUID
    college_id: UUID | None
    requested_by: str | None
    start_time: datetime
    end_time: datetime
    title: str
    description: str | None
    status: BookingStatus
    created_at: datetime
    updated_at: datetime | None

    trainer: TrainerSummary | None = None
    college: CollegeSummary | None = None


class BookingListResponse(BaseModel):
    """Paginated bookings."""

    bookings: list[BookingResponse]
    pagination: Pagination


class AvailabilityResult(BaseModel):
    """Outcome of an availability check for a proposed window."""

    available: bool
    reason: str
    trainer: TrainerSummary
    conflicts: list[BookingSummary] = []


class AvailabilityCalendar(BaseModel):
    """A trainer's active bookings within a date range."""

    trainer: TrainerSummary
    bookings: list[BookingSummary]
    availability: str  # "available" or "unavailable"


class SweepResult(BaseModel):
    """Outcome of an expiration sweep."""

    updated_count: int
    failed_ids: list[UUID] = []
