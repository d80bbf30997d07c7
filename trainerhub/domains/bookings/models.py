"""Trainer booking models."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import DDL, CheckConstraint, Enum, ForeignKey, Index, String, Text, event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trainerhub.config.database import Base
from trainerhub.core.models import TimestampMixin, UTCDateTime, UUIDMixin


class BookingStatus(str, enum.Enum):
    """Booking lifecycle. CANCELLED and COMPLETED are terminal."""

    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


NO_OVERLAP_CONSTRAINT = "trainer_bookings_no_overlap_per_trainer"


class TrainerBooking(Base, UUIDMixin, TimestampMixin):
    """Time-boxed booking of a trainer over ``[start_time, end_time)``."""

    __tablename__ = "trainer_bookings"

    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    college_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("colleges.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    requested_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status_enum"),
        nullable=False,
        default=BookingStatus.ACTIVE,
        server_default=BookingStatus.ACTIVE.name,
    )

    # Relationships
    trainer = relationship("Trainer", lazy="selectin")
    college = relationship("College", lazy="selectin")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="trainer_bookings_window_check"),
        Index("ix_trainer_bookings_trainer_status_start", "trainer_id", "status", "start_time"),
        Index("ix_trainer_bookings_status_end", "status", "end_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<TrainerBooking(id={self.id}, trainer_id={self.trainer_id}, "
            f"{self.start_time.isoformat()}-{self.end_time.isoformat()}, status={self.status})>"
        )


# PostgreSQL rejects overlapping ACTIVE bookings for the same trainer at the
# storage level, so two racing inserts cannot both commit.
event.listen(
    TrainerBooking.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    TrainerBooking.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE trainer_bookings ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "trainer_id WITH =, "
        "tstzrange(start_time, end_time, '[)') WITH &&"
        ") WHERE (status = 'ACTIVE')"
    ).execute_if(dialect="postgresql"),
)
