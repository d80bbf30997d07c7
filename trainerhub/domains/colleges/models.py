"""College and college-trainer assignment models."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trainerhub.config.database import Base
from trainerhub.core.models import TimestampMixin, UTCDateTime, UUIDMixin, utcnow


class AssignmentStatus(str, enum.Enum):
    """College-trainer assignment status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class College(Base, UUIDMixin, TimestampMixin):
    """College that can have one trainer currently assigned."""

    __tablename__ = "colleges"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Current-assignment pointer. Written only together with the matching
    # active CollegeTrainer row.
    assigned_trainer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_training_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    assigned_trainer = relationship("Trainer", lazy="selectin")
    assignments = relationship(
        "CollegeTrainer",
        back_populates="college",
        lazy="noload",
        order_by="CollegeTrainer.assigned_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<College(id={self.id}, name={self.name!r}, assigned_trainer_id={self.assigned_trainer_id})>"


class CollegeTrainer(Base, UUIDMixin, TimestampMixin):
    """Assignment history row. Never deleted; unassignment marks it inactive."""

    __tablename__ = "college_trainers"

    college_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("colleges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    trainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trainers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(
            AssignmentStatus,
            name="assignment_status_enum",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=AssignmentStatus.ACTIVE,
    )
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    unassigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    college = relationship("College", back_populates="assignments", lazy="selectin")
    trainer = relationship("Trainer", lazy="selectin")

    __table_args__ = (
        # At most one active assignment per college
        Index(
            "uq_college_trainers_one_active_per_college",
            "college_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )
