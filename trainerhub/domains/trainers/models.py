"""Trainer domain models."""
import enum

from sqlalchemy import JSON, Enum, Float, Integer, String, Text, func
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from trainerhub.config.database import Base
from trainerhub.core.models import TimestampMixin, UUIDMixin


class TrainerStatus(str, enum.Enum):
    """Externally visible trainer status."""

    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    NOT_AVAILABLE = "NOT_AVAILABLE"
    INACTIVE = "INACTIVE"


# Statuses only an operator can set; the reconciler never overwrites them
OVERRIDE_STATUSES = frozenset({TrainerStatus.NOT_AVAILABLE, TrainerStatus.INACTIVE})

trainer_status_type = Enum(TrainerStatus, name="trainer_status_enum")


class Trainer(Base, UUIDMixin, TimestampMixin):
    """Trainer that can be booked for sessions or assigned to colleges.

    Status is kept as two fields: ``status_override`` carries operator intent
    (NOT_AVAILABLE / INACTIVE) and ``computed_status`` is written by the
    reconciler (AVAILABLE / BOOKED). ``status`` is the override when present,
    else the computed value.
    """

    __tablename__ = "trainers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, index=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    specialization: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    experience: Mapped[int | None] = mapped_column(Integer, nullable=True)  # years
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status_override: Mapped[TrainerStatus | None] = mapped_column(
        trainer_status_type,
        nullable=True,
    )
    computed_status: Mapped[TrainerStatus] = mapped_column(
        trainer_status_type,
        nullable=False,
        default=TrainerStatus.AVAILABLE,
        server_default=TrainerStatus.AVAILABLE.name,
    )

    @hybrid_property
    def status(self) -> TrainerStatus:
        return self.status_override or self.computed_status

    @status.expression
    def status(cls):
        return func.coalesce(cls.status_override, cls.computed_status)

    @property
    def is_overridden(self) -> bool:
        return self.status_override is not None

    def __repr__(self) -> str:
        return f"<Trainer(id={self.id}, name={self.name!r}, status={self.status})>"
