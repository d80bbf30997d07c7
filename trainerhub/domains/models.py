"""Central import of all domain models.

This file imports all models to ensure they are registered with SQLAlchemy's
metadata before any database operations (like creating tables).
"""

# Trainers domain
from trainerhub.domains.trainers.models import (
    Trainer,
    TrainerStatus,
)

# Colleges domain
from trainerhub.domains.colleges.models import (
    AssignmentStatus,
    College,
    CollegeTrainer,
)

# Bookings domain
from trainerhub.domains.bookings.models import (
    BookingStatus,
    TrainerBooking,
)

__all__ = [
    # Trainers
    "Trainer",
    "TrainerStatus",
    # Colleges
    "AssignmentStatus",
    "College",
    "CollegeTrainer",
    # Bookings
    "BookingStatus",
    "TrainerBooking",
]
