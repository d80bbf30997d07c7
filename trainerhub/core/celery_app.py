"""Celery application configuration for background tasks and scheduled jobs.

Usage:
    # Start worker with beat scheduler (for development):
    celery -A trainerhub.core.celery_app worker -B -l info

    # Production (separate worker and beat):
    celery -A trainerhub.core.celery_app worker -l info
    celery -A trainerhub.core.celery_app beat -l info
"""
from datetime import timedelta

from celery import Celery

from trainerhub.config.settings import settings
from trainerhub.core.observability import init_observability

# Create Celery app
celery_app = Celery(
    "trainerhub",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "trainerhub.tasks.bookings",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Reject task if worker dies
    task_time_limit=300,  # 5 minutes max per task
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,  # One task at a time per worker
    worker_max_tasks_per_child=100,  # Restart worker after 100 tasks

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Beat scheduler settings
    beat_scheduler="celery.beat:PersistentScheduler",
    beat_schedule_filename="celerybeat-schedule",
)

# Scheduled tasks (Celery Beat)
celery_app.conf.beat_schedule = {
    # Complete bookings whose end time has passed
    "sweep-expired-bookings": {
        "task": "trainerhub.tasks.bookings.sweep_expired_bookings",
        "schedule": timedelta(seconds=settings.BOOKING_SWEEP_INTERVAL_SECONDS),
        "options": {"expires": settings.BOOKING_SWEEP_INTERVAL_SECONDS},
    },
}

init_observability()
