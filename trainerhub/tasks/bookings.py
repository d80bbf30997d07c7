"""Trainer booking maintenance tasks."""
import asyncio
import logging

from trainerhub.core.celery_app import celery_app
from trainerhub.config.settings import settings

logger = logging.getLogger(__name__)


class SweepIncompleteError(Exception):
    """Some expired bookings could not be completed in this run."""


def run_async(coro):
    """Run async function in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    bind=True,
    max_retries=settings.BOOKING_SWEEP_MAX_RETRIES,
    default_retry_delay=60,
)
def sweep_expired_bookings(self):
    """Mark ACTIVE bookings whose end time has passed as COMPLETED.

    Bookings that fail are left ACTIVE and the task is retried; the next
    attempt only sees what is still expired and active.

    Runs every BOOKING_SWEEP_INTERVAL_SECONDS via Celery beat.
    """
    logger.info("Starting expired bookings sweep")
    try:
        result = run_async(_sweep_expired_bookings_async())
    except Exception as exc:
        logger.error(f"Expired bookings sweep failed: {exc}")
        raise self.retry(exc=exc)

    if result["failed_ids"]:
        logger.warning(
            f"Expired bookings sweep left {len(result['failed_ids'])} bookings for retry"
        )
        raise self.retry(exc=SweepIncompleteError(f"{len(result['failed_ids'])} bookings failed"))

    return result


async def _sweep_expired_bookings_async() -> dict:
    """Async implementation of the expired bookings sweep."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from trainerhub.config.database import _get_async_database_url
    from trainerhub.domains.bookings.sweep import ExpirationSweep

    # Fresh engine per run: the task owns a new event loop each time
    engine = create_async_engine(_get_async_database_url(settings.DATABASE_URL))
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with async_session() as db:
            result = await ExpirationSweep(db).sweep_expired()
    finally:
        await engine.dispose()

    logger.info(
        f"Expired bookings sweep: updated={result.updated_count}, failed={len(result.failed_ids)}"
    )
    return {
        "updated_count": result.updated_count,
        "failed_ids": [str(booking_id) for booking_id in result.failed_ids],
    }
