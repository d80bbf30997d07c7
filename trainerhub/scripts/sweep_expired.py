"""
Run the expired bookings sweep once, outside the Celery schedule.

Usage:
    python -m trainerhub.scripts.sweep_expired
    python -m trainerhub.scripts.sweep_expired --now 2026-01-01T00:00:00Z
"""

import asyncio
import sys

import structlog

from trainerhub.config.database import AsyncSessionLocal, engine, init_db
from trainerhub.domains.bookings.sweep import ExpirationSweep

logger = structlog.get_logger(__name__)


async def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Complete trainer bookings whose end time has passed")
    parser.add_argument("--now", help="ISO-8601 cut-off instead of the current time")
    parser.add_argument("--init-db", action="store_true", help="Create missing tables first")
    args = parser.parse_args()

    if args.init_db:
        await init_db()

    try:
        async with AsyncSessionLocal() as session:
            result = await ExpirationSweep(session).sweep_expired(now=args.now)
    finally:
        await engine.dispose()

    logger.info(
        "sweep_script_finished",
        updated_count=result.updated_count,
        failed_ids=[str(booking_id) for booking_id in result.failed_ids],
    )
    return 1 if result.failed_ids else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
