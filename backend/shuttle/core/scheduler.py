"""APScheduler setup for simulation timers."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    """Create the scheduler that owns every simulation tick and deferred start.

    Jobs must be coroutine functions: the asyncio executor runs those on the
    event loop, plain functions would go to a thread pool.
    """
    return AsyncIOScheduler(
        job_defaults={
            # A slow tick is skipped rather than queued behind itself
            "coalesce": True,
            "max_instances": 1,
        },
        timezone="UTC",
    )
