"""Scheduler for automated jobs (recurring task backfill)."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tasksync.core.module import ScheduledJob


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[object]],
    job_name: str,
    max_retries: int = 3,
    base_delay: float = 2.0,
) -> bool:
    """Execute job with retry logic and exponential backoff.

    Args:
        job_func: Async function to execute
        job_name: Name of the job for logging
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds for exponential backoff

    Returns:
        True if an attempt succeeded, False once all attempts failed
    """
    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            await job_func()
            logger.info("%s completed successfully", job_name)
            return True
        except Exception as e:
            last_error = str(e)
            logger.error("%s failed on attempt %d/%d: %s", job_name, attempt + 1, max_retries, last_error)

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ss", job_name, delay)
                await asyncio.sleep(delay)

    logger.error(
        "%s failed after all retry attempts",
        job_name,
        extra={"error": f"Failed after {max_retries} attempts: {last_error}"},
    )
    return False


def start_scheduler(jobs: Iterable[ScheduledJob]) -> None:
    """Register jobs and start the scheduler.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    for job in jobs:
        scheduler.add_job(
            retry_job_with_backoff,
            trigger=CronTrigger.from_crontab(job.cron),
            args=[job.func, job.id],
            id=job.id,
            name=job.name,
            replace_existing=True,
        )
        logger.info("Scheduled %s job: %s", job.id, job.cron)

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    if not scheduler.running:
        return
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
