# revshare/jobs/scheduler.py
"""
Background scheduler for the settlement sweep.

One in-process AsyncIOScheduler; the sweep job never overlaps itself
(max_instances=1) and missed runs collapse into one (coalesce). Each run
opens its own database session.
"""
import logging

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from revshare.core.config import settings
from revshare.core.settlement import run_settlement_batch
from revshare.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

SETTLEMENT_JOB_ID = "settlement_sweep"

jobstores = {
    'default': MemoryJobStore()
}

executors = {
    'default': AsyncIOExecutor(),
}

job_defaults = {
    'coalesce': True,
    'max_instances': 1,
    'misfire_grace_time': 60,
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE,
)


async def run_settlement_job(session_factory=AsyncSessionLocal):
    """Scheduled entry point: one settlement sweep in a fresh session."""
    try:
        async with session_factory() as db:
            result = await run_settlement_batch(db)
        logger.info(
            f"Job '{SETTLEMENT_JOB_ID}' completed: {result.processed_count} processed, "
            f"{result.flagged_count} flagged, {result.failed_count} failed"
        )
        return result
    except Exception:
        # the next tick retries
        logger.exception(f"Job '{SETTLEMENT_JOB_ID}' failed")
        return None


def start_scheduler():
    """Register the sweep and start the scheduler (no-op when already running)."""
    if scheduler.running:
        return

    scheduler.add_job(
        run_settlement_job,
        'interval',
        minutes=settings.SETTLEMENT_SWEEP_MINUTES,
        id=SETTLEMENT_JOB_ID,
        name='Settlement sweep',
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Settlement scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Settlement scheduler stopped")


def get_job_status():
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
