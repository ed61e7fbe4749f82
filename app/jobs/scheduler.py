"""
APScheduler Configuration

Background job scheduler for cache maintenance.
Started from the FastAPI lifespan when SCHEDULER_ENABLED is set.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from app.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.TIMEZONE
)


async def run_job(job_name: str):
    """
    Wrapper to run a job from the scheduler.

    Failures are logged so one bad run does not kill the schedule.
    """
    from app.jobs import cache_jobs

    job = getattr(cache_jobs, job_name)
    try:
        result = await job()
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        # Purge expired location cache entries
        scheduler.add_job(
            run_job,
            'interval',
            minutes=settings.CACHE_CLEANUP_INTERVAL_MINUTES,
            args=['cleanup_location_cache'],
            id='cleanup_location_cache',
            name='Cleanup Location Cache',
            replace_existing=True,
        )

        # Warming needs a geocoder key; without one every pincode is approximate
        if settings.GOOGLE_MAPS_API_KEY:
            scheduler.add_job(
                run_job,
                'cron',
                hour=3,
                args=['warm_popular_pincodes'],
                id='warm_popular_pincodes',
                name='Warm Popular Pincodes',
                replace_existing=True,
            )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")

