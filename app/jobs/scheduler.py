"""
APScheduler Configuration

Background job scheduler for the billing service.

Jobs:
- fiscal_year_rollover: 00:00 on 1 April (business timezone)
- retry_ledger_sync: every LEDGER_RETRY_INTERVAL_MINUTES
- cleanup_bill_cache: every CACHE_CLEANUP_INTERVAL_MINUTES
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
    'misfire_grace_time': 3600,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.BUSINESS_TIMEZONE
)


async def run_job(job_name: str, job, *args):
    """Run one job, logging instead of raising so the scheduler keeps going."""
    try:
        result = await job(*args)
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception as e:
        logger.error(f"Job '{job_name}' failed: {type(e).__name__}: {e}")


def start_scheduler(services):
    """
    Start the background job scheduler.

    Args:
        services: BillingServices bundle built at startup
    """
    if scheduler.running:
        return

    from app.jobs.billing_jobs import cleanup_bill_cache, fiscal_year_rollover, retry_ledger_sync

    scheduler.add_job(
        run_job,
        'cron',
        month=4,
        day=1,
        hour=0,
        minute=0,
        args=['fiscal_year_rollover', fiscal_year_rollover, services.allocator],
        id='fiscal_year_rollover',
        name='Financial Year Rollover',
        replace_existing=True,
    )

    scheduler.add_job(
        run_job,
        'interval',
        minutes=settings.LEDGER_RETRY_INTERVAL_MINUTES,
        args=['retry_ledger_sync', retry_ledger_sync, services.bill_service],
        id='retry_ledger_sync',
        name='Retry Ledger Sync',
        replace_existing=True,
    )

    scheduler.add_job(
        run_job,
        'interval',
        minutes=settings.CACHE_CLEANUP_INTERVAL_MINUTES,
        args=['cleanup_bill_cache', cleanup_bill_cache, services.cache],
        id='cleanup_bill_cache',
        name='Cleanup Bill Cache',
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
