"""
Background Jobs Module

Handles scheduled tasks for:
- Financial year rollover of invoice numbering
- Deferred ledger writes
- Bill cache cleanup
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from app.jobs.billing_jobs import fiscal_year_rollover, retry_ledger_sync, cleanup_bill_cache

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "fiscal_year_rollover",
    "retry_ledger_sync",
    "cleanup_bill_cache",
]
