"""
Billing Jobs

Background jobs for the invoice counter, deferred ledger writes
and the bill read cache.
"""

import logging
from typing import Any, Dict

from app.core.exceptions import LedgerUnavailableError
from app.services.bill_service import BillService
from app.services.cache_service import BillCache
from app.services.invoice_sequence_service import FiscalSequenceAllocator

logger = logging.getLogger(__name__)


async def fiscal_year_rollover(allocator: FiscalSequenceAllocator) -> Dict[str, Any]:
    """
    Start numbering for the new financial year.

    Runs at 00:00 on 1 April. Numbering would switch on the first bill
    of the year anyway; this clears any FY override and logs the switch.
    """
    try:
        state = await allocator.reset()
    except LedgerUnavailableError as e:
        logger.error(f"Financial year rollover failed: {e.message}")
        return {"success": False, "error": e.message}

    logger.info(f"Financial year rollover: now numbering FY {state.current_fiscal_year}")
    return {"success": True, "fiscal_year": state.current_fiscal_year}


async def retry_ledger_sync(bill_service: BillService) -> Dict[str, Any]:
    """Write finalized bills that missed the ledger."""
    synced = await bill_service.sync_pending()
    return {"success": True, "synced": synced}


async def cleanup_bill_cache(cache: BillCache) -> Dict[str, Any]:
    """Drop expired entries from the bill cache."""
    cleanup = getattr(cache.backend, "cleanup_expired", None)
    removed = await cleanup() if cleanup else 0
    if removed:
        logger.debug(f"Bill cache cleanup removed {removed} entries")
    return {"success": True, "removed": removed}
