"""
Startup wiring for the billing core.

Builds one allocator, one lifecycle and one bill service per process,
backed either by the database or by in-memory stores (LEDGER_BACKEND).
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import settings
from app.core.exceptions import LedgerUnavailableError
from app.database import get_engine, get_session_factory, init_db
from app.services.bill_lifecycle_service import BillLifecycle
from app.services.bill_repository import BillRepository, DatabaseBillRepository, InMemoryBillRepository
from app.services.bill_service import BillService
from app.services.cache_service import BillCache, InMemoryCache
from app.services.invoice_sequence_service import FiscalSequenceAllocator, business_today
from app.services.ledger_service import DatabaseLedger, InMemoryLedger, LedgerPort

logger = logging.getLogger(__name__)


@dataclass
class BillingServices:
    """Process-wide billing components."""
    ledger: LedgerPort
    repository: BillRepository
    allocator: FiscalSequenceAllocator
    lifecycle: BillLifecycle
    bill_service: BillService
    cache: BillCache
    engine: Optional[AsyncEngine] = None


def build_billing_services(
    ledger: LedgerPort,
    repository: BillRepository,
    clock: Callable[[], date] = business_today,
    cache_ttl: Optional[int] = None,
    engine: Optional[AsyncEngine] = None,
) -> BillingServices:
    """Wire the billing components around a ledger and a bill store."""
    allocator = FiscalSequenceAllocator(ledger, clock=clock)
    lifecycle = BillLifecycle(allocator, default_gst_rate=settings.DEFAULT_GST_RATE, clock=clock)
    cache = BillCache(InMemoryCache(), ttl=cache_ttl if cache_ttl is not None else settings.BILL_CACHE_TTL)
    bill_service = BillService(lifecycle, repository, ledger, cache)
    return BillingServices(
        ledger=ledger,
        repository=repository,
        allocator=allocator,
        lifecycle=lifecycle,
        bill_service=bill_service,
        cache=cache,
        engine=engine,
    )


async def startup_initialization() -> BillingServices:
    """
    Build the billing services from settings.

    Startup sync of the invoice counter is best effort: if the ledger
    is down the allocator resyncs on the first finalize anyway.
    """
    if settings.LEDGER_BACKEND == "memory":
        logger.warning("Using in-memory ledger: finalized invoices are lost on restart")
        services = build_billing_services(InMemoryLedger(), InMemoryBillRepository())
    else:
        engine = get_engine()
        await init_db(engine)
        session_factory = get_session_factory()
        services = build_billing_services(
            DatabaseLedger(session_factory),
            DatabaseBillRepository(session_factory),
            engine=engine,
        )

    try:
        state = await services.allocator.reset()
        logger.info(
            f"Invoice counter synced: FY {state.current_fiscal_year}, "
            f"last issued {state.last_issued_serial}"
        )
    except LedgerUnavailableError as e:
        logger.warning(f"Invoice counter not synced at startup: {e.message}")

    return services
