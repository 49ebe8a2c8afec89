# Services module
from app.services.totals_service import compute_totals, compute_bill_totals
from app.services.ledger_service import LedgerPort, InMemoryLedger, DatabaseLedger
from app.services.invoice_sequence_service import FiscalSequenceAllocator
from app.services.bill_lifecycle_service import BillLifecycle
from app.services.bill_repository import BillRepository, InMemoryBillRepository, DatabaseBillRepository
from app.services.cache_service import BillCache, InMemoryCache
from app.services.bill_service import BillService

__all__ = [
    "compute_totals",
    "compute_bill_totals",
    "LedgerPort",
    "InMemoryLedger",
    "DatabaseLedger",
    "FiscalSequenceAllocator",
    "BillLifecycle",
    "BillRepository",
    "InMemoryBillRepository",
    "DatabaseBillRepository",
    "BillCache",
    "InMemoryCache",
    "BillService",
]
