# Models module
from app.models.bill import BillRecord
from app.models.ledger import LedgerInvoice

__all__ = [
    "BillRecord",
    "LedgerInvoice",
]
