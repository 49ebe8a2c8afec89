"""Domain errors for billing, numbering and the ledger."""
from typing import Optional


class BillingError(Exception):
    """Base class for all billing domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BillValidationError(BillingError):
    """Input rejected before anything was applied (empty bill, bad quantity, bad discount)."""
    pass


class BillNotFoundError(BillingError):
    """No bill matches the given id or invoice number."""

    def __init__(self, key: str):
        super().__init__(f"Bill '{key}' not found")
        self.key = key


class InvalidTransitionError(BillingError):
    """Lifecycle operation not allowed from the bill's current state."""

    def __init__(self, bill_id: str, current_status: str, action: str, reason: Optional[str] = None):
        message = f"Bill {bill_id} cannot {action} from status '{current_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.bill_id = bill_id
        self.current_status = current_status
        self.action = action


class LedgerUnavailableError(BillingError):
    """The ledger could not be read or written. Nothing was issued."""
    pass


class SequenceRegressionError(BillingError):
    """Requested next serial would reuse a number already issued."""

    def __init__(self, fiscal_year: str, requested: int, floor: int):
        super().__init__(
            f"Next serial {requested} for FY {fiscal_year} would regress below "
            f"already issued serial {floor}"
        )
        self.fiscal_year = fiscal_year
        self.requested = requested
        self.floor = floor


class BillStorageError(BillingError):
    """
    A numbered bill could not be saved locally.

    The invoice number stays issued to the bill; the service holds the
    bill and saves it again on the next sync.
    """

    def __init__(self, bill_id: str, invoice_number: Optional[str], reason: str):
        super().__init__(
            f"Bill {bill_id} was issued invoice {invoice_number} but could not be saved: {reason}"
        )
        self.bill_id = bill_id
        self.invoice_number = invoice_number
