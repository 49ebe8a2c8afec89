"""
Invoice Sequence Service for Atomic Invoice Number Allocation

PRACTICE:
- Financial year based numbering (April-March)
- Continuous sequence within financial year (NO daily reset)
- Reconcile with the ledger, then increment, under one lock
- Format: {FY}/{SEQUENCE}, e.g. 2025-26/000123

The in-memory counter is a cache of the ledger. Before every allocation
the ledger's highest serial for the target year is read and the counter
is raised to it if the ledger is ahead (restarts, rows written by another
terminal). The counter is never lowered within a year, so numbers handed
out but not yet written to the ledger are not issued twice. When the
target year changes the counter is replaced by the ledger value.

If the ledger cannot be read, nothing is issued and the state is left
exactly as it was.

USAGE:
    allocator = FiscalSequenceAllocator(ledger)
    serial = await allocator.next_serial(date.today())
    # serial.number == "2025-26/000001"
"""
import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from app.config import settings
from app.core.exceptions import BillValidationError, LedgerUnavailableError, SequenceRegressionError
from app.core.fiscal_year import financial_year_label, validate_financial_year
from app.schemas.bill import InvoiceSerial
from app.schemas.sequence import SequenceState
from app.services.ledger_service import LedgerPort

logger = logging.getLogger(__name__)


def business_today() -> date:
    """Today's date on the business wall clock."""
    return datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()


class FiscalSequenceAllocator:
    """
    Process-wide invoice number allocator.

    Create one per process and share it. Every method that touches the
    counter holds the same asyncio.Lock for the whole read-ledger /
    update-counter sequence.
    """

    def __init__(
        self,
        ledger: LedgerPort,
        clock: Callable[[], date] = business_today,
        padding: Optional[int] = None,
    ):
        """
        Args:
            ledger: Default ledger to reconcile against
            clock: Returns today's date, used when no date is given
            padding: Zero padding width for serials (default from settings)
        """
        self._ledger = ledger
        self._clock = clock
        self._padding = padding or settings.INVOICE_SERIAL_PADDING
        self._lock = asyncio.Lock()

        self._current_fiscal_year: Optional[str] = None
        self._last_issued_serial = 0
        self._override_fiscal_year: Optional[str] = None

    def snapshot(self) -> SequenceState:
        """Current counter state. Read-only."""
        return SequenceState(
            current_fiscal_year=self._current_fiscal_year,
            last_issued_serial=self._last_issued_serial,
            override_fiscal_year=self._override_fiscal_year,
        )

    def _target_fiscal_year(self, on_date: Optional[date]) -> str:
        if self._override_fiscal_year:
            return self._override_fiscal_year
        return financial_year_label(on_date or self._clock())

    async def _ledger_max(self, ledger: LedgerPort, fiscal_year: str) -> int:
        try:
            return int(await ledger.max_serial(fiscal_year))
        except LedgerUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Ledger lookup for FY {fiscal_year} failed: {e}")
            raise LedgerUnavailableError(f"Could not read ledger for FY {fiscal_year}: {e}") from e

    def _reconciled(self, fiscal_year: str, ledger_max: int) -> int:
        """Counter value after reconciling with the ledger. Pure."""
        if fiscal_year != self._current_fiscal_year:
            return ledger_max
        return max(self._last_issued_serial, ledger_max)

    async def next_serial(
        self,
        on_date: Optional[date] = None,
        ledger: Optional[LedgerPort] = None,
    ) -> InvoiceSerial:
        """
        Issue the next invoice serial.

        Args:
            on_date: Bill date, decides the financial year unless overridden
            ledger: Ledger to reconcile against (defaults to the constructor's)

        Returns:
            The newly issued InvoiceSerial

        Raises:
            LedgerUnavailableError: Ledger could not be read; nothing issued
        """
        ledger = ledger or self._ledger
        async with self._lock:
            fiscal_year = self._target_fiscal_year(on_date)
            ledger_max = await self._ledger_max(ledger, fiscal_year)

            if fiscal_year != self._current_fiscal_year and self._current_fiscal_year is not None:
                logger.info(
                    f"Invoice sequence switching FY {self._current_fiscal_year} -> {fiscal_year}, "
                    f"ledger max {ledger_max}"
                )
            elif ledger_max > self._last_issued_serial and fiscal_year == self._current_fiscal_year:
                logger.warning(
                    f"Ledger ahead of invoice counter for FY {fiscal_year}: "
                    f"{ledger_max} > {self._last_issued_serial}, catching up"
                )

            serial = self._reconciled(fiscal_year, ledger_max) + 1

            self._current_fiscal_year = fiscal_year
            self._last_issued_serial = serial

        issued = InvoiceSerial(fiscal_year=fiscal_year, serial=serial, padding=self._padding)
        logger.info(f"Issued invoice number {issued.number}")
        return issued

    async def peek_next(self, on_date: Optional[date] = None) -> InvoiceSerial:
        """
        Preview the next invoice serial without issuing it.

        The result is not reserved: a concurrent next_serial() may take it.
        """
        fiscal_year = self._target_fiscal_year(on_date)
        ledger_max = await self._ledger_max(self._ledger, fiscal_year)
        serial = self._reconciled(fiscal_year, ledger_max) + 1
        return InvoiceSerial(fiscal_year=fiscal_year, serial=serial, padding=self._padding)

    async def set_override_fiscal_year(self, fiscal_year: str) -> SequenceState:
        """
        Pin numbering to a financial year regardless of the date.

        Used for backfills. Resynchronizes the counter from the ledger.
        """
        try:
            fiscal_year = validate_financial_year(fiscal_year)
        except ValueError as e:
            raise BillValidationError(str(e)) from e

        async with self._lock:
            ledger_max = await self._ledger_max(self._ledger, fiscal_year)
            self._last_issued_serial = self._reconciled(fiscal_year, ledger_max)
            self._current_fiscal_year = fiscal_year
            self._override_fiscal_year = fiscal_year

        logger.warning(f"Invoice sequence pinned to FY {fiscal_year}, last issued {self._last_issued_serial}")
        return self.snapshot()

    async def set_next_serial(self, next_serial: int) -> SequenceState:
        """
        Force the next issued serial.

        Raises:
            BillValidationError: next_serial < 1
            SequenceRegressionError: next_serial would reuse an issued number
        """
        if isinstance(next_serial, bool) or not isinstance(next_serial, int) or next_serial < 1:
            raise BillValidationError("Next serial must be an integer >= 1")

        async with self._lock:
            fiscal_year = self._target_fiscal_year(None)
            ledger_max = await self._ledger_max(self._ledger, fiscal_year)
            floor = self._reconciled(fiscal_year, ledger_max)

            if next_serial - 1 < floor:
                raise SequenceRegressionError(fiscal_year, next_serial, floor)

            self._current_fiscal_year = fiscal_year
            self._last_issued_serial = next_serial - 1

        logger.warning(f"Invoice sequence for FY {fiscal_year} set, next serial {next_serial}")
        return self.snapshot()

    async def reset(self) -> SequenceState:
        """
        Clear the override and resynchronize for the current financial year.

        Scheduled on 1 April; also available to administrators.
        """
        async with self._lock:
            fiscal_year = financial_year_label(self._clock())
            ledger_max = await self._ledger_max(self._ledger, fiscal_year)
            self._last_issued_serial = self._reconciled(fiscal_year, ledger_max)
            self._current_fiscal_year = fiscal_year
            self._override_fiscal_year = None

        logger.info(f"Invoice sequence reset to FY {fiscal_year}, last issued {self._last_issued_serial}")
        return self.snapshot()
