"""
Ledger Adapters

The ledger is the system of record for finalized invoices. The invoice
sequence reconciles against it before every allocation, and finalized
bills are appended to it.

Supports:
1. DatabaseLedger (SQLAlchemy table, production)
2. InMemoryLedger (development/testing)

Writes are at-least-once: appending the same invoice number twice
updates the existing row instead of creating a second one.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import LedgerUnavailableError
from app.database import session_scope
from app.models.ledger import LedgerInvoice
from app.schemas.bill import Bill, BillStatus

logger = logging.getLogger(__name__)


class LedgerPort(ABC):
    """What the billing core needs from the ledger."""

    @abstractmethod
    async def max_serial(self, fiscal_year: str) -> int:
        """Highest serial persisted for the financial year, 0 if none."""
        pass

    @abstractmethod
    async def append_finalized_invoice(self, bill: Bill) -> None:
        """Persist a finalized bill. Safe to repeat for the same invoice number."""
        pass

    @abstractmethod
    async def record_void(self, bill: Bill) -> None:
        """Mark a persisted invoice as void."""
        pass


def _require_invoice_number(bill: Bill) -> str:
    if bill.invoice_serial is None:
        raise ValueError(f"Bill {bill.id} has no invoice number and cannot go to the ledger")
    return bill.invoice_serial.number


class InMemoryLedger(LedgerPort):
    """
    In-memory ledger for development/fallback.

    Note: Contents are lost on restart, so numbering restarts from
    whatever max_serial reports afterwards.
    """

    def __init__(self):
        self._rows: Dict[str, Bill] = {}
        self._lock = asyncio.Lock()

    async def max_serial(self, fiscal_year: str) -> int:
        async with self._lock:
            serials = [
                bill.invoice_serial.serial
                for bill in self._rows.values()
                if bill.invoice_serial.fiscal_year == fiscal_year
            ]
            return max(serials, default=0)

    async def append_finalized_invoice(self, bill: Bill) -> None:
        number = _require_invoice_number(bill)
        async with self._lock:
            self._rows[number] = bill

    async def record_void(self, bill: Bill) -> None:
        number = _require_invoice_number(bill)
        async with self._lock:
            self._rows[number] = bill

    async def get(self, invoice_number: str) -> Optional[Bill]:
        async with self._lock:
            return self._rows.get(invoice_number)

    async def list_invoices(self, fiscal_year: Optional[str] = None) -> List[Bill]:
        async with self._lock:
            rows = [
                bill for bill in self._rows.values()
                if fiscal_year is None or bill.invoice_serial.fiscal_year == fiscal_year
            ]
        return sorted(rows, key=lambda b: (b.invoice_serial.fiscal_year, b.invoice_serial.serial))


class DatabaseLedger(LedgerPort):
    """
    Ledger stored in the ledger_invoices table.

    Every call runs in its own short transaction so a failure never
    leaves a half written row behind.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def max_serial(self, fiscal_year: str) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.max(LedgerInvoice.serial))
                    .where(LedgerInvoice.fiscal_year == fiscal_year)
                )
                return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Ledger max serial lookup failed for FY {fiscal_year}: {e}")
            raise LedgerUnavailableError(f"Ledger unavailable: {e}") from e

    async def append_finalized_invoice(self, bill: Bill) -> None:
        number = _require_invoice_number(bill)
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(LedgerInvoice, number)
                if row is None:
                    row = LedgerInvoice(
                        invoice_number=number,
                        fiscal_year=bill.invoice_serial.fiscal_year,
                        serial=bill.invoice_serial.serial,
                        bill_id=bill.id,
                    )
                    session.add(row)
                else:
                    logger.info(f"Invoice {number} already in ledger, updating row")
                self._fill_row(row, bill)
        except SQLAlchemyError as e:
            logger.error(f"Ledger append failed for invoice {number}: {e}")
            raise LedgerUnavailableError(f"Ledger unavailable: {e}") from e

    async def record_void(self, bill: Bill) -> None:
        number = _require_invoice_number(bill)
        try:
            async with session_scope(self._session_factory) as session:
                row = await session.get(LedgerInvoice, number)
                if row is None:
                    # Voided before the original append reached the ledger
                    row = LedgerInvoice(
                        invoice_number=number,
                        fiscal_year=bill.invoice_serial.fiscal_year,
                        serial=bill.invoice_serial.serial,
                        bill_id=bill.id,
                    )
                    session.add(row)
                self._fill_row(row, bill)
                row.status = BillStatus.VOID.value
                row.voided_at = bill.voided_at or datetime.now(timezone.utc)
        except SQLAlchemyError as e:
            logger.error(f"Ledger void failed for invoice {number}: {e}")
            raise LedgerUnavailableError(f"Ledger unavailable: {e}") from e

    async def get(self, invoice_number: str) -> Optional[Bill]:
        try:
            async with self._session_factory() as session:
                row = await session.get(LedgerInvoice, invoice_number)
                return Bill.model_validate(row.payload) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Ledger lookup failed for invoice {invoice_number}: {e}")
            raise LedgerUnavailableError(f"Ledger unavailable: {e}") from e

    @staticmethod
    def _fill_row(row: LedgerInvoice, bill: Bill) -> None:
        totals = bill.totals
        row.status = bill.status.value
        row.bill_date = bill.bill_date
        row.is_interstate = bill.inter_state
        row.subtotal = totals.subtotal
        row.discount_amount = totals.discount
        row.taxable_amount = totals.taxable_base
        row.cgst_amount = totals.cgst
        row.sgst_amount = totals.sgst
        row.igst_amount = totals.igst
        row.round_off = totals.round_off
        row.grand_total = totals.grand_total
        row.finalized_at = bill.finalized_at
        row.voided_at = bill.voided_at
        row.payload = bill.model_dump(mode="json")
