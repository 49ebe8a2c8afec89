"""
Bill Service

Orchestrates the billing flow:
1. Lifecycle rules (app.services.bill_lifecycle_service)
2. Ledger writes for numbered bills (LedgerPort)
3. Storage of the working copy (BillRepository)
4. Read cache invalidation (BillCache)

Every write to one bill runs under that bill's lock, so two concurrent
finalize calls on the same draft can't both see DRAFT and take two
invoice numbers. Locks live only while some call holds or waits on them.

Once a bill holds an invoice number it is written to the ledger first,
then stored locally:
- Ledger write fails: the bill is stored with ledger_synced=False and
  retried by the scheduler (sync_pending).
- Local store fails: the bill is held in memory, BillStorageError reports
  the issued number, and sync_pending saves it later. Lookups see the
  held copy, so a retried finalize can't take a second number.
"""
import asyncio
import logging
import weakref
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import BillNotFoundError, BillStorageError, LedgerUnavailableError
from app.schemas.bill import Bill, BillCreate, BillStatus, BillUpdate
from app.services.bill_lifecycle_service import BillLifecycle
from app.services.bill_repository import BillRepository
from app.services.cache_service import BillCache
from app.services.ledger_service import LedgerPort

logger = logging.getLogger(__name__)


class BillService:
    """Service for bill management and finalization."""

    def __init__(
        self,
        lifecycle: BillLifecycle,
        repository: BillRepository,
        ledger: LedgerPort,
        cache: BillCache,
    ):
        self.lifecycle = lifecycle
        self.repository = repository
        self.ledger = ledger
        self.cache = cache
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        # Numbered bills whose local save failed, by bill id
        self._unstored: Dict[str, Bill] = {}

    def _lock_for(self, bill_id: str) -> asyncio.Lock:
        lock = self._locks.get(bill_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[bill_id] = lock
        return lock

    # ==================== Reads ====================

    def _held(self, key: str) -> Optional[Bill]:
        bill = self._unstored.get(key)
        if bill is not None:
            return bill
        for bill in self._unstored.values():
            if bill.invoice_number == key:
                return bill
        return None

    async def get_bill(self, key: str) -> Bill:
        """
        Get a bill by id or invoice number.

        Raises:
            BillNotFoundError: No such bill
        """
        key = (key or "").strip()
        if not key:
            raise BillNotFoundError(key)

        held = self._held(key)
        if held is not None:
            return held

        cached = await self.cache.get_bill(key)
        if cached is not None:
            return cached

        bill = await self.repository.get(key)
        if bill is None:
            bill = await self.repository.get_by_invoice_number(key)
        if bill is None:
            raise BillNotFoundError(key)

        await self.cache.set_bill(bill)
        return bill

    async def list_bills(self, status: Optional[BillStatus] = None) -> List[Bill]:
        status_key = status.value if status else None
        cached = await self.cache.get_list(status_key)
        if cached is not None:
            return cached

        bills = await self.repository.list(status)
        await self.cache.set_list(status_key, bills)
        return bills

    async def _load_fresh(self, key: str) -> Bill:
        """Uncached lookup, used inside bill locks."""
        bill = self._held(key)
        if bill is None:
            bill = await self.repository.get(key)
        if bill is None:
            bill = await self.repository.get_by_invoice_number(key)
        if bill is None:
            raise BillNotFoundError(key)
        return bill

    async def _store(self, bill: Bill) -> Bill:
        await self.repository.save(bill)
        await self.cache.invalidate()
        return bill

    # ==================== Writes ====================

    async def create_draft(self, data: BillCreate) -> Bill:
        draft = self.lifecycle.create_draft(**self._create_kwargs(data))
        logger.info(f"Draft {draft.id} created with {len(draft.lines)} lines")
        return await self._store(draft)

    async def create_final(self, data: BillCreate) -> Bill:
        """Create and finalize in one step."""
        bill = await self.lifecycle.create_final(**self._create_kwargs(data))
        async with self._lock_for(bill.id):
            return await self._record_issued(bill)

    async def update_bill(self, key: str, data: BillUpdate) -> Bill:
        """
        Apply a partial update.

        Content changes (lines, discount, ...) are draft-only; detail
        changes (customer, payment, notes) are also allowed on unprinted
        final bills.
        """
        bill = await self._load_fresh(key)
        async with self._lock_for(bill.id):
            bill = await self._load_fresh(bill.id)
            content = data.content_changes()
            details = data.detail_changes()

            if content:
                updated = self.lifecycle.update_draft(bill, **content, **details)
            else:
                updated = self.lifecycle.update_details(bill, **details)

            if updated.invoice_serial is None:
                return await self._store(updated)
            return await self._record_issued(updated)

    async def finalize(
        self,
        key: str,
        on_date: Optional[date] = None,
        cashier_email: Optional[str] = None,
    ) -> Bill:
        """
        Finalize a draft: recompute totals, take an invoice number, write to ledger.

        Raises:
            BillNotFoundError, InvalidTransitionError, BillValidationError,
            LedgerUnavailableError (numbering failed, nothing issued),
            BillStorageError (number issued and in the ledger, local save pending)
        """
        bill = await self._load_fresh(key)
        async with self._lock_for(bill.id):
            bill = await self._load_fresh(bill.id)
            finalized = await self.lifecycle.finalize(bill, on_date=on_date, cashier_email=cashier_email)
            return await self._record_issued(finalized)

    async def mark_printed(self, key: str) -> Bill:
        bill = await self._load_fresh(key)
        async with self._lock_for(bill.id):
            bill = await self._load_fresh(bill.id)
            printed = self.lifecycle.mark_printed(bill)
            if printed is bill:
                return bill
            return await self._record_issued(printed)

    async def void(self, key: str) -> Bill:
        bill = await self._load_fresh(key)
        async with self._lock_for(bill.id):
            bill = await self._load_fresh(bill.id)
            voided = self.lifecycle.void(bill)
            if voided.invoice_serial is None:
                return await self._store(voided)
            return await self._record_issued(voided)

    # ==================== Ledger ====================

    async def _record_issued(self, bill: Bill) -> Bill:
        """
        Record a numbered bill: ledger first, then the local store.

        Call with the bill's lock held.

        Raises:
            BillStorageError: Local save failed; the bill is held for sync_pending
        """
        pending = bill.model_copy(update={"ledger_synced": False})
        try:
            recorded = await self._push_to_ledger(pending)
        except Exception:
            # Keep the issued number on the bill before surfacing the error
            self._unstored[pending.id] = pending
            await self._store(pending)
            self._unstored.pop(pending.id, None)
            raise
        try:
            await self._store(recorded)
        except Exception as e:
            self._unstored[recorded.id] = recorded
            logger.error(
                f"Bill {recorded.id} ({recorded.invoice_number}) not saved, "
                f"held for retry (in ledger: {recorded.ledger_synced}): {type(e).__name__}: {e}"
            )
            raise BillStorageError(recorded.id, recorded.invoice_number, str(e)) from e

        self._unstored.pop(recorded.id, None)
        return recorded

    async def _push_to_ledger(self, bill: Bill) -> Bill:
        """
        Write a numbered bill to the ledger.

        Returns the bill with ledger_synced set, or unchanged if the
        ledger is unavailable.
        """
        try:
            if bill.status == BillStatus.VOID:
                await self.ledger.record_void(bill)
            else:
                await self.ledger.append_finalized_invoice(bill)
        except (LedgerUnavailableError, SQLAlchemyError) as e:
            logger.warning(f"Ledger write for {bill.invoice_number} deferred: {type(e).__name__}: {e}")
            return bill

        return bill.model_copy(update={"ledger_synced": True})

    async def sync_pending(self) -> int:
        """
        Retry local saves and ledger writes that failed earlier.

        Returns:
            Number of bills now in sync
        """
        synced = 0
        attempted = 0

        for bill_id in list(self._unstored):
            attempted += 1
            async with self._lock_for(bill_id):
                held = self._unstored.get(bill_id)
                if held is None:
                    continue
                try:
                    result = await self._record_issued(held)
                except BillStorageError:
                    continue
                except Exception as e:
                    # One broken bill must not block the rest
                    logger.error(f"Ledger sync failed for bill {held.id}: {type(e).__name__}: {e}")
                    continue
                if result.ledger_synced:
                    synced += 1

        pending = await self.repository.list_unsynced()
        for stale in pending:
            attempted += 1
            async with self._lock_for(stale.id):
                bill = await self.repository.get(stale.id)
                if bill is None or bill.ledger_synced or bill.id in self._unstored:
                    continue
                try:
                    result = await self._record_issued(bill)
                except BillStorageError:
                    continue
                except Exception as e:
                    # One broken bill must not block the rest
                    logger.error(f"Ledger sync failed for bill {bill.id}: {type(e).__name__}: {e}")
                    continue
                if result.ledger_synced:
                    synced += 1

        if attempted:
            logger.info(f"Ledger sync: {synced}/{attempted} pending bills written")
        return synced

    # ==================== Helpers ====================

    @staticmethod
    def _create_kwargs(data: BillCreate) -> dict:
        return {
            "lines": data.lines,
            "discount_flat": data.discount_flat,
            "discount_pct": data.discount_pct,
            "inter_state": data.inter_state,
            "gst_rate": data.gst_rate,
            "bill_date": data.bill_date,
            "cashier_email": data.cashier_email,
            "customer": data.customer,
            "payment_mode": data.payment_mode,
            "payment_split": data.payment_split,
            "notes": data.notes,
        }
