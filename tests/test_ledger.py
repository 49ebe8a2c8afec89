"""
Integration tests for the database ledger and bill store (SQLite via aiosqlite).
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.exceptions import LedgerUnavailableError
from app.database import create_session_factory
from app.models.ledger import LedgerInvoice
from app.schemas.bill import BillStatus
from app.services.bill_repository import DatabaseBillRepository
from app.services.invoice_sequence_service import FiscalSequenceAllocator
from app.services.ledger_service import DatabaseLedger, InMemoryLedger
from tests.conftest import FixedClock


class TestDatabaseLedger:

    async def test_empty_ledger_max_is_zero(self, session_factory):
        ledger = DatabaseLedger(session_factory)
        assert await ledger.max_serial("2025-26") == 0

    async def test_max_serial_per_financial_year(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        await ledger.append_finalized_invoice(make_final_bill("2024-25", 812))
        await ledger.append_finalized_invoice(make_final_bill("2025-26", 3))
        await ledger.append_finalized_invoice(make_final_bill("2025-26", 7))

        assert await ledger.max_serial("2024-25") == 812
        assert await ledger.max_serial("2025-26") == 7
        assert await ledger.max_serial("2026-27") == 0

    async def test_append_is_idempotent(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        bill = make_final_bill("2025-26", 1)
        await ledger.append_finalized_invoice(bill)
        await ledger.append_finalized_invoice(bill)

        async with session_factory() as session:
            count = (await session.execute(select(func.count(LedgerInvoice.invoice_number)))).scalar()
        assert count == 1

    async def test_row_carries_tax_columns(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        bill = make_final_bill("2025-26", 1)
        await ledger.append_finalized_invoice(bill)

        async with session_factory() as session:
            row = await session.get(LedgerInvoice, "2025-26/000001")
        assert row.fiscal_year == "2025-26"
        assert row.serial == 1
        assert row.status == "FINAL"
        assert Decimal(row.taxable_amount) == Decimal("100.00")
        assert Decimal(row.cgst_amount) == Decimal("9.00")
        assert Decimal(row.grand_total) == Decimal("118.00")

    async def test_record_void(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        bill = make_final_bill("2025-26", 1)
        await ledger.append_finalized_invoice(bill)
        voided = bill.model_copy(update={"status": BillStatus.VOID})
        await ledger.record_void(voided)

        stored = await ledger.get("2025-26/000001")
        assert stored.status == BillStatus.VOID
        assert await ledger.max_serial("2025-26") == 1

    async def test_record_void_without_prior_append(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        voided = make_final_bill("2025-26", 4).model_copy(update={"status": BillStatus.VOID})
        await ledger.record_void(voided)
        assert await ledger.max_serial("2025-26") == 4

    async def test_missing_tables_reported_as_unavailable(self):
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        try:
            ledger = DatabaseLedger(create_session_factory(engine))
            with pytest.raises(LedgerUnavailableError):
                await ledger.max_serial("2025-26")
        finally:
            await engine.dispose()

    async def test_allocator_resumes_after_restart(self, session_factory, make_final_bill):
        ledger = DatabaseLedger(session_factory)
        for serial in (1, 2, 3):
            await ledger.append_finalized_invoice(make_final_bill("2025-26", serial))

        # Fresh allocator, as after a process restart
        allocator = FiscalSequenceAllocator(ledger, clock=FixedClock())
        serial = await allocator.next_serial()
        assert serial.number == "2025-26/000004"


class TestInMemoryLedger:

    async def test_list_invoices_sorted(self, make_final_bill):
        ledger = InMemoryLedger()
        await ledger.append_finalized_invoice(make_final_bill("2025-26", 2))
        await ledger.append_finalized_invoice(make_final_bill("2025-26", 1))
        await ledger.append_finalized_invoice(make_final_bill("2024-25", 9))

        numbers = [b.invoice_number for b in await ledger.list_invoices("2025-26")]
        assert numbers == ["2025-26/000001", "2025-26/000002"]

    async def test_draft_cannot_be_appended(self, lifecycle, tea_lines):
        ledger = InMemoryLedger()
        with pytest.raises(ValueError):
            await ledger.append_finalized_invoice(lifecycle.create_draft(tea_lines))


class TestDatabaseBillRepository:

    async def test_save_and_get(self, session_factory, lifecycle, tea_lines):
        repository = DatabaseBillRepository(session_factory)
        draft = lifecycle.create_draft(tea_lines, notes="table 2")
        await repository.save(draft)

        loaded = await repository.get(draft.id)
        assert loaded.model_dump() == draft.model_dump()

    async def test_get_by_invoice_number(self, session_factory, make_final_bill):
        repository = DatabaseBillRepository(session_factory)
        bill = make_final_bill("2025-26", 5)
        await repository.save(bill)

        loaded = await repository.get_by_invoice_number("2025-26/000005")
        assert loaded.id == bill.id
        assert await repository.get_by_invoice_number("2025-26/000006") is None

    async def test_save_replaces(self, session_factory, lifecycle, tea_lines):
        repository = DatabaseBillRepository(session_factory)
        draft = lifecycle.create_draft(tea_lines)
        await repository.save(draft)
        await repository.save(lifecycle.void(draft))

        assert (await repository.get(draft.id)).status == BillStatus.VOID
        assert len(await repository.list()) == 1

    async def test_list_by_status_and_unsynced(self, session_factory, lifecycle, tea_lines, make_final_bill):
        repository = DatabaseBillRepository(session_factory)
        await repository.save(lifecycle.create_draft(tea_lines))
        pending = make_final_bill("2025-26", 1)
        synced = make_final_bill("2025-26", 2).model_copy(update={"ledger_synced": True})
        await repository.save(pending)
        await repository.save(synced)

        assert len(await repository.list(BillStatus.DRAFT)) == 1
        assert len(await repository.list(BillStatus.FINAL)) == 2
        assert [b.id for b in await repository.list_unsynced()] == [pending.id]


class TestDatabaseLedgerFailures:

    async def test_get_without_tables_reported_as_unavailable(self):
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        try:
            ledger = DatabaseLedger(create_session_factory(engine))
            with pytest.raises(LedgerUnavailableError):
                await ledger.get("2025-26/000001")
        finally:
            await engine.dispose()
