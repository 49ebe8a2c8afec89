"""
Pytest configuration and fixtures for billing tests.

This module provides fixtures for:
- Unit tests (totals, fiscal year, lifecycle, allocator)
- Integration tests (SQLite ledger and bill store via aiosqlite)
- API tests (with FastAPI TestClient)
"""

import asyncio
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

os.environ.setdefault("LEDGER_BACKEND", "memory")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.exceptions import LedgerUnavailableError
from app.database import create_session_factory, init_db
from app.database_init import build_billing_services
from app.schemas.bill import Bill, BillStatus, InvoiceSerial, LineItem
from app.services.bill_lifecycle_service import BillLifecycle
from app.services.bill_repository import InMemoryBillRepository
from app.services.invoice_sequence_service import FiscalSequenceAllocator
from app.services.ledger_service import InMemoryLedger, LedgerPort
from app.services.totals_service import compute_totals


TODAY = date(2025, 6, 15)  # FY 2025-26


class FixedClock:
    """Settable stand-in for the business clock."""

    def __init__(self, today: date = TODAY):
        self.today = today

    def __call__(self) -> date:
        return self.today


class StubLedger(LedgerPort):
    """
    Ledger that only reports maxima.

    - maxima: FY -> highest persisted serial
    - error: raised from max_serial when set
    - gate: when set, max_serial waits on it before answering
    """

    def __init__(self, maxima: Optional[Dict[str, int]] = None):
        self.maxima = dict(maxima or {})
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.reads = 0

    async def max_serial(self, fiscal_year: str) -> int:
        self.reads += 1
        if self.gate is not None:
            await self.gate.wait()
        # Yield so concurrent callers interleave here
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.maxima.get(fiscal_year, 0)

    async def append_finalized_invoice(self, bill: Bill) -> None:
        pass

    async def record_void(self, bill: Bill) -> None:
        pass


class FlakyLedger(InMemoryLedger):
    """In-memory ledger whose reads and writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    async def max_serial(self, fiscal_year: str) -> int:
        if self.fail_reads:
            raise LedgerUnavailableError("Ledger unavailable: connection refused")
        return await super().max_serial(fiscal_year)

    async def append_finalized_invoice(self, bill: Bill) -> None:
        if self.fail_writes:
            raise LedgerUnavailableError("Ledger unavailable: connection refused")
        await super().append_finalized_invoice(bill)

    async def record_void(self, bill: Bill) -> None:
        if self.fail_writes:
            raise LedgerUnavailableError("Ledger unavailable: connection refused")
        await super().record_void(bill)


def make_line(name: str = "Masala Chai", quantity: int = 2, unit_rate: str = "50") -> LineItem:
    return LineItem(name=name, quantity=quantity, unit_rate=Decimal(unit_rate))


# ============ Unit Test Fixtures ============

@pytest.fixture
def clock():
    """Business clock fixed at 15 June 2025."""
    return FixedClock()


@pytest.fixture
def stub_ledger():
    return StubLedger()


@pytest.fixture
def allocator(stub_ledger, clock):
    return FiscalSequenceAllocator(stub_ledger, clock=clock, padding=6)


@pytest.fixture
def lifecycle(allocator, clock):
    return BillLifecycle(allocator, default_gst_rate=Decimal("18"), clock=clock)


@pytest.fixture
def tea_lines():
    """Two lines, subtotal 1000.00."""
    return [
        make_line("Masala Chai", 10, "40"),
        make_line("Samosa", 20, "30"),
    ]


@pytest.fixture
def make_final_bill():
    """Factory for FINAL bills with a given invoice serial."""

    def _make(fiscal_year: str = "2025-26", serial: int = 1, bill_id: Optional[str] = None) -> Bill:
        lines = (make_line(),)
        return Bill(
            id=bill_id or f"B{fiscal_year.replace('-', '')}{serial:04d}",
            status=BillStatus.FINAL,
            lines=lines,
            gst_rate=Decimal("18"),
            totals=compute_totals(lines),
            invoice_serial=InvoiceSerial(fiscal_year=fiscal_year, serial=serial),
            bill_date=TODAY,
            created_at=datetime.now(timezone.utc),
            finalized_at=datetime.now(timezone.utc),
        )

    return _make


# ============ Service Fixtures ============

@pytest.fixture
def flaky_ledger():
    return FlakyLedger()


@pytest.fixture
def services(flaky_ledger, clock):
    """Billing services over an in-memory ledger and bill store."""
    return build_billing_services(flaky_ledger, InMemoryBillRepository(), clock=clock, cache_ttl=20)


@pytest.fixture
def bill_service(services):
    return services.bill_service


# ============ Integration Test Fixtures ============

@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine with tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return create_session_factory(db_engine)


# ============ API Test Fixtures ============

@pytest.fixture
def client(services):
    """TestClient over an app wired to the in-memory services."""
    from fastapi.testclient import TestClient
    from app.main import create_app

    app = create_app(services=services, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client
