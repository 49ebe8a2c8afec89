"""Storage for bills, drafts included."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import session_scope
from app.models.bill import BillRecord
from app.schemas.bill import Bill, BillStatus

logger = logging.getLogger(__name__)


class BillRepository(ABC):
    """Abstract bill storage."""

    @abstractmethod
    async def get(self, bill_id: str) -> Optional[Bill]:
        pass

    @abstractmethod
    async def get_by_invoice_number(self, invoice_number: str) -> Optional[Bill]:
        pass

    @abstractmethod
    async def save(self, bill: Bill) -> Bill:
        """Insert or replace by bill id."""
        pass

    @abstractmethod
    async def list(self, status: Optional[BillStatus] = None) -> List[Bill]:
        """Newest first."""
        pass

    @abstractmethod
    async def list_unsynced(self) -> List[Bill]:
        """Finalized or voided bills whose latest state hasn't reached the ledger."""
        pass


class InMemoryBillRepository(BillRepository):

    def __init__(self):
        self._bills: Dict[str, Bill] = {}
        self._lock = asyncio.Lock()

    async def get(self, bill_id: str) -> Optional[Bill]:
        async with self._lock:
            return self._bills.get(bill_id)

    async def get_by_invoice_number(self, invoice_number: str) -> Optional[Bill]:
        async with self._lock:
            for bill in self._bills.values():
                if bill.invoice_number == invoice_number:
                    return bill
            return None

    async def save(self, bill: Bill) -> Bill:
        async with self._lock:
            self._bills[bill.id] = bill
        return bill

    async def list(self, status: Optional[BillStatus] = None) -> List[Bill]:
        async with self._lock:
            bills = [b for b in self._bills.values() if status is None or b.status == status]
        return sorted(bills, key=lambda b: b.created_at, reverse=True)

    async def list_unsynced(self) -> List[Bill]:
        async with self._lock:
            return [
                b for b in self._bills.values()
                if b.invoice_serial is not None and not b.ledger_synced
            ]


class DatabaseBillRepository(BillRepository):
    """Bills stored in the bills table, full bill kept as JSON payload."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, bill_id: str) -> Optional[Bill]:
        async with self._session_factory() as session:
            record = await session.get(BillRecord, bill_id)
            return Bill.model_validate(record.payload) if record else None

    async def get_by_invoice_number(self, invoice_number: str) -> Optional[Bill]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BillRecord).where(BillRecord.invoice_number == invoice_number)
            )
            record = result.scalar_one_or_none()
            return Bill.model_validate(record.payload) if record else None

    async def save(self, bill: Bill) -> Bill:
        async with session_scope(self._session_factory) as session:
            record = await session.get(BillRecord, bill.id)
            if record is None:
                record = BillRecord(id=bill.id, created_at=bill.created_at)
                session.add(record)
            record.status = bill.status.value
            record.invoice_number = bill.invoice_number
            record.ledger_synced = bill.ledger_synced
            record.payload = bill.model_dump(mode="json")
        return bill

    async def list(self, status: Optional[BillStatus] = None) -> List[Bill]:
        query = select(BillRecord).order_by(BillRecord.created_at.desc())
        if status is not None:
            query = query.where(BillRecord.status == status.value)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [Bill.model_validate(r.payload) for r in result.scalars().all()]

    async def list_unsynced(self) -> List[Bill]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BillRecord).where(
                    BillRecord.invoice_number.isnot(None),
                    BillRecord.ledger_synced == False,  # noqa: E712
                )
            )
            return [Bill.model_validate(r.payload) for r in result.scalars().all()]
