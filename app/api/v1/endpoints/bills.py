"""API endpoints for POS bills (GST compliant)."""
from typing import Optional

from fastapi import APIRouter, Body, Query, status

from app.api.deps import Bills
from app.schemas.bill import (
    Bill, BillCreate, BillUpdate, BillStatus, BillListResponse, FinalizeRequest,
)

router = APIRouter()


# ==================== Create ====================

@router.post("", response_model=Bill, status_code=status.HTTP_201_CREATED)
async def create_draft(bill_in: BillCreate, service: Bills):
    """Create a DRAFT bill. Totals are computed immediately; no invoice number is used."""
    return await service.create_draft(bill_in)


@router.post("/final", response_model=Bill, status_code=status.HTTP_201_CREATED)
async def create_final(bill_in: BillCreate, service: Bills):
    """Create a bill directly as FINAL, taking the next invoice number."""
    return await service.create_final(bill_in)


# ==================== Read ====================

@router.get("", response_model=BillListResponse)
async def list_bills(
    service: Bills,
    status_filter: Optional[BillStatus] = Query(None, alias="status"),
):
    """List bills, newest first."""
    bills = await service.list_bills(status_filter)
    return BillListResponse(items=bills, total=len(bills))


# ==================== Transitions ====================
# Declared before the catch-all GET so invoice numbers ("2025-26/000001")
# can be used as keys.

@router.post("/{bill_id}/finalize", response_model=Bill)
async def finalize_bill(
    bill_id: str,
    service: Bills,
    finalize_in: Optional[FinalizeRequest] = Body(None),
):
    """Finalize a draft: recompute totals and assign the invoice number."""
    finalize_in = finalize_in or FinalizeRequest()
    return await service.finalize(
        bill_id,
        on_date=finalize_in.bill_date,
        cashier_email=finalize_in.cashier_email,
    )


@router.post("/{key:path}/print", response_model=Bill)
async def mark_printed(key: str, service: Bills):
    """Mark a FINAL bill as printed. Repeating is harmless."""
    return await service.mark_printed(key)


@router.post("/{key:path}/void", response_model=Bill)
async def void_bill(key: str, service: Bills):
    """Void a bill. A voided invoice number is never reused."""
    return await service.void(key)


@router.get("/{key:path}", response_model=Bill)
async def get_bill(key: str, service: Bills):
    """Get a bill by id or invoice number."""
    return await service.get_bill(key)


@router.put("/{key:path}", response_model=Bill)
async def update_bill(key: str, bill_in: BillUpdate, service: Bills):
    """
    Update a bill.

    Lines, discount and tax mode can only change while the bill is a draft.
    Customer, payment and notes can also change on an unprinted final bill.
    """
    return await service.update_bill(key, bill_in)
