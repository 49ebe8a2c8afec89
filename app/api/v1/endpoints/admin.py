"""API endpoints for invoice counter administration."""
from fastapi import APIRouter

from app.api.deps import Allocator
from app.schemas.sequence import CounterResponse, CounterUpdate
from app.services.invoice_sequence_service import FiscalSequenceAllocator

router = APIRouter()


async def _counter_response(allocator: FiscalSequenceAllocator) -> CounterResponse:
    state = allocator.snapshot()
    preview = await allocator.peek_next()
    return CounterResponse(
        current_fiscal_year=state.current_fiscal_year,
        last_issued_serial=state.last_issued_serial,
        override_fiscal_year=state.override_fiscal_year,
        next_invoice_number=preview.number,
    )


@router.get("/counter", response_model=CounterResponse)
async def get_counter(allocator: Allocator):
    """
    Current invoice counter and the number the next finalize would get.

    The preview is not reserved.
    """
    return await _counter_response(allocator)


@router.post("/counter", response_model=CounterResponse)
async def update_counter(counter_in: CounterUpdate, allocator: Allocator):
    """
    Change the invoice counter.

    - financial_year: pin numbering to a FY (backfills)
    - next_serial: force the next serial; rejected if it would reuse a number
    - reset: clear the pin and resync for the current FY
    """
    if counter_in.financial_year is not None:
        await allocator.set_override_fiscal_year(counter_in.financial_year)
    if counter_in.next_serial is not None:
        await allocator.set_next_serial(counter_in.next_serial)
    if counter_in.reset:
        await allocator.reset()
    return await _counter_response(allocator)
