from typing import Annotated
import logging

from fastapi import Depends, Request

from app.services.bill_service import BillService
from app.services.invoice_sequence_service import FiscalSequenceAllocator


logger = logging.getLogger(__name__)


def get_bill_service(request: Request) -> BillService:
    """Dependency to get the process-wide bill service."""
    return request.app.state.bill_service


def get_allocator(request: Request) -> FiscalSequenceAllocator:
    """Dependency to get the process-wide invoice number allocator."""
    return request.app.state.allocator


# Type aliases for cleaner dependency injection
Bills = Annotated[BillService, Depends(get_bill_service)]
Allocator = Annotated[FiscalSequenceAllocator, Depends(get_allocator)]
