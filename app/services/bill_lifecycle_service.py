"""
BILL LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed lifecycle transitions for bills:

    DRAFT ──finalize──▶ FINAL ──void──▶ VOID
      └────────────void────────────────▲

- Drafts never consume an invoice number; finalize consumes exactly one.
- FINAL freezes lines, discount, inter_state and the GST rate.
- Printing a FINAL bill freezes everything except voiding.
- VOID is terminal and keeps its invoice number (the gap is intended).

Bills are immutable values; every operation returns a new Bill.
Persistence and ledger writes belong to BillService.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Set

from app.config import settings
from app.core.exceptions import BillValidationError, InvalidTransitionError
from app.schemas.bill import (
    Bill, BillStatus, Customer, DiscountSpec, LineItem, PaymentMode, PaymentSplit,
)
from app.services.invoice_sequence_service import FiscalSequenceAllocator, business_today
from app.services.totals_service import compute_bill_totals

logger = logging.getLogger(__name__)


# ============================================================
# STATE DEFINITIONS
# ============================================================

TERMINAL_STATES: Set[BillStatus] = {
    BillStatus.VOID,
}

ALLOWED_TRANSITIONS: Dict[BillStatus, Set[BillStatus]] = {
    BillStatus.DRAFT: {BillStatus.FINAL, BillStatus.VOID},
    BillStatus.FINAL: {BillStatus.VOID},
    BillStatus.VOID: set(),
}

DETAIL_FIELDS = ("cashier_email", "customer", "payment_mode", "payment_split", "notes")


def can_transition(*, from_status: BillStatus, to_status: BillStatus) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS[from_status]


def validate_transition(*, bill: Bill, target_status: BillStatus, action: str) -> None:
    if not can_transition(from_status=bill.status, to_status=target_status):
        raise InvalidTransitionError(bill.id, bill.status.value, action)


def new_bill_id() -> str:
    return f"D{uuid.uuid4().hex[:16].upper()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BillLifecycle:
    """Creates bills and moves them through DRAFT → FINAL → VOID."""

    def __init__(
        self,
        allocator: FiscalSequenceAllocator,
        default_gst_rate: Optional[Decimal] = None,
        clock: Callable[[], date] = business_today,
    ):
        self.allocator = allocator
        self.default_gst_rate = Decimal(default_gst_rate if default_gst_rate is not None else settings.DEFAULT_GST_RATE)
        self._clock = clock

    # ==================== Drafts ====================

    def create_draft(
        self,
        lines: Iterable[LineItem],
        discount_flat: Decimal = Decimal("0"),
        discount_pct: Decimal = Decimal("0"),
        inter_state: bool = False,
        gst_rate: Optional[Decimal] = None,
        bill_date: Optional[date] = None,
        cashier_email: Optional[str] = None,
        customer: Optional[Customer] = None,
        payment_mode: Optional[PaymentMode] = None,
        payment_split: Optional[PaymentSplit] = None,
        notes: Optional[str] = None,
    ) -> Bill:
        """New DRAFT bill with live totals. No invoice number is consumed."""
        lines = tuple(lines)
        discount = DiscountSpec(flat=Decimal(discount_flat), percent=Decimal(discount_pct))
        rate = self.default_gst_rate if gst_rate is None else Decimal(gst_rate)
        totals = compute_bill_totals(lines, discount, inter_state, rate)

        return Bill(
            id=new_bill_id(),
            status=BillStatus.DRAFT,
            lines=lines,
            discount=discount,
            inter_state=inter_state,
            gst_rate=rate,
            totals=totals,
            bill_date=bill_date,
            cashier_email=cashier_email,
            customer=customer,
            payment_mode=payment_mode,
            payment_split=payment_split,
            notes=notes,
            created_at=_utcnow(),
        )

    def update_draft(
        self,
        bill: Bill,
        lines: Optional[Iterable[LineItem]] = None,
        discount_flat: Optional[Decimal] = None,
        discount_pct: Optional[Decimal] = None,
        inter_state: Optional[bool] = None,
        gst_rate: Optional[Decimal] = None,
        bill_date: Optional[date] = None,
        **details,
    ) -> Bill:
        """
        Change the content of a DRAFT bill and recompute its totals.

        Raises:
            InvalidTransitionError: Bill is not a draft
        """
        if bill.status != BillStatus.DRAFT:
            raise InvalidTransitionError(
                bill.id, bill.status.value, "edit lines",
                "final and void invoices are read-only, create a new bill instead",
            )

        new_lines = tuple(lines) if lines is not None else bill.lines
        discount = DiscountSpec(
            flat=bill.discount.flat if discount_flat is None else Decimal(discount_flat),
            percent=bill.discount.percent if discount_pct is None else Decimal(discount_pct),
        )
        new_inter_state = bill.inter_state if inter_state is None else inter_state
        rate = bill.gst_rate if gst_rate is None else Decimal(gst_rate)
        totals = compute_bill_totals(new_lines, discount, new_inter_state, rate)

        update = {
            "lines": new_lines,
            "discount": discount,
            "inter_state": new_inter_state,
            "gst_rate": rate,
            "totals": totals,
        }
        if bill_date is not None:
            update["bill_date"] = bill_date
        update.update(self._detail_update(details))
        return bill.model_copy(update=update)

    def update_details(self, bill: Bill, **details) -> Bill:
        """
        Change customer, payment and note fields.

        Allowed on drafts and on FINAL bills that haven't been printed.

        Raises:
            InvalidTransitionError: Bill is void or already printed
        """
        if bill.status == BillStatus.VOID:
            raise InvalidTransitionError(bill.id, bill.status.value, "edit details")
        if bill.is_printed:
            raise InvalidTransitionError(
                bill.id, bill.status.value, "edit details", "printed invoices are read-only",
            )
        return bill.model_copy(update=self._detail_update(details))

    @staticmethod
    def _detail_update(details: dict) -> dict:
        unknown = set(details) - set(DETAIL_FIELDS)
        if unknown:
            raise BillValidationError(f"Unknown bill fields: {', '.join(sorted(unknown))}")
        return dict(details)

    # ==================== Transitions ====================

    async def finalize(
        self,
        bill: Bill,
        on_date: Optional[date] = None,
        cashier_email: Optional[str] = None,
    ) -> Bill:
        """
        DRAFT → FINAL.

        Totals are recomputed from the lines (client figures are never
        trusted), then one invoice number is taken from the allocator.

        Args:
            bill: Draft to finalize
            on_date: Invoice date; defaults to the bill's date, then today

        Raises:
            InvalidTransitionError: Bill is not a draft
            BillValidationError: No lines, or invalid lines/discount
            LedgerUnavailableError: Numbering could not reconcile; nothing issued
        """
        validate_transition(bill=bill, target_status=BillStatus.FINAL, action="finalize")
        if not bill.lines:
            raise BillValidationError(f"Bill {bill.id} has no items to bill")

        totals = compute_bill_totals(bill.lines, bill.discount, bill.inter_state, bill.gst_rate)
        invoice_date = on_date or bill.bill_date or self._clock()

        serial = await self.allocator.next_serial(invoice_date)

        finalized = bill.model_copy(update={
            "status": BillStatus.FINAL,
            "totals": totals,
            "invoice_serial": serial,
            "bill_date": invoice_date,
            "cashier_email": cashier_email or bill.cashier_email,
            "finalized_at": _utcnow(),
            "ledger_synced": False,
        })
        logger.info(f"Bill {bill.id} finalized as {serial.number}, total {totals.grand_total}")
        return finalized

    async def create_final(self, lines: Iterable[LineItem], **kwargs) -> Bill:
        """Create a bill directly as FINAL (single step checkout)."""
        on_date = kwargs.get("bill_date")
        draft = self.create_draft(lines, **kwargs)
        return await self.finalize(draft, on_date=on_date)

    def mark_printed(self, bill: Bill, printed_at: Optional[datetime] = None) -> Bill:
        """
        Record that a FINAL bill was printed. Idempotent.

        Raises:
            InvalidTransitionError: Bill is not FINAL
        """
        if bill.status != BillStatus.FINAL:
            raise InvalidTransitionError(bill.id, bill.status.value, "print")
        if bill.is_printed:
            return bill
        return bill.model_copy(update={"printed_at": printed_at or _utcnow()})

    def void(self, bill: Bill) -> Bill:
        """
        DRAFT/FINAL → VOID. The invoice number stays consumed.

        Raises:
            InvalidTransitionError: Bill is already void
        """
        validate_transition(bill=bill, target_status=BillStatus.VOID, action="void")
        voided = bill.model_copy(update={"status": BillStatus.VOID, "voided_at": _utcnow()})
        if bill.invoice_serial:
            logger.info(f"Invoice {bill.invoice_serial.number} voided, number not reused")
        return voided
