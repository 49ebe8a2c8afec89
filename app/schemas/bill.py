"""Pydantic schemas for POS bills, GST totals and invoice numbers."""
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, computed_field

from app.schemas.base import FrozenSchema, BaseCreateSchema, BaseUpdateSchema


ZERO = Decimal("0.00")


class BillStatus(str, Enum):
    """Bill status enumeration."""
    DRAFT = "DRAFT"
    FINAL = "FINAL"
    VOID = "VOID"


class PaymentMode(str, Enum):
    """Payment modes accepted at the counter."""
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    SPLIT = "SPLIT"


# ==================== Invoice Number ====================

class InvoiceSerial(FrozenSchema):
    """
    Invoice number within a financial year.

    Rendered as "<fiscal_year>/<serial>", serial zero padded,
    e.g. 2025-26/000123.
    """
    fiscal_year: str
    serial: int = Field(..., ge=1)
    padding: int = Field(6, ge=1)

    @computed_field
    @property
    def number(self) -> str:
        return f"{self.fiscal_year}/{str(self.serial).zfill(self.padding)}"

    def __str__(self) -> str:
        return self.number

    @classmethod
    def parse(cls, text: str) -> "InvoiceSerial":
        """Parse "2025-26/000123" back into its parts."""
        fiscal_year, sep, tail = (text or "").strip().partition("/")
        if not sep or not tail.isdigit():
            raise ValueError(f"Invalid invoice number '{text}'")
        return cls(fiscal_year=fiscal_year, serial=int(tail), padding=len(tail))


# ==================== Line Items ====================

class LineItem(FrozenSchema):
    """One billed item. unit_rate is the per-unit price."""
    item_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    variant: Optional[str] = Field(None, max_length=100)
    quantity: int
    unit_rate: Decimal

    @computed_field
    @property
    def amount(self) -> Decimal:
        return Decimal(self.quantity) * self.unit_rate


class DiscountSpec(FrozenSchema):
    """Bill level discount: flat amount plus a percentage of the subtotal."""
    flat: Decimal = ZERO
    percent: Decimal = ZERO


# ==================== Totals ====================

class IntraStateTax(FrozenSchema):
    """Supply within the seller's state: CGST + SGST."""
    kind: Literal["INTRA_STATE"] = "INTRA_STATE"
    cgst: Decimal
    sgst: Decimal


class InterStateTax(FrozenSchema):
    """Supply to another state: IGST only."""
    kind: Literal["INTER_STATE"] = "INTER_STATE"
    igst: Decimal


TaxSplit = Annotated[Union[IntraStateTax, InterStateTax], Field(discriminator="kind")]


class Totals(FrozenSchema):
    """Computed bill totals. Build with app.services.totals_service.compute_totals()."""
    subtotal: Decimal
    discount: Decimal
    taxable_base: Decimal
    tax: TaxSplit
    round_off: Decimal
    grand_total: Decimal

    @computed_field
    @property
    def cgst(self) -> Decimal:
        return self.tax.cgst if isinstance(self.tax, IntraStateTax) else ZERO

    @computed_field
    @property
    def sgst(self) -> Decimal:
        return self.tax.sgst if isinstance(self.tax, IntraStateTax) else ZERO

    @computed_field
    @property
    def igst(self) -> Decimal:
        return self.tax.igst if isinstance(self.tax, InterStateTax) else ZERO

    @property
    def tax_total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


# ==================== Bill ====================

class Customer(FrozenSchema):
    name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=200)


class PaymentSplit(FrozenSchema):
    cash: Optional[Decimal] = Field(None, ge=0)
    card: Optional[Decimal] = Field(None, ge=0)
    upi: Optional[Decimal] = Field(None, ge=0)


class Bill(FrozenSchema):
    """
    A point-of-sale bill.

    DRAFT bills carry no invoice number. FINAL bills carry exactly one,
    and their lines, discount, inter_state flag and GST rate are frozen.
    Once printed_at is set the whole record is frozen except for voiding.
    VOID is terminal and keeps the invoice number it consumed.
    """
    id: str
    status: BillStatus = BillStatus.DRAFT
    lines: Tuple[LineItem, ...] = ()
    discount: DiscountSpec = DiscountSpec()
    inter_state: bool = False
    gst_rate: Decimal
    totals: Totals
    invoice_serial: Optional[InvoiceSerial] = None

    # Counter details
    bill_date: Optional[date] = None
    cashier_email: Optional[str] = None
    customer: Optional[Customer] = None
    payment_mode: Optional[PaymentMode] = None
    payment_split: Optional[PaymentSplit] = None
    notes: Optional[str] = None

    # Timestamps
    created_at: datetime
    finalized_at: Optional[datetime] = None
    printed_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None

    # False while a finalized bill still has to reach the ledger
    ledger_synced: bool = False

    @computed_field
    @property
    def invoice_number(self) -> Optional[str]:
        return self.invoice_serial.number if self.invoice_serial else None

    @property
    def is_printed(self) -> bool:
        return self.printed_at is not None


# ==================== API Schemas ====================

class BillCreate(BaseCreateSchema):
    """Request body for creating a bill (draft or direct final)."""
    lines: List[LineItem] = Field(default_factory=list)
    discount_flat: Decimal = ZERO
    discount_pct: Decimal = ZERO
    inter_state: bool = False
    gst_rate: Optional[Decimal] = None
    bill_date: Optional[date] = None
    cashier_email: Optional[str] = None
    customer: Optional[Customer] = None
    payment_mode: Optional[PaymentMode] = None
    payment_split: Optional[PaymentSplit] = None
    notes: Optional[str] = None


class BillUpdate(BaseUpdateSchema):
    """
    Partial update.

    lines / discount / inter_state / gst_rate / bill_date are draft-only.
    The counter details can also change on an unprinted final bill.
    """
    lines: Optional[List[LineItem]] = None
    discount_flat: Optional[Decimal] = None
    discount_pct: Optional[Decimal] = None
    inter_state: Optional[bool] = None
    gst_rate: Optional[Decimal] = None
    bill_date: Optional[date] = None
    cashier_email: Optional[str] = None
    customer: Optional[Customer] = None
    payment_mode: Optional[PaymentMode] = None
    payment_split: Optional[PaymentSplit] = None
    notes: Optional[str] = None

    def content_changes(self) -> dict:
        fields = {"lines", "discount_flat", "discount_pct", "inter_state", "gst_rate", "bill_date"}
        return {k: getattr(self, k) for k in self.model_fields_set if k in fields}

    def detail_changes(self) -> dict:
        fields = {"cashier_email", "customer", "payment_mode", "payment_split", "notes"}
        return {k: getattr(self, k) for k in self.model_fields_set if k in fields}


class FinalizeRequest(BaseModel):
    """Optional finalize body."""
    cashier_email: Optional[str] = None
    bill_date: Optional[date] = None


class BillListResponse(BaseModel):
    """Response for listing bills."""
    items: List[Bill]
    total: int
