"""
GST Totals Calculation

Pure functions, no I/O. Same inputs always give the same Totals.

Flow:
1. Subtotal     = Σ quantity × unit_rate
2. Discount     = flat + subtotal × pct / 100, capped at the subtotal
3. Taxable base = subtotal - discount
4. GST on the taxable base:
   - Inter-state: IGST = full tax
   - Intra-state: CGST + SGST, half each; an odd paisa goes to CGST
5. Grand total rounded to the nearest rupee, round-off = difference
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from app.core.exceptions import BillValidationError
from app.schemas.bill import (
    DiscountSpec, InterStateTax, IntraStateTax, LineItem, Totals,
)

PAISA = Decimal("0.01")
RUPEE = Decimal("1")
HUNDRED = Decimal("100")


def _money(value: Decimal) -> Decimal:
    return value.quantize(PAISA, rounding=ROUND_HALF_UP)


def validate_lines(lines: Iterable[LineItem]) -> None:
    """Reject non-positive quantities and negative rates."""
    for line in lines:
        if isinstance(line.quantity, bool) or line.quantity <= 0:
            raise BillValidationError(f"Quantity for '{line.name}' must be a positive integer")
        if line.unit_rate < 0:
            raise BillValidationError(f"Rate for '{line.name}' cannot be negative")


def validate_discount(discount_flat: Decimal, discount_pct: Decimal) -> None:
    if discount_flat < 0:
        raise BillValidationError("Flat discount cannot be negative")
    if discount_pct < 0 or discount_pct > HUNDRED:
        raise BillValidationError("Discount percentage must be between 0 and 100")


def split_intra_state(tax: Decimal) -> IntraStateTax:
    """Split tax into CGST/SGST halves; CGST absorbs the remainder."""
    sgst = (tax / 2).quantize(PAISA, rounding=ROUND_DOWN)
    return IntraStateTax(cgst=tax - sgst, sgst=sgst)


def round_grand_total(taxable_base: Decimal, tax: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Round to whole rupees.

    Returns:
        (grand_total, round_off), round_off in (-0.50, 0.50]
    """
    raw_total = taxable_base + tax
    grand_total = raw_total.quantize(RUPEE, rounding=ROUND_HALF_UP).quantize(PAISA)
    return grand_total, _money(grand_total - raw_total)


def compute_totals(
    lines: Iterable[LineItem],
    discount_flat: Decimal = Decimal("0"),
    discount_pct: Decimal = Decimal("0"),
    inter_state: bool = False,
    gst_rate: Decimal = Decimal("18"),
) -> Totals:
    """
    Compute bill totals.

    Args:
        lines: Billed items
        discount_flat: Flat discount in rupees
        discount_pct: Percentage discount on the subtotal, 0-100
        inter_state: True for IGST, False for CGST + SGST
        gst_rate: GST rate in percent, e.g. 18

    Returns:
        Totals with every amount in paise precision

    Raises:
        BillValidationError: On bad quantities, rates or discounts
    """
    lines = tuple(lines)
    discount_flat = Decimal(discount_flat)
    discount_pct = Decimal(discount_pct)
    gst_rate = Decimal(gst_rate)

    validate_lines(lines)
    validate_discount(discount_flat, discount_pct)
    if gst_rate < 0:
        raise BillValidationError("GST rate cannot be negative")

    subtotal = _money(sum((line.amount for line in lines), Decimal("0")))

    discount = _money(discount_flat + subtotal * discount_pct / HUNDRED)
    if discount > subtotal:
        discount = subtotal

    taxable_base = subtotal - discount

    tax = _money(taxable_base * gst_rate / HUNDRED)
    if inter_state:
        tax_split = InterStateTax(igst=tax)
    else:
        tax_split = split_intra_state(tax)

    grand_total, round_off = round_grand_total(taxable_base, tax)

    return Totals(
        subtotal=subtotal,
        discount=discount,
        taxable_base=taxable_base,
        tax=tax_split,
        round_off=round_off,
        grand_total=grand_total,
    )


def compute_bill_totals(
    lines: Iterable[LineItem],
    discount: Optional[DiscountSpec],
    inter_state: bool,
    gst_rate: Decimal,
) -> Totals:
    """compute_totals() for a DiscountSpec."""
    discount = discount or DiscountSpec()
    return compute_totals(
        lines,
        discount_flat=discount.flat,
        discount_pct=discount.percent,
        inter_state=inter_state,
        gst_rate=gst_rate,
    )
