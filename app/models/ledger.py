"""
Ledger Model - System of Record for Finalized Invoices

One row per invoice number. Rows are written after a bill is
finalized and are never deleted; voiding only flips the status.

FORMAT:
━━━━━━━
• invoice_number: 2025-26/000123
• fiscal_year:    2025-26
• serial:         123
"""
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, Date, Numeric, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class LedgerInvoice(Base):
    """Finalized invoice row in the ledger."""
    __tablename__ = "ledger_invoices"
    __table_args__ = (
        UniqueConstraint("fiscal_year", "serial", name="uq_ledger_fy_serial"),
    )

    invoice_number: Mapped[str] = mapped_column(
        String(30),
        primary_key=True,
        comment="Unique invoice number e.g., 2025-26/000001"
    )
    fiscal_year: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="e.g., 2025-26"
    )
    serial: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )
    bill_id: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="FINAL",
        nullable=False,
        comment="FINAL, VOID"
    )
    bill_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True
    )
    is_interstate: Mapped[bool] = mapped_column(
        Boolean,
        default=False
    )

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    round_off: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=0)
    grand_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    # Full bill as finalized
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Timestamps
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    voided_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    written_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<LedgerInvoice({self.invoice_number}: {self.status})>"
