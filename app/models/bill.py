"""Working copy of every bill, drafts included."""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class BillRecord(Base):
    """
    Stored bill.

    The bill itself lives in payload; the other columns are copies used
    for lookup and filtering.
    """
    __tablename__ = "bills"

    id: Mapped[str] = mapped_column(
        String(40),
        primary_key=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="DRAFT",
        nullable=False,
        index=True,
        comment="DRAFT, FINAL, VOID"
    )
    invoice_number: Mapped[Optional[str]] = mapped_column(
        String(30),
        unique=True,
        nullable=True,
        index=True
    )
    ledger_synced: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<BillRecord({self.id}: {self.status})>"
