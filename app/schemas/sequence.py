"""Pydantic schemas for the invoice number sequence."""
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.fiscal_year import validate_financial_year
from app.schemas.base import FrozenSchema


class SequenceState(FrozenSchema):
    """Snapshot of the in-memory invoice counter."""
    current_fiscal_year: Optional[str] = None
    last_issued_serial: int = 0
    override_fiscal_year: Optional[str] = None


class CounterUpdate(BaseModel):
    """
    Administrative counter changes.

    Applied in order: financial_year override, next_serial, reset.
    """
    financial_year: Optional[str] = Field(None, description="Pin numbering to this FY, e.g. 2025-26")
    next_serial: Optional[int] = Field(None, description="Force the next issued serial")
    reset: bool = False

    @field_validator('financial_year')
    @classmethod
    def check_financial_year(cls, v):
        if v is not None:
            return validate_financial_year(v)
        return v

    @model_validator(mode='after')
    def require_change(self):
        if self.financial_year is None and self.next_serial is None and not self.reset:
            raise ValueError("Nothing to change: give financial_year, next_serial or reset")
        return self


class CounterResponse(BaseModel):
    """Counter state plus a non-binding preview of the next invoice number."""
    current_fiscal_year: Optional[str] = None
    last_issued_serial: int
    override_fiscal_year: Optional[str] = None
    next_invoice_number: str
