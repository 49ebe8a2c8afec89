"""
Financial Year Helpers

Indian financial year: April to March
- Mar 2026 → FY 2025-26
- Apr 2026 → FY 2026-27

Labels are always derived from a date. The only place a label is taken
as input is the administrative override on the invoice sequence, which
is checked with validate_financial_year().
"""

import re
from datetime import date
from typing import Tuple

FY_START_MONTH = 4  # April

_FY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def financial_year_label(on_date: date) -> str:
    """
    Get the financial year label for a date.

    Args:
        on_date: Any calendar date

    Returns:
        Financial year string, e.g. "2025-26"
    """
    if on_date.month >= FY_START_MONTH:
        start_year = on_date.year
    else:
        start_year = on_date.year - 1

    return f"{start_year}-{(start_year + 1) % 100:02d}"


def validate_financial_year(label: str) -> str:
    """
    Check that a label is a well formed YYYY-YY financial year.

    The suffix must be the year after the start year, so "2025-26" is
    accepted and "2025-27" is not.

    Raises:
        ValueError: If the label is malformed
    """
    match = _FY_PATTERN.match((label or "").strip())
    if not match:
        raise ValueError(f"Invalid financial year '{label}'. Expected format YYYY-YY, e.g. 2025-26")

    start_year = int(match.group(1))
    suffix = int(match.group(2))
    if suffix != (start_year + 1) % 100:
        raise ValueError(
            f"Invalid financial year '{label}': suffix must be {(start_year + 1) % 100:02d}"
        )
    return match.group(0)


def financial_year_bounds(label: str) -> Tuple[date, date]:
    """First and last day (inclusive) of a financial year."""
    start_year = int(validate_financial_year(label)[:4])
    return date(start_year, FY_START_MONTH, 1), date(start_year + 1, FY_START_MONTH - 1, 31)
