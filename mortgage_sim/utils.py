"""Utility functions for the mortgage simulator.

This module provides helpers for parsing user input into Python data types and
for handling dates: adding months and years, stepping through repayment
periods of different frequencies and normalizing date strings to
``datetime.date`` instances.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, getcontext
from typing import Optional

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")

PERIODS_PER_YEAR = {"monthly": 12, "fortnightly": 26, "weekly": 52}
DAYS_PER_PERIOD = {"fortnightly": 14, "weekly": 7}


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` or ``YYYY-MM`` string into a ``date``.

    A bare year-month is normalized to the first day of that month.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) not in (2, 3):
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        day = int(parts[2]) if len(parts) == 3 else 1
        return date(year, month, day)
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_years(dt: date, years: int) -> date:
    """Return ``dt`` moved by whole years; Feb 29 clamps to Feb 28."""
    return add_months(dt, years * 12)


def months_between(start: Optional[date], end: Optional[date]) -> int:
    """Number of calendar-month boundaries between two dates (0 if either is missing)."""
    if start is None or end is None:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month)


def periods_per_year(frequency: str) -> int:
    return PERIODS_PER_YEAR.get((frequency or "monthly").lower(), 12)


def period_date(repayment_start: date, frequency: str, period: int) -> date:
    """Date of the given 1-based period counted from ``repayment_start``."""
    if frequency == "monthly":
        return add_months(repayment_start, period - 1)
    return repayment_start + timedelta(days=(period - 1) * DAYS_PER_PERIOD[frequency])


def round_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = str(value).replace(",", "").strip()
        result = Decimal(cleaned)
    except Exception as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc
    if not result.is_finite():
        raise ValueError(f"Invalid numeric value: {value}")
    return result


def format_currency(value: Decimal) -> str:
    """Whole-dollar currency text used in ledger notes, e.g. ``$1,250``."""
    return f"${value:,.0f}"
