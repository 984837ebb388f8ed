"""
``YYYY-MM`` month tokens, shared by the API queries and the client's list state.
"""

from datetime import date
from typing import Optional, Tuple


def add_months(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(month: Optional[str]) -> Optional[Tuple[date, Optional[date]]]:
    """
    Turn a ``YYYY-MM`` token into the half-open range
    ``[first day of month, first day of next month)``.

    Returns None for a missing or malformed token so callers can skip the
    month restriction instead of failing the request. The end is None for
    December 9999, which has no representable next month.
    """
    if not month:
        return None

    parts = month.strip().split("-")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return None

    year, mon = int(parts[0]), int(parts[1])
    if not 1 <= mon <= 12:
        return None

    try:
        start = date(year, mon, 1)
    except ValueError:
        return None

    next_year, next_mon = add_months(year, mon, 1)
    if next_year > date.max.year:
        return start, None
    return start, date(next_year, next_mon, 1)


def in_month(day: date, bounds: Optional[Tuple[date, Optional[date]]]) -> bool:
    """True when ``day`` falls inside ``bounds``; no bounds means no restriction."""
    if bounds is None:
        return True
    start, end = bounds
    return day >= start and (end is None or day < end)
