from dataclasses import dataclass
from datetime import date
from typing import Optional

from config import get_settings
from recurrence import month_bounds


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def default_window() -> Period:
    settings = get_settings()
    return Period("all", settings.window_start, settings.window_end)


def resolve_window(
    start: Optional[str],
    end: Optional[str],
    month: Optional[str] = None,
    year: Optional[str] = None,
) -> Period:
    """Turn query parameters into a finite, inclusive date window."""
    fallback = default_window()
    if start or end:
        start_date = date.fromisoformat(start) if start else fallback.start
        end_date = date.fromisoformat(end) if end else fallback.end
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if month or year:
        if not (month and year):
            raise ValueError("Month filter requires both month and year")
        month_value = int(month)
        if not 1 <= month_value <= 12:
            raise ValueError("Month must be between 1 and 12")
        first, last = month_bounds(int(year), month_value)
        return Period("month", first, last)
    return fallback


def overdue_window(period: Period) -> Optional[Period]:
    """Everything before ``period``, for pulling in unpaid earlier occurrences."""
    fallback = default_window()
    if period.start <= fallback.start:
        return None
    return Period("overdue", fallback.start, period.start - date.resolution)
