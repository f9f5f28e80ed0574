"""Calendar arithmetic for monthly series.

Every occurrence date is built with ``clamped_date`` so that a series billed
on the 31st lands on the last day of shorter months instead of spilling into
the next one.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from config import get_settings


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def last_day_of_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def clamped_date(year: int, month: int, preferred_day: int) -> date:
    day = min(preferred_day, last_day_of_month(year, month))
    return date(year, month, day)


def shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    total_months = month - 1 + offset
    return year + total_months // 12, total_months % 12 + 1


def occurrence_date(start: date, day_of_month: int, index: int) -> date:
    """Date of the ``index``-th monthly occurrence (0-based) after ``start``."""
    year, month = shift_month(start.year, start.month, index)
    return clamped_date(year, month, day_of_month)


def months_between(start: date, target: date) -> int:
    return (target.year - start.year) * 12 + (target.month - start.month)


def occurrence_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, last_day_of_month(year, month))


def installment_end_date(start: date, installments: int, day_of_month: int) -> date:
    return occurrence_date(start, day_of_month, installments - 1)
