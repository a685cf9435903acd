"""
Period helpers. A period is a calendar month keyed as 'YYYY-MM'.
"""

import calendar
import re
from datetime import date, timedelta

from .errors import ValidationError

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def parse_period(period: str) -> tuple[int, int]:
    """Return (year, month). Raises ValidationError for anything but YYYY-MM."""
    match = PERIOD_PATTERN.match(period or "")
    if not match:
        raise ValidationError(f"Invalid period: {period}. Expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid period month: {period}")
    return year, month


def period_bounds(period: str) -> tuple[date, date]:
    """First and last calendar day of the period."""
    year, month = parse_period(period)
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def period_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def previous_period(period: str) -> str:
    start, _ = period_bounds(period)
    return period_of(start - timedelta(days=1))


def iter_days(start: date, end: date):
    """Every calendar day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
