"""
Calendar month periods used by period locking and lock-status reports.

Months are written ``YYYY-MM``.  ``month_bounds`` returns the first and last
calendar day, both inclusive.
"""

import calendar
import re
from datetime import date

from operator_kernel.exceptions import InvalidPeriodError

_MONTH_PATTERN = re.compile(r"(\d{4})-(\d{2})")


def month_bounds(month: str) -> tuple[date, date]:
    """
    First and last day of ``month``.

    Raises:
        InvalidPeriodError: ``month`` is not ``YYYY-MM`` or the month number
            is outside 1..12.
    """
    match = _MONTH_PATTERN.fullmatch(month or "")
    if match is None:
        raise InvalidPeriodError(month)
    year, month_number = int(match.group(1)), int(match.group(2))
    if not 1 <= month_number <= 12 or year < 1:
        raise InvalidPeriodError(month)
    last_day = calendar.monthrange(year, month_number)[1]
    return date(year, month_number, 1), date(year, month_number, last_day)


def month_key(day: date) -> str:
    """``YYYY-MM`` of a date."""
    return f"{day.year:04d}-{day.month:02d}"


def same_month(left: date, right: date) -> bool:
    return left.year == right.year and left.month == right.month
