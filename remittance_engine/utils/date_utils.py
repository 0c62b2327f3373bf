"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta


def last_day_of_month(year: int, month: int) -> int:
    """Number of days in the given month"""
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, pulling `day` back to the month's last day when the month is shorter"""
    return date(year, month, min(day, last_day_of_month(year, month)))


def end_of_month(value: date) -> date:
    return date(value.year, value.month, last_day_of_month(value.year, value.month))


def previous_month(year: int, month: int) -> tuple[int, int]:
    """(year, month) of the month before, rolling January back into December"""
    if month == 1:
        return year - 1, 12
    return year, month - 1


def is_weekend(value: date) -> bool:
    return value.weekday() >= 5


def add_business_days(from_date: date, days: int) -> date:
    """
    Add business days to a date, skipping Saturdays and Sundays.

    Holidays are not modelled. Zero days returns the date unchanged,
    even when it falls on a weekend.

    Example:
        Friday 2024-03-29 + 1 business day -> Monday 2024-04-01
    """
    result = from_date
    added = 0
    while added < days:
        result += timedelta(days=1)
        if not is_weekend(result):
            added += 1
    return result
