"""Remittance period and settlement date calculation"""

from datetime import date, datetime, time

from remittance_engine.domain.models import PeriodBounds
from remittance_engine.utils.date_utils import add_business_days, clamp_day, end_of_month, previous_month


def compute_period_bounds(cutoff_day: int, now: datetime) -> PeriodBounds:
    """
    Compute the active remittance period for a contract's cutoff day.

    The cutoff for the current month is clamped to the month's last day and
    treated as the instant at midnight starting that date:
    - `now` after the cutoff: period runs from the cutoff to month end
    - `now` at or before the cutoff: period runs from the previous month's
      (clamped) cutoff to this month's cutoff

    Example (cutoff_day=10):
        2024-03-15 09:00 -> 2024-03-10 .. 2024-03-31
        2024-03-05 09:00 -> 2024-02-10 .. 2024-03-10
        2024-01-05 09:00 -> 2023-12-10 .. 2024-01-10
    """
    cutoff_date = clamp_day(now.year, now.month, cutoff_day)
    cutoff_instant = datetime.combine(cutoff_date, time.min, tzinfo=now.tzinfo)

    if now > cutoff_instant:
        return PeriodBounds(period_start=cutoff_date, period_end=end_of_month(cutoff_date))

    prev_year, prev_month = previous_month(now.year, now.month)
    return PeriodBounds(
        period_start=clamp_day(prev_year, prev_month, cutoff_day),
        period_end=cutoff_date,
    )


def compute_settlement_date(period_end: date, remittance_day: int) -> date:
    """Settlement falls `remittance_day` business days after the period end"""
    return add_business_days(period_end, remittance_day)
