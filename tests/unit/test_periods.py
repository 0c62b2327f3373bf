"""Unit tests for remittance period and settlement date calculation"""

from datetime import date, datetime, timezone
from remittance_engine.domain.periods import compute_period_bounds, compute_settlement_date


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_after_cutoff_runs_to_month_end():
    """Test now past the cutoff opens cutoff -> end of month"""
    bounds = compute_period_bounds(10, utc(2024, 3, 15, 9, 0))
    assert bounds.period_start == date(2024, 3, 10)
    assert bounds.period_end == date(2024, 3, 31)


def test_before_cutoff_runs_from_previous_month():
    """Test now before the cutoff spans previous cutoff -> this cutoff"""
    bounds = compute_period_bounds(10, utc(2024, 3, 5, 9, 0))
    assert bounds.period_start == date(2024, 2, 10)
    assert bounds.period_end == date(2024, 3, 10)


def test_exactly_at_cutoff_instant_is_not_after():
    """Test midnight on the cutoff date still belongs to the closing period"""
    bounds = compute_period_bounds(10, utc(2024, 3, 10, 0, 0))
    assert bounds.period_start == date(2024, 2, 10)
    assert bounds.period_end == date(2024, 3, 10)


def test_later_on_cutoff_day_is_after():
    bounds = compute_period_bounds(10, utc(2024, 3, 10, 0, 1))
    assert bounds.period_start == date(2024, 3, 10)
    assert bounds.period_end == date(2024, 3, 31)


def test_january_rolls_back_into_december():
    """Test the previous-month cutoff crosses the year boundary"""
    bounds = compute_period_bounds(10, utc(2024, 1, 5, 9, 0))
    assert bounds.period_start == date(2023, 12, 10)
    assert bounds.period_end == date(2024, 1, 10)


def test_december_after_cutoff_stays_in_year():
    bounds = compute_period_bounds(10, utc(2023, 12, 20, 9, 0))
    assert bounds.period_start == date(2023, 12, 10)
    assert bounds.period_end == date(2023, 12, 31)


def test_cutoff_clamped_to_short_month():
    """Test cutoff_day=31 clamps to Feb 29 in a leap year"""
    bounds = compute_period_bounds(31, utc(2024, 2, 15, 9, 0))
    assert bounds.period_start == date(2024, 1, 31)
    assert bounds.period_end == date(2024, 2, 29)


def test_previous_month_cutoff_clamped():
    """Test the previous month's cutoff is clamped too (Feb 2023 has 28 days)"""
    bounds = compute_period_bounds(30, utc(2023, 3, 15, 9, 0))
    assert bounds.period_start == date(2023, 2, 28)
    assert bounds.period_end == date(2023, 3, 30)


def test_settlement_date_skips_weekend():
    """Test Sunday period end + 5 business days lands on Friday"""
    assert compute_settlement_date(date(2024, 3, 31), 5) == date(2024, 4, 5)


def test_settlement_date_from_friday():
    assert compute_settlement_date(date(2024, 3, 29), 1) == date(2024, 4, 1)


def test_settlement_date_zero_days():
    assert compute_settlement_date(date(2024, 3, 31), 0) == date(2024, 3, 31)
