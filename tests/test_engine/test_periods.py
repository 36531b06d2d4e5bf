"""Tests for whole-period elapsed time computation."""

from datetime import datetime, timedelta

import pytest

from stocktrack.engine.clock import EPOCH
from stocktrack.engine.periods import compute_periods_elapsed, validate_rate
from stocktrack.errors import MalformedRateError
from stocktrack.models.item import ConsumptionRate

from conftest import T0


def rate(amount: float = 1, period: int = 1, unit: str = "day") -> ConsumptionRate:
    return ConsumptionRate(amount=amount, period=period, unit=unit)


def test_partial_period_is_floored() -> None:
    """2.9 days of a daily rate count as 2 periods."""
    now = T0 + timedelta(days=2.9)

    assert compute_periods_elapsed(rate(amount=2), T0, now) == 2


def test_delta_truncated_to_whole_hours() -> None:
    """47h59m is 47 whole hours, so one day has elapsed, not two."""
    now = T0 + timedelta(hours=47, minutes=59)

    assert compute_periods_elapsed(rate(), T0, now) == 1


@pytest.mark.parametrize(
    "unit,delta,expected",
    [
        ("hour", timedelta(hours=5, minutes=30), 5),
        ("day", timedelta(days=3), 3),
        ("week", timedelta(days=20), 2),
        ("month", timedelta(hours=730), 0),
        ("month", timedelta(hours=731), 1),
    ],
)
def test_unit_lengths(unit: str, delta: timedelta, expected: int) -> None:
    assert compute_periods_elapsed(rate(unit=unit), T0, T0 + delta) == expected


def test_multi_unit_period() -> None:
    """'1 per 3 days' needs three full days per period."""
    every_three_days = rate(period=3)

    assert compute_periods_elapsed(every_three_days, T0, T0 + timedelta(days=5)) == 1
    assert compute_periods_elapsed(every_three_days, T0, T0 + timedelta(days=6)) == 2


def test_unit_is_case_insensitive() -> None:
    assert compute_periods_elapsed(rate(unit="Day"), T0, T0 + timedelta(days=1)) == 1


def test_missing_anchor_counts_from_epoch() -> None:
    now = EPOCH + timedelta(days=10, hours=3)

    assert compute_periods_elapsed(rate(), None, now) == 10


def test_naive_datetimes_treated_as_utc() -> None:
    naive_anchor = datetime(2024, 3, 1, 8, 0)

    assert compute_periods_elapsed(rate(), naive_anchor, T0 + timedelta(days=1)) == 1


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(hours=-5)])
def test_clock_not_advancing_yields_zero(offset: timedelta) -> None:
    assert compute_periods_elapsed(rate(), T0, T0 + offset) == 0


@pytest.mark.parametrize(
    "bad_rate",
    [
        rate(amount=0),
        rate(amount=-1),
        rate(period=0),
        rate(unit="fortnight"),
    ],
)
def test_malformed_rate_yields_zero(bad_rate: ConsumptionRate) -> None:
    assert compute_periods_elapsed(bad_rate, T0, T0 + timedelta(days=365)) == 0


def test_validate_rate_names_the_problem() -> None:
    with pytest.raises(MalformedRateError, match="unit"):
        validate_rate(rate(unit="fortnight"))

    with pytest.raises(MalformedRateError, match="period"):
        validate_rate(rate(period=-2))

    validate_rate(rate(amount=0.5, period=2, unit="week"))
