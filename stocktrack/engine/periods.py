"""Whole-period elapsed time computation for consumption rates."""

import math
from datetime import datetime

from stocktrack.engine.clock import EPOCH, ensure_aware
from stocktrack.errors import MalformedRateError
from stocktrack.models.item import ConsumptionRate
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600


def validate_rate(rate: ConsumptionRate) -> None:
    """Raise MalformedRateError unless amount and period are positive and the unit is known."""
    if rate.amount <= 0:
        raise MalformedRateError(f"Consumption amount must be positive, got {rate.amount}")
    if rate.period <= 0:
        raise MalformedRateError(f"Consumption period must be positive, got {rate.period}")
    if rate.rate_unit is None:
        raise MalformedRateError(f"Unknown consumption unit {rate.unit!r}")


def compute_periods_elapsed(
    rate: ConsumptionRate,
    last_applied_at: datetime | None,
    now: datetime,
) -> int:
    """Number of whole rate periods between `last_applied_at` and `now`.

    The delta is truncated to whole hours before dividing by the period
    length, and the quotient is floored: partial periods are left to
    accumulate until a later evaluation. A missing anchor counts from the
    epoch. Malformed rates and non-advancing clocks yield 0.
    """
    try:
        validate_rate(rate)
    except MalformedRateError as e:
        logger.warning("malformed_rate_ignored", error=str(e))
        return 0

    anchor = ensure_aware(last_applied_at) if last_applied_at else EPOCH
    now = ensure_aware(now)
    if now <= anchor:
        return 0

    hours = math.floor((now - anchor).total_seconds() / SECONDS_PER_HOUR)
    period_hours = rate.period * rate.rate_unit.hours
    return math.floor(hours / period_hours)
