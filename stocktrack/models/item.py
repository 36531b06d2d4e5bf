"""Inventory item and consumption rate models."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class RateUnit(str, Enum):
    """Time units a consumption rate can repeat over."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def hours(self) -> float:
        """Length of one unit in hours.

        A month is the average Gregorian month (30.4375 days), not a
        calendar month, so month-based rates drift slightly against the
        calendar.
        """
        return _UNIT_HOURS[self]


_UNIT_HOURS: dict[RateUnit, float] = {
    RateUnit.HOUR: 1.0,
    RateUnit.DAY: 24.0,
    RateUnit.WEEK: 168.0,
    RateUnit.MONTH: 730.5,
}


class ConsumptionRate(BaseModel):
    """Depletion speed: `amount` consumed every `period` x `unit`.

    Stored records are loaded as-is so that malformed rates can be detected
    and skipped by the engine; `utils.parsing.parse_consumption_rate` is the
    strict constructor used at the system boundary.
    """

    amount: float
    period: int = 1
    unit: str

    @property
    def rate_unit(self) -> RateUnit | None:
        """The recognized unit, or None if the stored unit is unknown."""
        try:
            return RateUnit(self.unit.lower())
        except ValueError:
            return None

    @property
    def is_valid(self) -> bool:
        return self.amount > 0 and self.period > 0 and self.rate_unit is not None

    def describe(self) -> str:
        """Human-readable form, e.g. '2 per 3 days'."""
        amount = int(self.amount) if float(self.amount).is_integer() else self.amount
        if self.period == 1:
            return f"{amount} per {self.unit}"
        return f"{amount} per {self.period} {self.unit}s"


class Item(BaseModel):
    """Tracked inventory item."""

    id: str = Field(min_length=1)
    name: str | None = None
    quantity: int = Field(ge=0)
    consumption_rate: ConsumptionRate | None = None
    min_stock_level: int | None = Field(default=None, ge=0)
    reorder_quantity: int | None = Field(default=None, ge=0)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_decremented: datetime | None = None

    def threshold(self, default: int) -> int:
        """Low stock threshold for this item."""
        return self.min_stock_level if self.min_stock_level is not None else default

    @property
    def is_consumable(self) -> bool:
        """Eligible for a decrement pass: has a rate and stock left."""
        return self.consumption_rate is not None and self.quantity > 0

    @property
    def display_name(self) -> str:
        return self.name or self.id


class ItemUpdate(BaseModel):
    """Staged write produced by a decrement pass.

    `quantity` and `last_updated` are None for a timestamp-only update that
    just advances the elapsed-time anchor.
    """

    item_id: str
    last_decremented: datetime
    quantity: int | None = Field(default=None, ge=0)
    last_updated: datetime | None = None

    @property
    def changes_quantity(self) -> bool:
        return self.quantity is not None
