"""Parse-and-validate step for item records entering the system.

Scanned codes and manual-entry forms hand over loosely shaped data: the
consumption rate may be a phrase ("2 per day", "1 per 3 weeks") or an
object, and a whole record may be JSON or a comma-separated key:value
list. Everything is turned into validated models here so the engine never
sees raw input.
"""

import json
import re
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from stocktrack.errors import MalformedRateError
from stocktrack.models.item import ConsumptionRate, Item, RateUnit

CONSUMPTION_RATE_PATTERN = re.compile(
    r"^(\d+(?:\.\d+)?)\s*(?:per\s*(\d+)?\s*)?(hour|day|week|month)s?$",
    re.IGNORECASE,
)


class InvalidPayloadError(ValueError):
    """Item payload is neither valid JSON nor a usable key:value list."""


class ItemPayload(BaseModel):
    """Parsed item record as supplied by the scan or manual-entry flow."""

    id: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    name: str | None = None
    min_stock_level: int | None = Field(default=None, ge=0)
    reorder_quantity: int | None = Field(default=None, ge=0)
    consumption_rate: ConsumptionRate | None = None

    @property
    def is_simple_update(self) -> bool:
        """Only id and quantity were supplied."""
        return (
            self.name is None
            and self.min_stock_level is None
            and self.reorder_quantity is None
            and self.consumption_rate is None
        )

    def apply_to(self, existing: Item | None, now: datetime) -> Item:
        """Merge into an existing item, or build a new one.

        Supplying a consumption rate restarts consumption from `now`.
        """
        anchor = now if self.consumption_rate is not None else None
        if existing is None:
            return Item(
                id=self.id,
                name=self.name,
                quantity=self.quantity,
                consumption_rate=self.consumption_rate,
                min_stock_level=self.min_stock_level,
                reorder_quantity=self.reorder_quantity,
                last_updated=now,
                last_decremented=anchor,
            )

        changes: dict[str, Any] = {"quantity": self.quantity, "last_updated": now}
        if anchor is not None:
            changes["last_decremented"] = anchor
        for field in ("name", "min_stock_level", "reorder_quantity", "consumption_rate"):
            value = getattr(self, field)
            if value is not None:
                changes[field] = value
        return existing.model_copy(update=changes)


def parse_consumption_rate(raw: str | Mapping[str, Any]) -> ConsumptionRate:
    """Build a validated consumption rate from a phrase or a mapping.

    Raises:
        MalformedRateError: if the input does not describe a positive amount
            per positive period of a known unit.
    """
    if isinstance(raw, str):
        match = CONSUMPTION_RATE_PATTERN.match(raw.strip())
        if not match:
            raise MalformedRateError(f"Unrecognized consumption rate: {raw!r}")
        amount = float(match.group(1))
        period = int(match.group(2)) if match.group(2) else 1
        unit = match.group(3).lower()

    elif isinstance(raw, Mapping):
        try:
            amount = float(raw["amount"])
            period_raw = raw.get("period")
            period = 1 if period_raw in (None, "") else int(period_raw)
            unit = str(raw["unit"]).strip().lower()
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedRateError(f"Invalid consumption rate object: {raw!r}") from e

        # Plural units are accepted the same way the phrase form accepts them
        if unit.endswith("s") and unit[:-1] in {u.value for u in RateUnit}:
            unit = unit[:-1]

    else:
        raise MalformedRateError(f"Unsupported consumption rate type: {type(raw).__name__}")

    rate = ConsumptionRate(amount=amount, period=period, unit=unit)
    if not rate.is_valid:
        raise MalformedRateError(
            f"Consumption rate must have positive amount and period and a known unit: {raw!r}"
        )
    return rate


def parse_item_payload(text: str) -> ItemPayload:
    """Parse a scanned or typed item record.

    JSON objects are tried first; anything else is read as
    `key:value,key:value`. `id` and quantity are required, and a rate that
    is present but unparsable rejects the whole record.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        data = None

    if isinstance(data, dict):
        return _payload_from_json(data)
    return _payload_from_pairs(text)


def _is_whole_number(value: Any) -> bool:
    # JSON true/false decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)


def _payload_from_json(data: dict[str, Any]) -> ItemPayload:
    if not data.get("id") or not _is_whole_number(data.get("quantity")):
        raise InvalidPayloadError("Missing required fields (id, quantity) in JSON.")

    fields: dict[str, Any] = {"id": str(data["id"]), "quantity": data["quantity"]}

    if data.get("name"):
        fields["name"] = str(data["name"])
    for key, target in (
        ("minStockLevel", "min_stock_level"),
        ("min_stock_level", "min_stock_level"),
        ("reorderQuantity", "reorder_quantity"),
        ("reorder_quantity", "reorder_quantity"),
    ):
        if _is_whole_number(data.get(key)):
            fields[target] = data[key]

    raw_rate = data.get("consumptionRate", data.get("consumption_rate"))
    if raw_rate:
        try:
            fields["consumption_rate"] = parse_consumption_rate(raw_rate)
        except MalformedRateError as e:
            raise InvalidPayloadError(str(e)) from e

    return _build_payload(fields)


def _payload_from_pairs(text: str) -> ItemPayload:
    fields: dict[str, Any] = {}
    rate_error: str | None = None

    for part in text.split(","):
        key, _, value = part.partition(":")
        key = key.strip().lower()
        value = value.strip()
        if not key or not value:
            continue

        if key == "id":
            fields["id"] = value
        elif key in ("qty", "quantity"):
            if value.isdigit():
                fields["quantity"] = int(value)
        elif key == "name":
            fields["name"] = value
        elif key == "minstocklevel":
            if value.isdigit():
                fields["min_stock_level"] = int(value)
        elif key == "reorderquantity":
            if value.isdigit():
                fields["reorder_quantity"] = int(value)
        elif key in ("rate", "consumptionrate"):
            try:
                fields["consumption_rate"] = parse_consumption_rate(value)
            except MalformedRateError as e:
                rate_error = str(e)

    if "id" not in fields or "quantity" not in fields:
        raise InvalidPayloadError(
            'Invalid item format. Need JSON or at minimum "id:_,qty:_" format.'
        )
    if rate_error:
        raise InvalidPayloadError(rate_error)

    return _build_payload(fields)


def _build_payload(fields: dict[str, Any]) -> ItemPayload:
    try:
        return ItemPayload(**fields)
    except ValidationError as e:
        raise InvalidPayloadError(str(e)) from e
