"""Low stock alert model."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class AlertTransition(str, Enum):
    """Outcome of evaluating an item against its low stock threshold."""

    CREATED = "created"
    UPDATED = "updated"
    SUPPRESSED = "suppressed"
    CLEARED = "cleared"
    NONE = "none"


class Alert(BaseModel):
    """Persisted low stock alert, keyed by the owning item's id."""

    id: str = ""
    item_id: str
    item_name: str
    quantity: int
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    acknowledged: bool = False

    @model_validator(mode="after")
    def _key_by_item(self) -> "Alert":
        # One alert per item: the alert key is always the item id.
        self.id = self.item_id
        return self
