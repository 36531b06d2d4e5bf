"""Result models for decrement passes and sync runs."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AffectedItem(BaseModel):
    """Item whose quantity changed in a pass."""

    id: str
    name: str | None = None
    new_quantity: int


class BatchWriteResult(BaseModel):
    """Per-item outcome of an `upsert_many` call."""

    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    stale: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class DecrementResult(BaseModel):
    """Outcome of one decrement pass over a backend."""

    backend: str
    updated_count: int = 0
    affected_items: list[AffectedItem] = Field(default_factory=list)
    skipped: dict[str, str] = Field(default_factory=dict)
    failed_item_ids: list[str] = Field(default_factory=list)
    alert_failures: dict[str, str] = Field(default_factory=dict)
    mirrored_count: int = 0
    trace: dict[str, Any] = Field(default_factory=dict)

    @property
    def touched_items(self) -> bool:
        return self.updated_count > 0


class Collection(str, Enum):
    """Logical collections a UI layer caches."""

    LOCAL_PRODUCTS = "localProducts"
    LOCAL_NOTIFICATIONS = "localNotifications"
    PRODUCTS = "products"
    NOTIFICATIONS = "notifications"


class CacheInvalidation(BaseModel):
    """Outbound signal naming the collections a pass changed."""

    backend: str
    collections: list[Collection]


class BackendRunStatus(str, Enum):
    """What happened to a backend in one sync invocation."""

    COMPLETED = "completed"
    SKIPPED_RECENT = "skipped_recent"
    BACKING_OFF = "backing_off"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class SyncReport(BaseModel):
    """Outcome of one scheduler invocation."""

    reason: str
    started_at: datetime
    dropped: bool = False
    statuses: dict[str, BackendRunStatus] = Field(default_factory=dict)
    results: dict[str, DecrementResult] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)
