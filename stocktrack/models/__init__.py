"""Data models for the stock tracking engine."""

from stocktrack.models.alert import Alert, AlertTransition
from stocktrack.models.item import ConsumptionRate, Item, ItemUpdate, RateUnit
from stocktrack.models.sync import (
    AffectedItem,
    BackendRunStatus,
    BatchWriteResult,
    CacheInvalidation,
    Collection,
    DecrementResult,
    SyncReport,
)

__all__ = [
    # Alert
    "Alert",
    "AlertTransition",
    # Item
    "ConsumptionRate",
    "Item",
    "ItemUpdate",
    "RateUnit",
    # Sync
    "AffectedItem",
    "BackendRunStatus",
    "BatchWriteResult",
    "CacheInvalidation",
    "Collection",
    "DecrementResult",
    "SyncReport",
]
