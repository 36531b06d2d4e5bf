"""Consumption decrement and stock alert engine."""

from stocktrack.engine.alerts import StockAlertManager
from stocktrack.engine.clock import Clock, ManualClock, SystemClock
from stocktrack.engine.decrement import DecrementEngine
from stocktrack.engine.periods import compute_periods_elapsed, validate_rate
from stocktrack.engine.scheduler import Backend, SyncScheduler

__all__ = [
    "Backend",
    "Clock",
    "DecrementEngine",
    "ManualClock",
    "StockAlertManager",
    "SyncScheduler",
    "SystemClock",
    "compute_periods_elapsed",
    "validate_rate",
]
