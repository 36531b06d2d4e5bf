"""Error taxonomy for the decrement and stock alert engine."""


class StockTrackError(Exception):
    """Base class for engine errors."""


class MalformedRateError(StockTrackError):
    """Consumption rate has a non-positive amount/period or an unknown unit."""


class StoreUnavailableError(StockTrackError):
    """A backend store cannot be reached or is not configured."""

    def __init__(self, backend: str, reason: str = "store unavailable"):
        super().__init__(f"{backend}: {reason}")
        self.backend = backend
        self.reason = reason


class PartialBatchWriteError(StockTrackError):
    """Some staged writes in a batch did not persist."""

    def __init__(self, backend: str, failures: dict[str, str]):
        super().__init__(
            f"{backend}: {len(failures)} item write(s) failed: {sorted(failures)}"
        )
        self.backend = backend
        self.failures = failures


class AlertWriteError(StockTrackError):
    """Creating, updating or deleting an alert record failed."""

    def __init__(self, item_id: str, reason: str):
        super().__init__(f"alert write failed for {item_id}: {reason}")
        self.item_id = item_id
        self.reason = reason


class StaleItemError(StockTrackError):
    """The item vanished between listing and update."""

    def __init__(self, item_id: str):
        super().__init__(f"item {item_id} no longer exists")
        self.item_id = item_id
