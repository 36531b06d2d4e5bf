"""Stock Alert Manager - Raises and retracts low stock alerts."""

from stocktrack.engine.clock import Clock, SystemClock
from stocktrack.errors import AlertWriteError, StoreUnavailableError
from stocktrack.models.alert import Alert, AlertTransition
from stocktrack.state.alert_store import AlertStore
from stocktrack.state.base import ItemStore
from stocktrack.utils.logging import EngineLogger


class StockAlertManager:
    """
    Keeps one alert record per item in step with the item's stock.

    Responsibilities:
    - Create an unacknowledged alert when stock drops to the threshold
    - Refresh an active alert while stock stays low
    - Leave an acknowledged alert alone while stock stays low
    - Delete the alert, acknowledged or not, once stock recovers

    Deleting on recovery is what re-arms acknowledgment: the next breach
    finds no record and creates a fresh, unacknowledged one.
    """

    def __init__(
        self,
        items: ItemStore,
        alerts: AlertStore,
        default_threshold: int = 10,
        clock: Clock | None = None,
    ):
        self.items = items
        self.alerts = alerts
        self.default_threshold = default_threshold
        self.clock = clock or SystemClock()
        self.logger = EngineLogger("stock_alert_manager", backend=items.name)

    async def check_and_update_alert(
        self,
        item_id: str,
        quantity: int | None = None,
        name: str | None = None,
        threshold: int | None = None,
    ) -> AlertTransition:
        """
        Evaluate one item and create, refresh, keep or delete its alert.

        Args:
            item_id: Item identifier (also the alert key)
            quantity: Current quantity; looked up if omitted
            name: Display name; looked up if omitted
            threshold: Low stock threshold; looked up if omitted

        Returns:
            The transition applied

        Raises:
            AlertWriteError: if a store read or write failed
        """
        try:
            if quantity is None or name is None or threshold is None:
                item = await self.items.get_one(item_id)
                if item is None:
                    removed = await self.alerts.delete(item_id)
                    self.logger.log_item_skipped(
                        item_id, "item_missing", stale_alert_removed=removed
                    )
                    return AlertTransition.CLEARED if removed else AlertTransition.NONE

                quantity = item.quantity if quantity is None else quantity
                name = item.display_name if name is None else name
                threshold = item.threshold(self.default_threshold) if threshold is None else threshold

            return await self._apply(item_id, quantity, name, threshold)

        except StoreUnavailableError as e:
            self.logger.log_error(str(e), item_id=item_id)
            raise AlertWriteError(item_id, str(e)) from e

    async def _apply(
        self,
        item_id: str,
        quantity: int,
        name: str,
        threshold: int,
    ) -> AlertTransition:
        existing = await self.alerts.get(item_id)

        if quantity > threshold:
            if existing is None:
                return AlertTransition.NONE
            await self.alerts.delete(item_id)
            self.logger.log_alert_transition(
                item_id,
                AlertTransition.CLEARED.value,
                quantity,
                threshold,
                was_acknowledged=existing.acknowledged,
            )
            return AlertTransition.CLEARED

        if existing is not None and existing.acknowledged:
            self.logger.log_alert_transition(
                item_id, AlertTransition.SUPPRESSED.value, quantity, threshold
            )
            return AlertTransition.SUPPRESSED

        alert = Alert(
            item_id=item_id,
            item_name=existing.item_name if existing else name,
            quantity=quantity,
            timestamp=self.clock.now(),
            acknowledged=False,
        )
        written = await self.alerts.upsert(alert)
        if not written:
            # Acknowledged between the read and the write
            transition = AlertTransition.SUPPRESSED
        elif existing is None:
            transition = AlertTransition.CREATED
        else:
            transition = AlertTransition.UPDATED

        self.logger.log_alert_transition(item_id, transition.value, quantity, threshold)
        return transition

    async def acknowledge(self, item_id: str) -> bool:
        """Acknowledge an item's alert; returns False if there is none."""
        try:
            return await self.alerts.acknowledge(item_id)
        except StoreUnavailableError as e:
            raise AlertWriteError(item_id, str(e)) from e
