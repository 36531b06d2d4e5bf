"""Decrement Engine - Applies elapsed consumption to stored quantities."""

import math
from datetime import datetime

from stocktrack.engine.alerts import StockAlertManager
from stocktrack.engine.clock import Clock, SystemClock, ensure_aware
from stocktrack.engine.periods import compute_periods_elapsed, validate_rate
from stocktrack.errors import (
    MalformedRateError,
    PartialBatchWriteError,
    StockTrackError,
)
from stocktrack.models.item import Item, ItemUpdate
from stocktrack.models.sync import AffectedItem, BatchWriteResult, DecrementResult
from stocktrack.state.base import ItemStore
from stocktrack.utils.logging import EngineLogger
from stocktrack.utils.tracing import PassTracer


def decremented_quantity(quantity: int, periods: int, amount: float) -> int:
    """Quantity left after `periods` x `amount` units are consumed.

    Fractional amounts are rounded to the nearest whole unit; the result
    never exceeds the starting quantity and never drops below zero.
    """
    remaining = quantity - periods * amount
    return max(0, min(quantity, math.floor(remaining + 0.5)))


class DecrementEngine:
    """
    Runs decrement passes over one item store.

    One engine exists per backend; the backends differ only in the store
    adapter they hand in.
    """

    def __init__(
        self,
        store: ItemStore,
        alert_manager: StockAlertManager | None = None,
        clock: Clock | None = None,
        default_threshold: int = 10,
        mirror_to: ItemStore | None = None,
        mirror_alerts: StockAlertManager | None = None,
    ):
        self.store = store
        self.alert_manager = alert_manager
        self.clock = clock or SystemClock()
        self.default_threshold = default_threshold
        self.mirror_to = mirror_to
        self.mirror_alerts = mirror_alerts
        self.logger = EngineLogger("decrement_engine", backend=store.name)

    @property
    def backend(self) -> str:
        return self.store.name

    async def run_decrement_pass(self, now: datetime | None = None) -> DecrementResult:
        """
        Evaluate every consumable item and persist the resulting decrements.

        Args:
            now: Evaluation time; the engine clock is used if omitted

        Returns:
            DecrementResult describing updated, skipped and failed items

        Raises:
            StoreUnavailableError: if the store cannot be listed at all
        """
        now = ensure_aware(now) if now else self.clock.now()
        tracer = PassTracer(self.backend)
        result = DecrementResult(backend=self.backend)

        with tracer.trace_phase("list"):
            items = await self.store.list_consumable()

        updates, pending = self._stage(items, now, result)

        batch = BatchWriteResult()
        if updates:
            with tracer.trace_phase("write", staged=len(updates)):
                batch = await self.store.upsert_many(updates)

        self._record_batch(batch, pending, result)

        if self.alert_manager is not None:
            with tracer.trace_phase("alerts", items=len(result.affected_items)):
                await self._check_alerts(result, pending, batch.stale)

        if self.mirror_to is not None and result.affected_items:
            with tracer.trace_phase("mirror", items=len(result.affected_items)):
                result.mirrored_count = await self._mirror(result.affected_items, now)

        result.trace = tracer.get_trace_summary()
        self.logger.log_pass(
            "completed",
            duration_ms=result.trace["total_duration_ms"],
            evaluated=len(items),
            staged=len(updates),
            updated=result.updated_count,
            skipped=len(result.skipped),
            failed=len(result.failed_item_ids),
            stale=len(batch.stale),
        )
        return result

    def _stage(
        self,
        items: list[Item],
        now: datetime,
        result: DecrementResult,
    ) -> tuple[list[ItemUpdate], dict[str, Item]]:
        """Build the writes for this pass; returns updates and the items whose quantity drops."""
        updates: list[ItemUpdate] = []
        pending: dict[str, Item] = {}

        for item in items:
            # Same semantics whether or not the store filtered server-side
            if not item.is_consumable:
                continue

            rate = item.consumption_rate
            try:
                validate_rate(rate)
            except MalformedRateError as e:
                result.skipped[item.id] = str(e)
                self.logger.log_item_skipped(item.id, "malformed_rate", error=str(e))
                continue

            periods = compute_periods_elapsed(rate, item.last_decremented, now)
            if periods == 0:
                continue

            new_quantity = decremented_quantity(item.quantity, periods, rate.amount)

            if new_quantity < item.quantity:
                updates.append(
                    ItemUpdate(
                        item_id=item.id,
                        quantity=new_quantity,
                        last_decremented=now,
                        last_updated=now,
                    )
                )
                pending[item.id] = item.model_copy(update={"quantity": new_quantity})
                self.logger.logger.debug(
                    "item_decrement_staged",
                    item_id=item.id,
                    periods=periods,
                    old_quantity=item.quantity,
                    new_quantity=new_quantity,
                )
            else:
                # Consumption rounded away; advance the anchor so the window is not recounted
                updates.append(ItemUpdate(item_id=item.id, last_decremented=now))

        return updates, pending

    def _record_batch(
        self,
        batch: BatchWriteResult,
        pending: dict[str, Item],
        result: DecrementResult,
    ) -> None:
        for item_id in batch.succeeded:
            item = pending.get(item_id)
            if item is None:
                continue
            result.affected_items.append(
                AffectedItem(id=item.id, name=item.name, new_quantity=item.quantity)
            )
        result.updated_count = len(result.affected_items)

        for item_id in batch.stale:
            self.logger.log_item_skipped(item_id, "item_vanished")

        if batch.failed:
            result.failed_item_ids = sorted(batch.failed)
            for item_id, reason in batch.failed.items():
                self.logger.log_write_failure(item_id, reason)
            # Applied items stay applied; failed ones keep their old anchor for the next pass
            self.logger.log_error(str(PartialBatchWriteError(self.backend, batch.failed)))

    async def _check_alerts(
        self,
        result: DecrementResult,
        pending: dict[str, Item],
        stale_ids: list[str],
    ) -> None:
        for affected in result.affected_items:
            item = pending[affected.id]
            try:
                await self.alert_manager.check_and_update_alert(
                    affected.id,
                    quantity=affected.new_quantity,
                    name=item.display_name,
                    threshold=item.threshold(self.default_threshold),
                )
            except StockTrackError as e:
                result.alert_failures[affected.id] = str(e)
                self.logger.log_error(str(e), item_id=affected.id, phase="alerts")

        for item_id in stale_ids:
            # Lookup finds nothing and removes any leftover alert
            try:
                await self.alert_manager.check_and_update_alert(item_id)
            except StockTrackError as e:
                result.alert_failures[item_id] = str(e)
                self.logger.log_error(str(e), item_id=item_id, phase="alerts")

    async def _mirror(self, affected: list[AffectedItem], now: datetime) -> int:
        """Copy this pass's decrements into the mirror store.

        A mirrored copy never gains stock: when it is already at or below the
        new quantity only its anchor moves. Failures here are logged and
        never change the pass result.
        """
        target = self.mirror_to.name
        updates: list[ItemUpdate] = []
        lowered: dict[str, Item] = {}
        missing: list[str] = []

        try:
            for affected_item in affected:
                local = await self.mirror_to.get_one(affected_item.id)
                if local is None:
                    missing.append(affected_item.id)
                    continue

                if affected_item.new_quantity < local.quantity:
                    updates.append(
                        ItemUpdate(
                            item_id=local.id,
                            quantity=affected_item.new_quantity,
                            last_decremented=now,
                            last_updated=now,
                        )
                    )
                    lowered[local.id] = local.model_copy(
                        update={"quantity": affected_item.new_quantity}
                    )
                else:
                    updates.append(ItemUpdate(item_id=local.id, last_decremented=now))

            batch = await self.mirror_to.upsert_many(updates) if updates else BatchWriteResult()
        except StockTrackError as e:
            self.logger.log_error(str(e), phase="mirror", target=target)
            return 0

        for item_id, reason in batch.failed.items():
            self.logger.log_write_failure(item_id, reason, target=target)
        missing.extend(batch.stale)
        if missing:
            self.logger.logger.debug(
                "mirror_items_not_local", backend=self.backend, item_ids=missing
            )

        if self.mirror_alerts is not None:
            for item_id in batch.succeeded:
                item = lowered.get(item_id)
                if item is None:
                    continue
                try:
                    await self.mirror_alerts.check_and_update_alert(
                        item_id,
                        quantity=item.quantity,
                        name=item.display_name,
                        threshold=item.threshold(self.default_threshold),
                    )
                except StockTrackError as e:
                    self.logger.log_error(
                        str(e), item_id=item_id, phase="mirror_alerts", target=target
                    )
        return len(batch.succeeded)
