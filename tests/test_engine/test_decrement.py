"""Tests for decrement passes."""

from datetime import timedelta

import pytest

from stocktrack.engine.alerts import StockAlertManager
from stocktrack.engine.clock import ManualClock
from stocktrack.engine.decrement import DecrementEngine, decremented_quantity
from stocktrack.errors import AlertWriteError, StoreUnavailableError
from stocktrack.models.item import Item
from stocktrack.state.alert_store import AlertStore
from stocktrack.state.local_store import LocalItemStore
from stocktrack.state.remote_store import RemoteItemStore

from conftest import T0, InMemoryItemStore


@pytest.mark.parametrize(
    "quantity,periods,amount,expected",
    [
        (20, 2, 2, 16),
        (3, 1, 5, 0),
        (10, 1, 0.4, 10),
        (10, 1, 0.5, 10),
        (10, 1, 0.6, 9),
        (10, 3, 0.5, 9),
    ],
)
def test_decremented_quantity(quantity: int, periods: int, amount: float, expected: int) -> None:
    assert decremented_quantity(quantity, periods, amount) == expected


@pytest.mark.asyncio
async def test_floor_correctness(local_store: LocalItemStore, clock: ManualClock, make_item) -> None:
    """Two of 2.9 elapsed days are applied and the anchor moves to now."""
    await local_store.upsert(make_item("coffee", quantity=20, amount=2))
    engine = DecrementEngine(local_store, clock=clock)

    now = clock.advance(days=2.9)
    result = await engine.run_decrement_pass()

    item = await local_store.get_one("coffee")
    assert item.quantity == 16
    assert item.last_decremented == now
    assert item.last_updated == now
    assert result.updated_count == 1
    assert result.affected_items[0].new_quantity == 16


@pytest.mark.asyncio
async def test_second_pass_at_same_instant_is_noop(
    local_store: LocalItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await local_store.upsert(make_item("coffee", quantity=20, amount=2))
    engine = DecrementEngine(local_store, clock=clock)
    now = clock.advance(days=3)

    await engine.run_decrement_pass(now)
    second = await engine.run_decrement_pass(now)

    assert second.updated_count == 0
    assert (await local_store.get_one("coffee")).quantity == 14


@pytest.mark.asyncio
async def test_quantity_never_increases(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("tea", quantity=50, amount=1.5, unit="hour"))
    engine = DecrementEngine(memory_store, clock=clock)

    previous = 50
    for hours in (0, 1, 1, 3, 7, 24, 24, 100):
        clock.advance(hours=hours, minutes=13)
        await engine.run_decrement_pass()
        current = memory_store.items["tea"].quantity
        assert current <= previous
        previous = current

    assert previous == 0


@pytest.mark.asyncio
async def test_floor_at_zero(local_store: LocalItemStore, clock: ManualClock, make_item) -> None:
    await local_store.upsert(make_item("milk", quantity=3, amount=5))
    engine = DecrementEngine(local_store, clock=clock)

    await engine.run_decrement_pass(clock.advance(days=1))

    assert (await local_store.get_one("milk")).quantity == 0


@pytest.mark.asyncio
async def test_items_at_zero_are_not_evaluated(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("empty", quantity=0))
    engine = DecrementEngine(memory_store, clock=clock)

    result = await engine.run_decrement_pass(clock.advance(days=5))

    assert result.updated_count == 0
    assert memory_store.items["empty"].last_decremented == T0
    assert memory_store.upsert_many_calls == 0


@pytest.mark.asyncio
async def test_malformed_rate_skipped(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("broken", quantity=8, amount=0))
    await memory_store.upsert(make_item("fine", quantity=8))
    engine = DecrementEngine(memory_store, clock=clock)

    for _ in range(3):
        result = await engine.run_decrement_pass(clock.advance(days=30))
        assert "broken" in result.skipped

    broken = memory_store.items["broken"]
    assert broken.quantity == 8
    assert broken.last_decremented == T0
    assert memory_store.items["fine"].quantity == 0


@pytest.mark.asyncio
async def test_rounded_away_consumption_advances_anchor_only(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("salt", quantity=10, amount=0.25))
    engine = DecrementEngine(memory_store, clock=clock)

    now = clock.advance(days=1)
    result = await engine.run_decrement_pass()

    salt = memory_store.items["salt"]
    assert result.updated_count == 0
    assert salt.quantity == 10
    assert salt.last_decremented == now
    assert salt.last_updated == T0


@pytest.mark.asyncio
async def test_partial_batch_failure_keeps_failed_anchor(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    for item_id in ("one", "two", "three"):
        await memory_store.upsert(make_item(item_id, quantity=30))
    memory_store.failing_ids = {"two"}
    engine = DecrementEngine(memory_store, clock=clock)

    now = clock.advance(days=2)
    result = await engine.run_decrement_pass()

    assert result.failed_item_ids == ["two"]
    assert {a.id for a in result.affected_items} == {"one", "three"}
    for item_id in ("one", "three"):
        assert memory_store.items[item_id].quantity == 28
        assert memory_store.items[item_id].last_decremented == now
    assert memory_store.items["two"].quantity == 30
    assert memory_store.items["two"].last_decremented == T0

    # The next pass recovers the whole window for the failed item
    memory_store.failing_ids = set()
    await engine.run_decrement_pass(clock.advance(days=1))

    assert memory_store.items["two"].quantity == 27
    assert memory_store.items["one"].quantity == 27


@pytest.mark.asyncio
async def test_store_unavailable_propagates(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
) -> None:
    memory_store.unavailable = True
    engine = DecrementEngine(memory_store, clock=clock)

    with pytest.raises(StoreUnavailableError):
        await engine.run_decrement_pass()


@pytest.mark.asyncio
async def test_pass_raises_alert_for_low_stock(
    local_store: LocalItemStore,
    alert_manager: StockAlertManager,
    alert_store: AlertStore,
    clock: ManualClock,
    make_item,
) -> None:
    await local_store.upsert(make_item("eggs", quantity=12, amount=3, min_stock_level=8))
    engine = DecrementEngine(local_store, alert_manager, clock=clock)

    await engine.run_decrement_pass(clock.advance(days=2))

    alert = await alert_store.get("eggs")
    assert alert is not None
    assert alert.quantity == 6
    assert alert.item_name == "Eggs"
    assert alert.acknowledged is False


@pytest.mark.asyncio
async def test_alert_failure_does_not_undo_decrement(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("rice", quantity=5))
    unconfigured_alerts = AlertStore(None, name="alerts")
    manager = StockAlertManager(memory_store, unconfigured_alerts, clock=clock)
    engine = DecrementEngine(memory_store, manager, clock=clock)

    result = await engine.run_decrement_pass(clock.advance(days=1))

    assert memory_store.items["rice"].quantity == 4
    assert result.updated_count == 1
    assert "rice" in result.alert_failures


@pytest.mark.asyncio
async def test_remote_pass_mirrors_into_local(
    remote_store: RemoteItemStore,
    local_store: LocalItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await remote_store.upsert(make_item("oats", quantity=40, amount=4))
    await local_store.upsert(make_item("oats", quantity=40, amount=4))
    await remote_store.upsert(make_item("remote_only", quantity=9))
    engine = DecrementEngine(remote_store, clock=clock, mirror_to=local_store)

    now = clock.advance(days=2)
    result = await engine.run_decrement_pass()

    assert result.mirrored_count == 1
    mirrored = await local_store.get_one("oats")
    assert mirrored.quantity == 32
    assert mirrored.last_decremented == now

    # The local engine sees a fresh anchor and does not count the window again
    local_result = await DecrementEngine(local_store, clock=clock).run_decrement_pass(now)
    assert local_result.updated_count == 0


@pytest.mark.asyncio
async def test_mirror_never_raises_local_quantity(
    remote_store: RemoteItemStore,
    local_store: LocalItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await remote_store.upsert(make_item("oats", quantity=40, amount=4))
    await local_store.upsert(make_item("oats", quantity=3, amount=4))
    engine = DecrementEngine(remote_store, clock=clock, mirror_to=local_store)

    now = clock.advance(days=2)
    result = await engine.run_decrement_pass()

    assert (await remote_store.get_one("oats")).quantity == 32
    assert result.mirrored_count == 1
    local = await local_store.get_one("oats")
    assert local.quantity == 3
    assert local.last_decremented == now
    assert local.last_updated == T0


@pytest.mark.asyncio
async def test_mirror_checks_local_alerts(
    remote_store: RemoteItemStore,
    local_store: LocalItemStore,
    alert_manager: StockAlertManager,
    alert_store: AlertStore,
    clock: ManualClock,
    make_item,
) -> None:
    await remote_store.upsert(make_item("oats", quantity=12, amount=4))
    await local_store.upsert(make_item("oats", quantity=12, amount=4))
    engine = DecrementEngine(
        remote_store,
        clock=clock,
        mirror_to=local_store,
        mirror_alerts=alert_manager,
    )

    await engine.run_decrement_pass(clock.advance(days=1))

    alert = await alert_store.get("oats")
    assert alert is not None
    assert alert.quantity == 8


@pytest.mark.asyncio
async def test_mirror_alert_failure_is_contained(
    remote_store: RemoteItemStore,
    local_store: LocalItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    class FailingAlerts:
        async def check_and_update_alert(self, item_id: str, **kwargs) -> None:
            raise AlertWriteError(item_id, "down")

    await remote_store.upsert(make_item("oats", quantity=12, amount=4))
    await local_store.upsert(make_item("oats", quantity=12, amount=4))
    engine = DecrementEngine(
        remote_store,
        clock=clock,
        mirror_to=local_store,
        mirror_alerts=FailingAlerts(),
    )

    result = await engine.run_decrement_pass(clock.advance(days=1))

    assert result.mirrored_count == 1
    assert result.alert_failures == {}
    assert (await local_store.get_one("oats")).quantity == 8


@pytest.mark.asyncio
async def test_vanished_item_removes_leftover_alert(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    alert_store: AlertStore,
    make_item,
) -> None:
    item = make_item("ghost", quantity=5)
    manager = StockAlertManager(memory_store, alert_store, clock=clock)
    await memory_store.upsert(item)
    await manager.check_and_update_alert("ghost")

    class VanishingStore(InMemoryItemStore):
        async def list_consumable(self) -> list[Item]:
            listed = await super().list_consumable()
            self.items.pop("ghost", None)
            return listed

    store = VanishingStore()
    store.items = memory_store.items
    manager.items = store
    engine = DecrementEngine(store, manager, clock=clock)

    await engine.run_decrement_pass(clock.advance(days=1))

    assert await alert_store.get("ghost") is None


@pytest.mark.asyncio
async def test_items_without_rate_are_ignored(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
) -> None:
    await memory_store.upsert(Item(id="bulbs", quantity=4, last_updated=T0))
    engine = DecrementEngine(memory_store, clock=clock)

    result = await engine.run_decrement_pass(clock.advance(days=100))

    assert result.updated_count == 0
    assert memory_store.items["bulbs"].last_decremented is None


@pytest.mark.asyncio
async def test_pass_trace_records_phases(
    memory_store: InMemoryItemStore,
    clock: ManualClock,
    make_item,
) -> None:
    await memory_store.upsert(make_item("soap", quantity=10))
    engine = DecrementEngine(memory_store, clock=clock)

    result = await engine.run_decrement_pass(clock.advance(days=1))

    assert set(result.trace["phase_durations_ms"]) >= {"list", "write"}
    assert result.trace["total_events"] >= 2
