"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from typing import AsyncGenerator, Callable

import fakeredis
import pytest
import pytest_asyncio

from stocktrack.engine.alerts import StockAlertManager
from stocktrack.engine.clock import ManualClock
from stocktrack.errors import StoreUnavailableError
from stocktrack.models.item import ConsumptionRate, Item, ItemUpdate
from stocktrack.models.sync import BatchWriteResult
from stocktrack.state.alert_store import AlertStore
from stocktrack.state.base import ItemStore
from stocktrack.state.local_store import LocalItemStore
from stocktrack.state.manager import StateManager
from stocktrack.state.remote_store import RemoteItemStore

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class InMemoryItemStore(ItemStore):
    """Item store held in a dict, with switches for injecting failures."""

    def __init__(self, name: str = "memory"):
        super().__init__(name, state=None)
        self.items: dict[str, Item] = {}
        self.failing_ids: set[str] = set()
        self.unavailable = False
        self.upsert_many_calls = 0

    @property
    def available(self) -> bool:
        return True

    def _check(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError(self.name, "connection refused")

    async def list_all(self) -> list[Item]:
        self._check()
        return list(self.items.values())

    async def list_consumable(self) -> list[Item]:
        return [item for item in await self.list_all() if item.is_consumable]

    async def get_one(self, item_id: str) -> Item | None:
        self._check()
        return self.items.get(item_id)

    async def upsert(self, item: Item) -> None:
        self._check()
        self.items[item.id] = item

    async def upsert_many(self, updates: list[ItemUpdate]) -> BatchWriteResult:
        self._check()
        self.upsert_many_calls += 1
        result = BatchWriteResult()
        for update in updates:
            if update.item_id in self.failing_ids:
                result.failed[update.item_id] = "write rejected"
                continue
            item = self.items.get(update.item_id)
            if item is None:
                result.stale.append(update.item_id)
                continue
            changes = {"last_decremented": update.last_decremented}
            if update.quantity is not None:
                changes["quantity"] = update.quantity
            if update.last_updated is not None:
                changes["last_updated"] = update.last_updated
            self.items[update.item_id] = item.model_copy(update=changes)
            result.succeeded.append(update.item_id)
        return result

    async def delete(self, item_id: str) -> bool:
        self._check()
        return self.items.pop(item_id, None) is not None


@pytest.fixture
def clock() -> ManualClock:
    """Clock frozen at a fixed instant."""
    return ManualClock(T0)


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for items consuming `amount` per `period` x `unit`."""

    def _make(
        item_id: str = "coffee",
        quantity: int = 20,
        amount: float = 1,
        period: int = 1,
        unit: str = "day",
        last_decremented: datetime | None = T0,
        **fields,
    ) -> Item:
        fields.setdefault("name", item_id.capitalize())
        return Item(
            id=item_id,
            quantity=quantity,
            consumption_rate=ConsumptionRate(amount=amount, period=period, unit=unit),
            last_decremented=last_decremented,
            last_updated=T0,
            **fields,
        )

    return _make


def _fake_state() -> StateManager:
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return StateManager(client=client)


@pytest_asyncio.fixture
async def local_state() -> AsyncGenerator[StateManager, None]:
    """State manager over an in-process fake Redis."""
    manager = _fake_state()
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def remote_state() -> AsyncGenerator[StateManager, None]:
    """Separate fake Redis standing in for the remote document store."""
    manager = _fake_state()
    yield manager
    await manager.disconnect()


@pytest.fixture
def local_store(local_state: StateManager) -> LocalItemStore:
    return LocalItemStore(local_state, timeout=2.0)


@pytest.fixture
def remote_store(remote_state: StateManager) -> RemoteItemStore:
    return RemoteItemStore(remote_state, timeout=2.0)


@pytest.fixture
def alert_store(local_state: StateManager) -> AlertStore:
    return AlertStore(local_state, timeout=2.0)


@pytest.fixture
def memory_store() -> InMemoryItemStore:
    return InMemoryItemStore()


@pytest.fixture
def alert_manager(
    local_store: LocalItemStore,
    alert_store: AlertStore,
    clock: ManualClock,
) -> StockAlertManager:
    """Alert manager over the local store."""
    return StockAlertManager(local_store, alert_store, default_threshold=10, clock=clock)
