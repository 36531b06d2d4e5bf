"""Store abstractions shared by the local and remote backends."""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, TypeVar

from redis.exceptions import RedisError

from stocktrack.errors import StoreUnavailableError
from stocktrack.models.item import Item, ItemUpdate
from stocktrack.models.sync import BatchWriteResult
from stocktrack.state.manager import StateManager

T = TypeVar("T")


class BackedStore:
    """Common I/O guard for stores living on a `StateManager`.

    A missing state manager means the backend is not configured. Timeouts
    and Redis failures surface as `StoreUnavailableError` so callers only
    deal with the engine's own error taxonomy.
    """

    def __init__(self, name: str, state: StateManager | None, timeout: float = 10.0):
        self.name = name
        self.state = state
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.state is not None

    def _require_state(self) -> StateManager:
        if self.state is None:
            raise StoreUnavailableError(self.name, "backend not configured")
        return self.state

    async def _io(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(
                self.name, f"store call timed out after {self.timeout}s"
            ) from e
        except RedisError as e:
            raise StoreUnavailableError(self.name, str(e)) from e


class ItemStore(BackedStore, ABC):
    """Persistence for items on one backend."""

    supports_atomic_batch: bool = False

    @abstractmethod
    async def list_all(self) -> list[Item]:
        """All readable items."""

    @abstractmethod
    async def list_consumable(self) -> list[Item]:
        """Items with a consumption rate and quantity above zero."""

    @abstractmethod
    async def get_one(self, item_id: str) -> Item | None:
        """Fetch one item, or None if it does not exist."""

    @abstractmethod
    async def upsert(self, item: Item) -> None:
        """Create or replace an item."""

    @abstractmethod
    async def upsert_many(self, updates: list[ItemUpdate]) -> BatchWriteResult:
        """Apply staged decrement writes, reporting success per item."""

    @abstractmethod
    async def delete(self, item_id: str) -> bool:
        """Remove an item, returning whether it existed."""
