"""On-device item store: the whole product list as one JSON document."""

import asyncio
from typing import Any

from pydantic import ValidationError

from stocktrack.errors import StoreUnavailableError
from stocktrack.models.item import Item, ItemUpdate
from stocktrack.models.sync import BatchWriteResult
from stocktrack.state.base import ItemStore
from stocktrack.state.manager import StateManager
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)

PRODUCTS_KEY = "stocktrack:products"


class LocalItemStore(ItemStore):
    """Item store keeping every product under a single key.

    Timestamps are ISO-8601 strings. A batch is one read-modify-write of
    the document, so it either lands completely or not at all; updates for
    ids no longer in the document are reported as stale.
    """

    supports_atomic_batch = True

    def __init__(
        self,
        state: StateManager | None,
        timeout: float = 10.0,
        name: str = "local",
    ):
        super().__init__(name, state, timeout)
        self._lock = asyncio.Lock()

    async def _load_records(self) -> list[dict[str, Any]]:
        state = self._require_state()
        records = await self._io(state.get(PRODUCTS_KEY))
        return records if isinstance(records, list) else []

    async def _save_records(self, records: list[dict[str, Any]]) -> None:
        state = self._require_state()
        await self._io(state.set(PRODUCTS_KEY, records))

    def _to_item(self, record: dict[str, Any]) -> Item | None:
        try:
            return Item.model_validate(record)
        except ValidationError as e:
            logger.warning(
                "local_record_unreadable",
                item_id=record.get("id"),
                error=str(e),
            )
            return None

    async def list_all(self) -> list[Item]:
        items = [self._to_item(r) for r in await self._load_records()]
        return [item for item in items if item is not None]

    async def list_consumable(self) -> list[Item]:
        return [item for item in await self.list_all() if item.is_consumable]

    async def get_one(self, item_id: str) -> Item | None:
        for record in await self._load_records():
            if record.get("id") == item_id:
                return self._to_item(record)
        return None

    async def upsert(self, item: Item) -> None:
        async with self._lock:
            records = await self._load_records()
            record = item.model_dump(mode="json")

            for index, existing in enumerate(records):
                if existing.get("id") == item.id:
                    records[index] = record
                    break
            else:
                records.append(record)

            await self._save_records(records)
        logger.info("local_item_stored", item_id=item.id)

    async def upsert_many(self, updates: list[ItemUpdate]) -> BatchWriteResult:
        result = BatchWriteResult()
        if not updates:
            return result

        async with self._lock:
            records = await self._load_records()
            by_id = {record.get("id"): record for record in records}
            applied: list[str] = []

            for update in updates:
                record = by_id.get(update.item_id)
                if record is None:
                    result.stale.append(update.item_id)
                    continue

                record["last_decremented"] = update.last_decremented.isoformat()
                if update.quantity is not None:
                    record["quantity"] = update.quantity
                if update.last_updated is not None:
                    record["last_updated"] = update.last_updated.isoformat()
                applied.append(update.item_id)

            if applied:
                try:
                    await self._save_records(records)
                except StoreUnavailableError as e:
                    # The document write is all-or-nothing
                    for item_id in applied:
                        result.failed[item_id] = str(e)
                    return result

            result.succeeded.extend(applied)

        return result

    async def delete(self, item_id: str) -> bool:
        async with self._lock:
            records = await self._load_records()
            remaining = [r for r in records if r.get("id") != item_id]
            if len(remaining) == len(records):
                logger.warning("local_item_missing", item_id=item_id)
                return False

            await self._save_records(remaining)
        logger.info("local_item_removed", item_id=item_id)
        return True

    async def clear(self) -> None:
        """Remove every local product."""
        state = self._require_state()
        await self._io(state.delete(PRODUCTS_KEY))
