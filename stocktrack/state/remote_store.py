"""Remote document store: one Redis hash per product."""

from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from stocktrack.errors import StaleItemError, StockTrackError
from stocktrack.models.item import Item, ItemUpdate
from stocktrack.models.sync import BatchWriteResult
from stocktrack.state.base import ItemStore
from stocktrack.state.manager import StateManager
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)

PRODUCT_IDS_KEY = "products:ids"
CONSUMABLE_INDEX_KEY = "products:consumable"


def product_key(item_id: str) -> str:
    return f"products:{item_id}"


def to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: Any, item_id: str | None = None) -> datetime | None:
    """Read a stored timestamp.

    Documents written by this store hold epoch milliseconds; older documents
    may carry ISO strings. Anything unreadable is treated as never set.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            pass
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    logger.warning("remote_timestamp_unreadable", item_id=item_id, value=value)
    return None


class RemoteItemStore(ItemStore):
    """Item store over per-document hashes with epoch-millisecond timestamps.

    A sorted set scored by quantity indexes items that have a consumption
    rate, so eligible items are selected server-side. Batches are applied
    document by document; a failed document does not stop the rest.
    """

    supports_atomic_batch = False

    def __init__(
        self,
        state: StateManager | None,
        timeout: float = 10.0,
        name: str = "remote",
    ):
        super().__init__(name, state, timeout)

    def _to_document(self, item: Item) -> dict[str, Any]:
        return {
            "id": item.id,
            "name": item.name,
            "quantity": item.quantity,
            "consumption_rate": (
                item.consumption_rate.model_dump() if item.consumption_rate else None
            ),
            "min_stock_level": item.min_stock_level,
            "reorder_quantity": item.reorder_quantity,
            "last_updated": to_millis(item.last_updated),
            "last_decremented": to_millis(item.last_decremented),
        }

    def _from_document(self, item_id: str, document: dict[str, Any]) -> Item | None:
        if not document:
            return None

        record = dict(document)
        record["id"] = item_id
        record["last_updated"] = from_millis(document.get("last_updated"), item_id) or (
            datetime.now(timezone.utc)
        )
        record["last_decremented"] = from_millis(document.get("last_decremented"), item_id)
        try:
            return Item.model_validate(record)
        except ValidationError as e:
            logger.warning("remote_document_unreadable", item_id=item_id, error=str(e))
            return None

    async def _fetch_many(self, item_ids: list[str]) -> list[Item]:
        state = self._require_state()
        items = []
        for item_id in item_ids:
            document = await self._io(state.hgetall(product_key(item_id)))
            item = self._from_document(item_id, document)
            if item is not None:
                items.append(item)
        return items

    async def list_all(self) -> list[Item]:
        state = self._require_state()
        item_ids = sorted(await self._io(state.smembers(PRODUCT_IDS_KEY)))
        return await self._fetch_many(item_ids)

    async def list_consumable(self) -> list[Item]:
        state = self._require_state()
        item_ids = await self._io(
            state.zrangebyscore(CONSUMABLE_INDEX_KEY, "(0", "+inf")
        )
        # The index can lag a document that changed shape; filter again.
        return [item for item in await self._fetch_many(item_ids) if item.is_consumable]

    async def get_one(self, item_id: str) -> Item | None:
        state = self._require_state()
        document = await self._io(state.hgetall(product_key(item_id)))
        return self._from_document(item_id, document)

    async def upsert(self, item: Item) -> None:
        state = self._require_state()
        pipe = await state.pipeline(transaction=True)
        key = product_key(item.id)

        pipe.delete(key)
        pipe.hset(key, mapping=state.encode_mapping(self._to_document(item)))
        pipe.sadd(PRODUCT_IDS_KEY, item.id)
        if item.consumption_rate is not None:
            pipe.zadd(CONSUMABLE_INDEX_KEY, {item.id: item.quantity})
        else:
            pipe.zrem(CONSUMABLE_INDEX_KEY, item.id)

        await self._io(pipe.execute())
        logger.info("remote_item_stored", item_id=item.id)

    async def _apply_update(self, update: ItemUpdate) -> None:
        state = self._require_state()
        client = await state.client()
        key = product_key(update.item_id)

        fields: dict[str, Any] = {"last_decremented": to_millis(update.last_decremented)}
        if update.quantity is not None:
            fields["quantity"] = update.quantity
        if update.last_updated is not None:
            fields["last_updated"] = to_millis(update.last_updated)

        async with client.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            if not await pipe.exists(key):
                raise StaleItemError(update.item_id)

            pipe.multi()
            pipe.hset(key, mapping=state.encode_mapping(fields))
            if update.quantity is not None:
                pipe.zadd(CONSUMABLE_INDEX_KEY, {update.item_id: update.quantity}, xx=True)
            await pipe.execute()

    async def upsert_many(self, updates: list[ItemUpdate]) -> BatchWriteResult:
        result = BatchWriteResult()

        for update in updates:
            try:
                await self._io(self._apply_update(update))
            except StaleItemError:
                result.stale.append(update.item_id)
                continue
            except StockTrackError as e:
                result.failed[update.item_id] = str(e)
                continue
            result.succeeded.append(update.item_id)

        return result

    async def delete(self, item_id: str) -> bool:
        state = self._require_state()
        pipe = await state.pipeline(transaction=True)
        pipe.delete(product_key(item_id))
        pipe.srem(PRODUCT_IDS_KEY, item_id)
        pipe.zrem(CONSUMABLE_INDEX_KEY, item_id)
        removed, *_ = await self._io(pipe.execute())

        logger.info("remote_item_removed", item_id=item_id, existed=bool(removed))
        return bool(removed)
