"""Persistence for low stock alerts."""

from typing import Any

from pydantic import ValidationError
from redis.exceptions import WatchError

from stocktrack.models.alert import Alert
from stocktrack.state.base import BackedStore
from stocktrack.state.manager import StateManager
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)

ALERTS_BY_TIME_KEY = "notifications:by_time"


def alert_key(item_id: str) -> str:
    return f"notifications:{item_id}"


class AlertStore(BackedStore):
    """Alerts stored as hashes keyed by item id, indexed by timestamp."""

    def __init__(
        self,
        state: StateManager | None,
        timeout: float = 10.0,
        name: str = "alerts",
    ):
        super().__init__(name, state, timeout)

    def _from_document(self, document: dict[str, Any]) -> Alert | None:
        if not document:
            return None
        try:
            return Alert.model_validate(document)
        except ValidationError as e:
            logger.warning("alert_document_unreadable", error=str(e))
            return None

    async def get(self, item_id: str) -> Alert | None:
        state = self._require_state()
        document = await self._io(state.hgetall(alert_key(item_id)))
        return self._from_document(document)

    async def _write_unless_acknowledged(self, alert: Alert) -> bool:
        state = self._require_state()
        client = await state.client()
        key = alert_key(alert.item_id)

        async with client.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            if not alert.acknowledged:
                current = await pipe.hget(key, "acknowledged")
                if state.decode_value(current) is True:
                    return False

            pipe.multi()
            pipe.hset(key, mapping=state.encode_mapping(alert.model_dump(mode="json")))
            pipe.zadd(ALERTS_BY_TIME_KEY, {alert.item_id: alert.timestamp.timestamp()})
            try:
                await pipe.execute()
            except WatchError:
                # Acknowledged or deleted concurrently; the next check re-evaluates
                logger.info("alert_write_conflict", item_id=alert.item_id)
                return False
        return True

    async def upsert(self, alert: Alert) -> bool:
        """Create or refresh an alert.

        An unacknowledged write never replaces a record that has been
        acknowledged in the meantime; returns False when that happens.
        """
        return await self._io(self._write_unless_acknowledged(alert))

    async def delete(self, item_id: str) -> bool:
        state = self._require_state()
        pipe = await state.pipeline(transaction=True)
        pipe.delete(alert_key(item_id))
        pipe.zrem(ALERTS_BY_TIME_KEY, item_id)
        removed, _ = await self._io(pipe.execute())
        return bool(removed)

    async def list_active(self) -> list[Alert]:
        """Unacknowledged alerts, newest first."""
        state = self._require_state()
        item_ids = await self._io(
            state.zrangebyscore(ALERTS_BY_TIME_KEY, "-inf", "+inf", desc=True)
        )

        alerts = []
        for item_id in item_ids:
            alert = await self.get(item_id)
            if alert is not None and not alert.acknowledged:
                alerts.append(alert)
        return alerts

    async def _mark_acknowledged(self, item_id: str) -> bool:
        state = self._require_state()
        client = await state.client()
        key = alert_key(item_id)

        async with client.pipeline(transaction=True) as pipe:
            await pipe.watch(key)
            if not await pipe.exists(key):
                return False
            pipe.multi()
            pipe.hset(key, "acknowledged", "true")
            await pipe.execute()
        return True

    async def acknowledge(self, item_id: str) -> bool:
        """Mark an alert acknowledged; a missing alert is a no-op."""
        acknowledged = await self._io(self._mark_acknowledged(item_id))
        if not acknowledged:
            logger.warning("alert_not_found_for_acknowledge", item_id=item_id)
        return acknowledged
