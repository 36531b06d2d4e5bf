"""Wiring of stores, engines and the scheduler for one process."""

from dataclasses import dataclass

import redis.asyncio as redis

from stocktrack.config import Settings, get_settings
from stocktrack.engine.alerts import StockAlertManager
from stocktrack.engine.clock import Clock, SystemClock
from stocktrack.engine.decrement import DecrementEngine
from stocktrack.engine.scheduler import Backend, InvalidationHandler, SyncScheduler
from stocktrack.models.sync import Collection
from stocktrack.state.alert_store import AlertStore
from stocktrack.state.local_store import LocalItemStore
from stocktrack.state.manager import StateManager
from stocktrack.state.remote_store import RemoteItemStore
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class EngineRuntime:
    """Everything the host application needs, built from settings."""

    settings: Settings
    clock: Clock
    local_state: StateManager
    remote_state: StateManager | None
    local_items: LocalItemStore
    remote_items: RemoteItemStore
    local_alerts: StockAlertManager
    remote_alerts: StockAlertManager
    scheduler: SyncScheduler

    def items_for(self, backend: str) -> LocalItemStore | RemoteItemStore:
        return self.local_items if backend == "local" else self.remote_items

    def alerts_for(self, backend: str) -> StockAlertManager:
        return self.local_alerts if backend == "local" else self.remote_alerts

    async def connect(self) -> None:
        await self.local_state.connect()
        if self.remote_state is not None:
            await self.remote_state.connect()

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.local_state.disconnect()
        if self.remote_state is not None:
            await self.remote_state.disconnect()


def build_runtime(
    settings: Settings | None = None,
    clock: Clock | None = None,
    on_invalidate: InvalidationHandler | None = None,
    local_client: redis.Redis | None = None,
    remote_client: redis.Redis | None = None,
) -> EngineRuntime:
    """
    Assemble both backends and the scheduler.

    Args:
        settings: Settings to use; the cached environment settings if omitted
        clock: Time source shared by every component
        on_invalidate: Receiver of cache invalidation signals
        local_client: Pre-built Redis client for the local store
        remote_client: Pre-built Redis client for the remote store

    Returns:
        EngineRuntime with unconnected state managers
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()

    local_state = StateManager(settings.local_redis_url, client=local_client)
    remote_state = None
    if remote_client is not None or settings.remote_configured:
        remote_state = StateManager(settings.remote_redis_url, client=remote_client)
    else:
        logger.info("remote_backend_not_configured")

    timeout = settings.store_timeout
    threshold = settings.default_min_stock_level

    local_items = LocalItemStore(local_state, timeout=timeout)
    remote_items = RemoteItemStore(remote_state, timeout=timeout)

    local_alerts = StockAlertManager(
        local_items, AlertStore(local_state, timeout=timeout, name="local_alerts"), threshold, clock
    )
    remote_alerts = StockAlertManager(
        remote_items,
        AlertStore(remote_state, timeout=timeout, name="remote_alerts"),
        threshold,
        clock,
    )

    local_engine = DecrementEngine(local_items, local_alerts, clock, threshold)
    remote_engine = DecrementEngine(
        remote_items,
        remote_alerts,
        clock,
        threshold,
        mirror_to=local_items if settings.mirror_remote_to_local else None,
        mirror_alerts=local_alerts if settings.mirror_remote_to_local else None,
    )

    scheduler = SyncScheduler(
        [
            Backend(
                name="local",
                engine=local_engine,
                interval=settings.local_sync_interval,
                product_collection=Collection.LOCAL_PRODUCTS,
                alert_collection=Collection.LOCAL_NOTIFICATIONS,
            ),
            Backend(
                name="remote",
                engine=remote_engine if remote_state is not None else None,
                interval=settings.remote_sync_interval,
                product_collection=Collection.PRODUCTS,
                alert_collection=Collection.NOTIFICATIONS,
                mirror_collection=Collection.LOCAL_PRODUCTS,
            ),
        ],
        clock=clock,
        on_invalidate=on_invalidate,
        interval_buffer=settings.run_interval_buffer,
        max_backoff_exponent=settings.max_backoff_exponent,
        sync_on_foreground=settings.sync_on_foreground,
    )

    return EngineRuntime(
        settings=settings,
        clock=clock,
        local_state=local_state,
        remote_state=remote_state,
        local_items=local_items,
        remote_items=remote_items,
        local_alerts=local_alerts,
        remote_alerts=remote_alerts,
        scheduler=scheduler,
    )
