"""Sync Scheduler - Decides when each backend's decrement pass runs."""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from stocktrack.engine.clock import Clock, SystemClock
from stocktrack.engine.decrement import DecrementEngine
from stocktrack.errors import StoreUnavailableError
from stocktrack.models.sync import (
    BackendRunStatus,
    CacheInvalidation,
    Collection,
    DecrementResult,
    SyncReport,
)
from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)

InvalidationHandler = Callable[[CacheInvalidation], Awaitable[None] | None]

ACTIVE = "active"
DORMANT_STATES = ("background", "inactive")


@dataclass
class Backend:
    """A store the scheduler runs passes over.

    `engine` is None when the backend is not configured in this process.
    """

    name: str
    engine: DecrementEngine | None
    interval: float
    product_collection: Collection
    alert_collection: Collection
    mirror_collection: Collection | None = None

    @property
    def available(self) -> bool:
        return self.engine is not None and self.engine.store.available


@dataclass
class _BackendState:
    last_success: datetime | None = None
    last_failure: datetime | None = None
    consecutive_failures: int = 0


class SyncScheduler:
    """
    Runs decrement passes on timers and when the host app is foregrounded.

    All guard state lives on the instance and starts empty, so a restarted
    process runs one eager pass per backend; the period arithmetic keeps
    that pass harmless.

    Guards:
    - Single flight: a trigger arriving while a run is in progress is
      dropped, not queued.
    - Minimum interval per backend, less a buffer fraction so a timer
      firing slightly early still runs.
    - Back-off after consecutive failures, doubling up to a cap.
    """

    def __init__(
        self,
        backends: list[Backend],
        clock: Clock | None = None,
        on_invalidate: InvalidationHandler | None = None,
        interval_buffer: float = 0.5,
        max_backoff_exponent: int = 4,
        sync_on_foreground: bool = True,
    ):
        self.backends = backends
        self.clock = clock or SystemClock()
        self.on_invalidate = on_invalidate
        self.interval_buffer = interval_buffer
        self.max_backoff_exponent = max_backoff_exponent
        self.sync_on_foreground = sync_on_foreground

        self._running = False
        self._state: dict[str, _BackendState] = {b.name: _BackendState() for b in backends}
        self._timers: list[asyncio.Task] = []
        self._passes: set[asyncio.Task] = set()
        self._app_state = ACTIVE

    @property
    def is_running(self) -> bool:
        return self._running

    def last_run(self, backend_name: str) -> datetime | None:
        """When the backend last completed a pass."""
        return self._state[backend_name].last_success

    def _min_spacing(self, backend: Backend) -> float:
        return backend.interval * (1 - self.interval_buffer)

    def backoff_delay(self, backend: Backend) -> float:
        """Seconds to wait after the latest failure before retrying."""
        failures = self._state[backend.name].consecutive_failures
        if failures == 0:
            return 0.0
        exponent = min(failures - 1, self.max_backoff_exponent)
        return self._min_spacing(backend) * (2**exponent)

    def _due_status(self, backend: Backend, now: datetime) -> BackendRunStatus | None:
        """None if the backend should run now, otherwise why not."""
        state = self._state[backend.name]

        if state.consecutive_failures and state.last_failure is not None:
            waited = (now - state.last_failure).total_seconds()
            if waited < self.backoff_delay(backend):
                return BackendRunStatus.BACKING_OFF

        if state.last_success is not None:
            elapsed = (now - state.last_success).total_seconds()
            if elapsed <= self._min_spacing(backend):
                return BackendRunStatus.SKIPPED_RECENT

        return None

    async def run_sync_tasks(self, reason: str) -> SyncReport:
        """
        Run every due backend once, in order.

        Args:
            reason: What triggered the run, for logging

        Returns:
            SyncReport with a status per backend
        """
        now = self.clock.now()
        report = SyncReport(reason=reason, started_at=now)

        if self._running:
            logger.info("sync_dropped", reason=reason)
            report.dropped = True
            return report

        self._running = True
        logger.info("sync_started", reason=reason)
        try:
            for backend in self.backends:
                await self._run_backend(backend, now, report)
        finally:
            self._running = False

        logger.info(
            "sync_finished",
            reason=reason,
            statuses={name: status.value for name, status in report.statuses.items()},
        )
        return report

    async def _run_backend(
        self,
        backend: Backend,
        now: datetime,
        report: SyncReport,
    ) -> None:
        if not backend.available:
            report.statuses[backend.name] = BackendRunStatus.UNAVAILABLE
            logger.info("backend_unavailable", backend=backend.name)
            return

        skip = self._due_status(backend, now)
        if skip is not None:
            report.statuses[backend.name] = skip
            logger.debug("backend_not_due", backend=backend.name, status=skip.value)
            return

        state = self._state[backend.name]
        try:
            result = await backend.engine.run_decrement_pass(now)
        except StoreUnavailableError as e:
            self._record_failure(state, now)
            report.statuses[backend.name] = BackendRunStatus.UNAVAILABLE
            report.errors[backend.name] = str(e)
            logger.warning("backend_pass_unavailable", backend=backend.name, error=str(e))
            return
        except Exception as e:
            # Outermost boundary: one backend's failure must not stop the next
            self._record_failure(state, now)
            report.statuses[backend.name] = BackendRunStatus.FAILED
            report.errors[backend.name] = str(e)
            logger.error(
                "backend_pass_failed",
                backend=backend.name,
                error=str(e),
                consecutive_failures=state.consecutive_failures,
            )
            return

        state.last_success = now
        state.consecutive_failures = 0
        state.last_failure = None
        report.statuses[backend.name] = BackendRunStatus.COMPLETED
        report.results[backend.name] = result

        await self._invalidate(backend, result)

    def _record_failure(self, state: _BackendState, now: datetime) -> None:
        state.consecutive_failures += 1
        state.last_failure = now

    async def _invalidate(self, backend: Backend, result: DecrementResult) -> None:
        collections: list[Collection] = []
        if result.touched_items:
            collections += [backend.product_collection, backend.alert_collection]
        if result.mirrored_count and backend.mirror_collection is not None:
            collections.append(backend.mirror_collection)

        if not collections or self.on_invalidate is None:
            return

        signal = CacheInvalidation(backend=backend.name, collections=collections)
        try:
            outcome = self.on_invalidate(signal)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error("invalidation_failed", backend=backend.name, error=str(e))

    async def on_foreground(self) -> SyncReport | None:
        """Host app came to the foreground."""
        if not self.sync_on_foreground:
            return None
        return await self.run_sync_tasks("app_foreground")

    async def on_app_state_change(self, next_state: str) -> SyncReport | None:
        """Track host lifecycle; syncs on a background/inactive -> active transition."""
        previous, self._app_state = self._app_state, next_state
        logger.debug("app_state_changed", previous=previous, current=next_state)

        if previous in DORMANT_STATES and next_state == ACTIVE:
            return await self.on_foreground()
        return None

    def start(self) -> None:
        """Start one repeating timer per available backend."""
        if self._timers:
            return
        for backend in self.backends:
            if backend.available:
                self._timers.append(asyncio.create_task(self._timer_loop(backend)))
                logger.info("sync_timer_started", backend=backend.name, interval=backend.interval)

    async def _timer_loop(self, backend: Backend) -> None:
        while True:
            await asyncio.sleep(backend.interval)
            task = asyncio.create_task(self.run_sync_tasks(f"{backend.name}_interval"))
            self._passes.add(task)
            task.add_done_callback(self._passes.discard)
            # Stopping the timer must not cut a pass short
            await asyncio.shield(task)

    async def stop(self) -> None:
        """Cancel timers and wait for any pass already under way."""
        for timer in self._timers:
            timer.cancel()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

        if self._passes:
            await asyncio.gather(*self._passes, return_exceptions=True)
        logger.info("sync_timers_stopped")
