"""Decrement pass tracing and timing."""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generator

from stocktrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TraceEvent:
    """Individual timed phase of a decrement pass."""

    timestamp: datetime
    phase: str
    backend: str
    duration_ms: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class PassTracer:
    """Traces the phases of one decrement pass over a backend."""

    def __init__(self, backend: str):
        self.backend = backend
        self.events: list[TraceEvent] = []
        self.start_time = time.perf_counter()

    def add_event(
        self,
        phase: str,
        duration_ms: float | None = None,
        **metadata: Any,
    ) -> None:
        """Add a trace event."""
        event = TraceEvent(
            timestamp=datetime.now(timezone.utc),
            phase=phase,
            backend=self.backend,
            duration_ms=duration_ms,
            metadata=metadata,
        )
        self.events.append(event)

        logger.debug(
            "trace_event",
            backend=self.backend,
            phase=phase,
            duration_ms=duration_ms,
            **metadata,
        )

    @contextmanager
    def trace_phase(self, phase: str, **metadata: Any) -> Generator[None, None, None]:
        """Context manager to time a pass phase."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.add_event(phase, duration_ms=duration_ms, **metadata)

    def get_trace_summary(self) -> dict[str, Any]:
        """Get a summary of the trace."""
        total_duration = (time.perf_counter() - self.start_time) * 1000

        phase_durations: dict[str, float] = {}
        for event in self.events:
            if event.duration_ms is not None:
                phase_durations[event.phase] = (
                    phase_durations.get(event.phase, 0.0) + event.duration_ms
                )

        return {
            "backend": self.backend,
            "total_duration_ms": total_duration,
            "total_events": len(self.events),
            "phase_durations_ms": phase_durations,
        }
