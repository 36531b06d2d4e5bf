"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from stocktrack.config import get_settings


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level)

    if settings.log_format == "json":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
        handler.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class EngineLogger:
    """Specialized logger for decrement and alert engine events."""

    def __init__(self, component: str, backend: str | None = None):
        self.component = component
        self.backend = backend
        self.logger = get_logger(component)

    def _base(self) -> dict[str, Any]:
        data: dict[str, Any] = {"component": self.component}
        if self.backend is not None:
            data["backend"] = self.backend
        return data

    def log_pass(
        self,
        action: str,
        duration_ms: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Log a decrement pass milestone with structured data."""
        log_data = self._base()
        log_data["action"] = action

        if duration_ms is not None:
            log_data["duration_ms"] = duration_ms

        log_data.update(kwargs)
        self.logger.info("decrement_pass", **log_data)

    def log_item_skipped(self, item_id: str, reason: str, **kwargs: Any) -> None:
        """Log an item excluded from the current pass."""
        self.logger.warning(
            "item_skipped",
            item_id=item_id,
            reason=reason,
            **self._base(),
            **kwargs,
        )

    def log_write_failure(self, item_id: str, error: str, **kwargs: Any) -> None:
        """Log a staged write that did not persist."""
        self.logger.error(
            "item_write_failed",
            item_id=item_id,
            error=error,
            **self._base(),
            **kwargs,
        )

    def log_alert_transition(
        self,
        item_id: str,
        transition: str,
        quantity: int,
        threshold: int,
        **kwargs: Any,
    ) -> None:
        """Log a low-stock alert state change."""
        self.logger.info(
            "alert_transition",
            item_id=item_id,
            transition=transition,
            quantity=quantity,
            threshold=threshold,
            **self._base(),
            **kwargs,
        )

    def log_error(self, error: str, **kwargs: Any) -> None:
        """Log an error."""
        self.logger.error(
            "engine_error",
            error=error,
            **self._base(),
            **kwargs,
        )
