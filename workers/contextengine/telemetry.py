"""Error telemetry collaborators."""

from __future__ import annotations

from typing import Protocol

import structlog

logger = structlog.get_logger()


class Telemetry(Protocol):
    """Receives errors that were contained instead of raised."""

    def capture_error(self, tag: str, error: BaseException) -> None: ...


class LogTelemetry:
    """Reports errors as structured warning log entries."""

    def capture_error(self, tag: str, error: BaseException) -> None:
        logger.warning("captured error", tag=tag, error_type=type(error).__name__, error=str(error))


def capture_error_safely(telemetry: Telemetry, tag: str, error: BaseException) -> None:
    """Forward *error* to *telemetry*; a failing collector is logged, never raised."""
    try:
        telemetry.capture_error(tag, error)
    except Exception:
        logger.warning("telemetry capture failed", tag=tag, exc_info=True)
