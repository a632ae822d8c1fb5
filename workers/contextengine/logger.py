"""Structured logging for the context engine.

Records flow from structlog through stdlib logging into a queue drained by
a background listener, so emitting a log line never blocks on I/O.
Retrieval-scoped fields are carried with :func:`retrieval_context`.
"""

from __future__ import annotations

import logging
import queue
import sys
from contextlib import contextmanager
from logging.handlers import QueueHandler, QueueListener
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

# Longest query text written to a log line.
MAX_LOGGED_QUERY_CHARS = 200

_QUEUE_SIZE = 10_000

_listener: QueueListener | None = None


def setup_logging(service: str = "context-engine", level: str = "info", json_output: bool = True) -> None:
    """Configure structlog with queued output.

    Call once at startup. Calling again replaces the previous listener.
    ``json_output=False`` renders human-readable console lines instead of JSON.
    """
    stop_logging()
    log_level = getattr(logging, level.upper(), logging.INFO)

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=_QUEUE_SIZE)
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(log_level)

    global _listener
    _listener = QueueListener(records, stdout, respect_handler_level=True)
    _listener.start()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(QueueHandler(records))
    root.setLevel(log_level)

    structlog.configure(
        processors=_processors(service, json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def stop_logging() -> None:
    """Flush and stop the log listener. Safe to call more than once."""
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


@contextmanager
def retrieval_context(retrieval_id: str, query: str | None = None) -> Iterator[None]:
    """Attach *retrieval_id* (and a clipped *query*) to every log line in the block."""
    fields: dict[str, str] = {"retrieval_id": retrieval_id}
    if query is not None:
        fields["query"] = query[:MAX_LOGGED_QUERY_CHARS]
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def _processors(service: str, json_output: bool) -> list[structlog.types.Processor]:
    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _clip_query,
        _add_service(service),
        renderer,
    ]


def _clip_query(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    query = event_dict.get("query")
    if isinstance(query, str) and len(query) > MAX_LOGGED_QUERY_CHARS:
        event_dict["query"] = query[:MAX_LOGGED_QUERY_CHARS] + "..."
    return event_dict


def _add_service(service: str) -> structlog.types.Processor:
    def processor(
        _logger: structlog.types.WrappedLogger,
        _method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["service"] = service
        return event_dict

    return processor
