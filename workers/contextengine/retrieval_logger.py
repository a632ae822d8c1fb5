"""Structured event sink for retrieval runs.

One ``RetrievalLogger`` is constructed per coordinator and passed in
explicitly. It records per-source start/finish events, derives performance
metrics when a retrieval completes and can export those metrics in batches
to an HTTP endpoint.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal

import httpx
import structlog
from pydantic import BaseModel, Field

from contextengine.constants import LOG_API_BATCH_SIZE, LOG_API_TIMEOUT_SECONDS

logger = structlog.get_logger()


class RetrievalLoggerConfig(BaseModel):
    enabled: bool = True
    debug_mode: bool = False
    log_performance: bool = True
    api_endpoint: str = ""
    api_key: str = ""
    api_batch_size: int = Field(default=LOG_API_BATCH_SIZE, ge=1)
    api_timeout_seconds: float = LOG_API_TIMEOUT_SECONDS


class SourceLogEntry(BaseModel):
    source: str
    status: Literal["started", "completed", "error"]
    timestamp: float
    duration_ms: int | None = None
    chunks_retrieved: int | None = None
    error: str | None = None
    error_type: str | None = None


class SourceMetric(BaseModel):
    source: str
    duration_ms: int
    chunks_retrieved: int
    success: bool


class PerformanceMetrics(BaseModel):
    """Summary of one finished retrieval, as exported to the log API."""

    retrieval_id: str
    total_duration_ms: int
    total_chunks: int
    source_metrics: list[SourceMetric] = Field(default_factory=list)
    query: str
    timestamp: float


class _RetrievalContext(BaseModel):
    retrieval_id: str
    query: str
    n_retrieve: int
    enabled_sources: list[str]
    started: float
    entries: list[SourceLogEntry] = Field(default_factory=list)


class RetrievalLogger:
    """Event sink for retrieval runs with optional batched HTTP export."""

    def __init__(self, config: RetrievalLoggerConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.config = config or RetrievalLoggerConfig()
        self._client = client
        self._owns_client = client is None
        self._active: dict[str, _RetrievalContext] = {}
        self._batch: list[dict[str, object]] = []

    @property
    def pending(self) -> int:
        """Number of metric records waiting for export."""
        return len(self._batch)

    def log_retrieval_start(self, query: str, n_retrieve: int, enabled_sources: list[str]) -> str:
        """Open a retrieval context and return its id."""
        retrieval_id = f"retrieval_{uuid.uuid4().hex[:12]}"
        self._active[retrieval_id] = _RetrievalContext(
            retrieval_id=retrieval_id,
            query=query,
            n_retrieve=n_retrieve,
            enabled_sources=list(enabled_sources),
            started=time.perf_counter(),
        )
        if self.config.enabled:
            logger.info(
                "retrieval started",
                retrieval_id=retrieval_id,
                query=query if self.config.debug_mode else query[:80],
                n_retrieve=n_retrieve,
                enabled_sources=enabled_sources,
            )
        return retrieval_id

    def log_source_start(self, retrieval_id: str, source: str) -> None:
        self._record(retrieval_id, SourceLogEntry(source=source, status="started", timestamp=time.time()))
        if self.config.enabled:
            logger.debug("source started", retrieval_id=retrieval_id, source=source)

    def log_source_complete(self, retrieval_id: str, source: str, chunks_retrieved: int, duration_ms: int) -> None:
        self._record(
            retrieval_id,
            SourceLogEntry(
                source=source,
                status="completed",
                timestamp=time.time(),
                duration_ms=duration_ms,
                chunks_retrieved=chunks_retrieved,
            ),
        )
        if self.config.enabled:
            logger.info(
                "source completed",
                retrieval_id=retrieval_id,
                source=source,
                duration_ms=duration_ms,
                chunks_retrieved=chunks_retrieved,
            )

    def log_source_error(self, retrieval_id: str, source: str, error: BaseException, duration_ms: int) -> None:
        self._record(
            retrieval_id,
            SourceLogEntry(
                source=source,
                status="error",
                timestamp=time.time(),
                duration_ms=duration_ms,
                error=str(error),
                error_type=type(error).__name__,
            ),
        )
        if self.config.enabled:
            logger.error(
                "source failed",
                retrieval_id=retrieval_id,
                source=source,
                duration_ms=duration_ms,
                error=str(error),
                exc_info=error if self.config.debug_mode else None,
            )

    async def log_retrieval_complete(self, retrieval_id: str, total_chunks: int) -> PerformanceMetrics | None:
        """Close the retrieval context; returns its metrics, or None for an unknown id."""
        context = self._active.pop(retrieval_id, None)
        if context is None:
            logger.warning("no retrieval context", retrieval_id=retrieval_id)
            return None

        total_duration_ms = int((time.perf_counter() - context.started) * 1000)
        if self.config.enabled:
            logger.info(
                "retrieval completed",
                retrieval_id=retrieval_id,
                total_duration_ms=total_duration_ms,
                total_chunks=total_chunks,
            )

        metrics = PerformanceMetrics(
            retrieval_id=retrieval_id,
            total_duration_ms=total_duration_ms,
            total_chunks=total_chunks,
            source_metrics=[
                SourceMetric(
                    source=entry.source,
                    duration_ms=entry.duration_ms or 0,
                    chunks_retrieved=entry.chunks_retrieved or 0,
                    success=entry.status == "completed",
                )
                for entry in context.entries
                if entry.status != "started"
            ],
            query=context.query,
            timestamp=time.time(),
        )
        if self.config.enabled and self.config.log_performance:
            logger.info("retrieval performance", **metrics.model_dump(exclude={"query"}))
            if self.config.api_endpoint:
                self._batch.append(metrics.model_dump())
                if len(self._batch) >= self.config.api_batch_size:
                    await self.flush_batch()
        return metrics

    def discard(self, retrieval_id: str) -> None:
        """Drop an open retrieval context without producing metrics."""
        if self._active.pop(retrieval_id, None) is not None:
            logger.debug("retrieval context discarded", retrieval_id=retrieval_id)

    async def flush_batch(self) -> bool:
        """POST pending metrics as ``{"logs": [...]}``.

        On failure the batch is kept, ahead of anything queued meanwhile,
        for the next flush. Returns True when nothing is left pending.
        """
        if not self._batch or not self.config.api_endpoint:
            return not self._batch

        batch, self._batch = self._batch, []
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            resp = await self._http().post(self.config.api_endpoint, json={"logs": batch}, headers=headers)
            resp.raise_for_status()
        except Exception as exc:
            logger.warning("retrieval log export failed", batch_size=len(batch), error=str(exc))
            self._batch[:0] = batch
            return False

        logger.debug("retrieval logs exported", batch_size=len(batch))
        return True

    async def close(self) -> None:
        """Flush what is pending and close the HTTP client if this logger created it."""
        await self.flush_batch()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.api_timeout_seconds)
        return self._client

    def _record(self, retrieval_id: str, entry: SourceLogEntry) -> None:
        context = self._active.get(retrieval_id)
        if context is not None:
            context.entries.append(entry)
