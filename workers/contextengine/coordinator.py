"""Concurrent fan-out over the enabled retrieval sources."""

from __future__ import annotations

import asyncio
import time
from contextlib import nullcontext
from typing import TYPE_CHECKING

import structlog

from contextengine.constants import DEFAULT_N_RETRIEVE
from contextengine.logger import retrieval_context
from contextengine.models import (
    DEFAULT_SOURCE_CONFIG,
    RetrievalArguments,
    RetrievalResult,
    RetrievalSourceConfig,
    SourceMetadata,
    SourceName,
)
from contextengine.telemetry import LogTelemetry, capture_error_safely

if TYPE_CHECKING:
    from contextengine.models import BranchAndDir, Chunk
    from contextengine.retrieval_logger import RetrievalLogger
    from contextengine.sources import SourceRegistry
    from contextengine.telemetry import Telemetry

logger = structlog.get_logger()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class MultiSourceRetriever:
    """Queries every enabled source concurrently and records how each fared.

    A failing source never fails the retrieval: its chunk list stays empty,
    the error goes to telemetry and its metadata entry is marked
    unsuccessful. Metadata entries are appended in completion order.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        sink: RetrievalLogger | None = None,
        telemetry: Telemetry | None = None,
        source_config: RetrievalSourceConfig | None = None,
    ) -> None:
        self._registry = registry
        self._sink = sink
        self._telemetry = telemetry or LogTelemetry()
        self._source_config = source_config or DEFAULT_SOURCE_CONFIG

    async def retrieve_all(
        self,
        query: str,
        tags: list[BranchAndDir] | None = None,
        filter_directory: str | None = None,
        n_retrieve: int = DEFAULT_N_RETRIEVE,
        source_config: RetrievalSourceConfig | None = None,
        current_file: str | None = None,
    ) -> RetrievalResult:
        """Run all enabled sources and collect their chunks and metadata."""
        args = RetrievalArguments(
            query=query,
            tags=tags or [],
            filter_directory=filter_directory,
            n_retrieve=n_retrieve,
            current_file=current_file,
        )
        return await self.retrieve(args, source_config)

    async def retrieve(
        self,
        args: RetrievalArguments,
        source_config: RetrievalSourceConfig | None = None,
    ) -> RetrievalResult:
        """Same as :meth:`retrieve_all` for prebuilt arguments."""
        config = source_config or self._source_config
        enabled = config.enabled_sources()
        result = RetrievalResult()

        retrieval_id = self._start(args, enabled)
        scope = retrieval_context(retrieval_id, args.query) if retrieval_id else nullcontext()

        try:
            with scope:
                started = time.perf_counter()
                await asyncio.gather(*(self._run_source(name, args, result, retrieval_id) for name in enabled))
                result.total_time_ms = _elapsed_ms(started)

                await self._complete(retrieval_id, result.total_chunks)

                logger.debug(
                    "multi-source retrieval finished",
                    sources=len(enabled),
                    failed=[str(s) for s in result.failed_sources()],
                    total_chunks=result.total_chunks,
                    total_time_ms=result.total_time_ms,
                )
        finally:
            # No-op once the retrieval completed; clears contexts of cancelled runs.
            self._notify("discard", retrieval_id)
        return result

    async def _run_source(
        self,
        name: SourceName,
        args: RetrievalArguments,
        result: RetrievalResult,
        retrieval_id: str,
    ) -> None:
        self._notify("log_source_start", retrieval_id, name)
        started = time.perf_counter()

        try:
            chunks: list[Chunk] = await self._registry.get(name).retrieve(args)
        except Exception as exc:
            time_ms = _elapsed_ms(started)
            result.sources[name] = []
            capture_error_safely(self._telemetry, f"multi_source_{name}_retrieval", exc)
            result.metadata.append(
                SourceMetadata(source=name, count=0, time_ms=time_ms, success=False, error=str(exc))
            )
            self._notify("log_source_error", retrieval_id, name, exc, time_ms)
            return

        time_ms = _elapsed_ms(started)
        result.sources[name] = chunks
        result.metadata.append(SourceMetadata(source=name, count=len(chunks), time_ms=time_ms, success=True))
        self._notify("log_source_complete", retrieval_id, name, len(chunks), time_ms)

    # ------------------------------------------------------------------
    # Event sink calls. A failing sink is logged and never fails retrieval.
    # ------------------------------------------------------------------

    def _start(self, args: RetrievalArguments, enabled: list[SourceName]) -> str:
        if self._sink is None:
            return ""
        try:
            return self._sink.log_retrieval_start(args.query, args.n_retrieve, [str(s) for s in enabled])
        except Exception:
            logger.warning("retrieval sink failed", call="log_retrieval_start", exc_info=True)
            return ""

    async def _complete(self, retrieval_id: str, total_chunks: int) -> None:
        if self._sink is None or not retrieval_id:
            return
        try:
            await self._sink.log_retrieval_complete(retrieval_id, total_chunks)
        except Exception:
            logger.warning("retrieval sink failed", call="log_retrieval_complete", exc_info=True)

    def _notify(self, call: str, retrieval_id: str, *args: object) -> None:
        if self._sink is None or not retrieval_id:
            return
        try:
            getattr(self._sink, call)(retrieval_id, *args)
        except Exception:
            logger.warning("retrieval sink failed", call=call, exc_info=True)
