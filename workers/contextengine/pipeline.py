"""Retrieval pipeline: multi-source retrieval followed by fusion."""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import TYPE_CHECKING

import structlog

from contextengine.constants import DEFAULT_N_FINAL, DEFAULT_N_RETRIEVE
from contextengine.fusion import OrderedDedupFusion
from contextengine.models import RetrievalArguments

if TYPE_CHECKING:
    from contextengine.coordinator import MultiSourceRetriever
    from contextengine.fusion import FusionStrategy
    from contextengine.models import Chunk, RetrievalResult, RetrievalSourceConfig, SourceName

logger = structlog.get_logger()


class RetrievalPipeline:
    """Runs the coordinator and fuses its output into ``n_final`` chunks."""

    def __init__(
        self,
        retriever: MultiSourceRetriever,
        fusion: FusionStrategy | None = None,
        n_retrieve: int = DEFAULT_N_RETRIEVE,
        n_final: int = DEFAULT_N_FINAL,
    ) -> None:
        if n_final < 0:
            msg = f"n_final must be non-negative, got {n_final}"
            raise ValueError(msg)
        self._retriever = retriever
        self._fusion = fusion or OrderedDedupFusion()
        self._n_retrieve = n_retrieve
        self._n_final = n_final

    async def retrieve_from_multiple_sources(
        self,
        args: RetrievalArguments,
        source_config: RetrievalSourceConfig | None = None,
    ) -> RetrievalResult:
        log = logger.bind(query=args.query[:80])
        log.debug("multi-source retrieval started", n_retrieve=args.n_retrieve)
        started = time.perf_counter()
        try:
            result = await self._retriever.retrieve(args, source_config)
        except Exception:
            log.exception("multi-source retrieval failed")
            raise
        log.info(
            "multi-source retrieval completed",
            total_chunks=result.total_chunks,
            failed_sources=[str(s) for s in result.failed_sources()],
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return result

    def fuse_results(self, sources: Mapping[SourceName | str, list[Chunk]]) -> list[Chunk]:
        total = sum(len(chunks) for chunks in sources.values())
        started = time.perf_counter()
        try:
            final = self._fusion.fuse(sources, self._n_final)
        except Exception:
            logger.exception("results fusion failed", total_chunks=total)
            raise
        logger.info(
            "results fusion completed",
            total_chunks=total,
            final_chunks=len(final),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return final

    async def run_enhanced(
        self,
        args: RetrievalArguments | str,
        source_config: RetrievalSourceConfig | None = None,
    ) -> list[Chunk]:
        """Retrieve from every enabled source and fuse the results."""
        if isinstance(args, str):
            args = RetrievalArguments(query=args, n_retrieve=self._n_retrieve)
        result = await self.retrieve_from_multiple_sources(args, source_config)
        return self.fuse_results(result.sources)
