"""Combining per-source chunk lists into one bounded, de-duplicated list."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from contextengine.models import DEFAULT_SOURCE_WEIGHTS, SOURCE_ORDER, Chunk, FusionOptions, SourceName

# Reciprocal rank fusion damping constant.
_RRF_K = 60


def _normalize(sources: Mapping[SourceName | str, list[Chunk]]) -> dict[SourceName, list[Chunk]]:
    """Coerce keys to SourceName. Unknown names raise ValueError."""
    return {SourceName(name): chunks for name, chunks in sources.items()}


def _check_max_final(max_final: int) -> None:
    if max_final < 0:
        msg = f"max_final must be non-negative, got {max_final}"
        raise ValueError(msg)


def fuse(sources: Mapping[SourceName | str, list[Chunk]], max_final: int) -> list[Chunk]:
    """Concatenate chunks in source order, keep the first per digest, truncate.

    Sources missing from *sources* count as empty.
    """
    _check_max_final(max_final)
    by_name = _normalize(sources)

    seen: set[str] = set()
    fused: list[Chunk] = []
    for name in SOURCE_ORDER:
        for chunk in by_name.get(name, ()):
            if len(fused) >= max_final:
                return fused
            if chunk.digest in seen:
                continue
            seen.add(chunk.digest)
            fused.append(chunk)
    return fused


class FusionStrategy(Protocol):
    """Turns per-source results into the final chunk list."""

    def fuse(self, sources: Mapping[SourceName | str, list[Chunk]], max_final: int) -> list[Chunk]: ...


class OrderedDedupFusion:
    """Default strategy: declared source order plus exact-digest de-duplication."""

    def fuse(self, sources: Mapping[SourceName | str, list[Chunk]], max_final: int) -> list[Chunk]:
        return fuse(sources, max_final)


class WeightedRankFusion:
    """Weighted reciprocal rank fusion across sources.

    A chunk scores ``weight(source) / (k + rank)`` for every source that
    returned it, summed over sources. Ties keep declared source order.
    """

    def __init__(self, options: FusionOptions | None = None, k: int = _RRF_K) -> None:
        self._weights = dict(options.source_weights) if options else dict(DEFAULT_SOURCE_WEIGHTS)
        self._k = k

    def fuse(self, sources: Mapping[SourceName | str, list[Chunk]], max_final: int) -> list[Chunk]:
        _check_max_final(max_final)
        by_name = _normalize(sources)

        scores: dict[str, float] = {}
        first: dict[str, Chunk] = {}
        for name in SOURCE_ORDER:
            weight = self._weights.get(name, 0.0)
            for rank, chunk in enumerate(by_name.get(name, ())):
                if chunk.digest not in first:
                    first[chunk.digest] = chunk
                    scores[chunk.digest] = 0.0
                scores[chunk.digest] += weight / (self._k + rank + 1)

        ranked = sorted(first, key=lambda digest: scores[digest], reverse=True)
        return [first[digest] for digest in ranked[:max_final]]
