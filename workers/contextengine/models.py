"""Shared value types for multi-source retrieval and fusion."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from contextengine.constants import DEFAULT_N_FINAL, DEFAULT_N_RETRIEVE, MAX_N_RETRIEVE


class SourceName(StrEnum):
    """Retrieval sources, declared in fusion order."""

    FTS = "fts"
    EMBEDDINGS = "embeddings"
    RECENTLY_EDITED = "recently_edited"
    REPO_MAP = "repo_map"
    LSP_DEFINITIONS = "lsp_definitions"
    IMPORT_ANALYSIS = "import_analysis"
    RECENTLY_VISITED_RANGES = "recently_visited_ranges"
    STATIC_CONTEXT = "static_context"
    TOOL_BASED_SEARCH = "tool_based_search"


# Concatenation order used by fusion. Enum iteration order is declaration order.
SOURCE_ORDER: tuple[SourceName, ...] = tuple(SourceName)


class Chunk(BaseModel):
    """A contiguous slice of a file with position metadata.

    ``digest`` is the identity key: two chunks with the same digest are the
    same artifact regardless of their other fields.
    """

    content: str
    filepath: str
    start_line: int
    end_line: int
    digest: str
    index: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class BranchAndDir(BaseModel):
    """A repository branch/directory pair that scopes index queries."""

    branch: str
    directory: str


class SourceMetadata(BaseModel):
    """Outcome of one source call within a retrieval."""

    source: SourceName
    count: int
    time_ms: int
    success: bool
    error: str | None = None


def empty_sources() -> dict[SourceName, list[Chunk]]:
    """Return a sources map holding an empty list for every source."""
    return {name: [] for name in SOURCE_ORDER}


class RetrievalResult(BaseModel):
    """Aggregate of one ``retrieve_all`` call."""

    sources: dict[SourceName, list[Chunk]] = Field(default_factory=empty_sources)
    metadata: list[SourceMetadata] = Field(default_factory=list)
    total_time_ms: int = 0

    @property
    def total_chunks(self) -> int:
        return sum(len(chunks) for chunks in self.sources.values())

    def failed_sources(self) -> list[SourceName]:
        """Sources whose call raised during this retrieval."""
        return [m.source for m in self.metadata if not m.success]


class RetrievalSourceConfig(BaseModel):
    """Which sources a retrieval should query.

    Implemented sources are on by default; placeholder and experimental
    sources stay off unless explicitly enabled.
    """

    enable_fts: bool = True
    enable_embeddings: bool = True
    enable_recently_edited: bool = True
    enable_repo_map: bool = True
    enable_lsp_definitions: bool = True
    enable_import_analysis: bool = False
    enable_recently_visited_ranges: bool = False
    enable_static_context: bool = False
    enable_tool_based_search: bool = False

    def is_enabled(self, source: SourceName) -> bool:
        return bool(getattr(self, f"enable_{source.value}"))

    def enabled_sources(self) -> list[SourceName]:
        """Enabled sources in declared order."""
        return [name for name in SOURCE_ORDER if self.is_enabled(name)]


DEFAULT_SOURCE_CONFIG = RetrievalSourceConfig()


# Forward-looking per-source weights. The base fusion ignores them.
DEFAULT_SOURCE_WEIGHTS: dict[SourceName, float] = {
    SourceName.FTS: 0.15,
    SourceName.EMBEDDINGS: 0.25,
    SourceName.RECENTLY_EDITED: 0.15,
    SourceName.REPO_MAP: 0.1,
    SourceName.LSP_DEFINITIONS: 0.15,
    SourceName.IMPORT_ANALYSIS: 0.1,
    SourceName.RECENTLY_VISITED_RANGES: 0.05,
    SourceName.STATIC_CONTEXT: 0.03,
    SourceName.TOOL_BASED_SEARCH: 0.02,
}


class FusionOptions(BaseModel):
    """Options for combining per-source results."""

    max_chunks: int = Field(default=DEFAULT_N_FINAL, ge=0)
    source_weights: dict[SourceName, float] = Field(default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS))


class RetrievalArguments(BaseModel):
    """Arguments handed to every source adapter for one retrieval."""

    query: str
    tags: list[BranchAndDir] = Field(default_factory=list)
    filter_directory: str | None = None
    n_retrieve: int = DEFAULT_N_RETRIEVE
    current_file: str | None = None

    @field_validator("n_retrieve")
    @classmethod
    def _clamp_n_retrieve(cls, v: int) -> int:
        return max(1, min(v, MAX_N_RETRIEVE))
