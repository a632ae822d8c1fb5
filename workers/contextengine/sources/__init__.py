"""Retrieval source adapters and the registry the coordinator dispatches through."""

from __future__ import annotations

from typing import TYPE_CHECKING

from contextengine.chunking import CodeChunker
from contextengine.models import SourceName
from contextengine.sources._base import ChunkSource, StubSource, TextIndex, VectorIndex
from contextengine.sources.embeddings import EmbeddingsSource
from contextengine.sources.fts import FullTextSource
from contextengine.sources.import_analysis import ImportAnalysisSource
from contextengine.sources.lsp_definitions import LspDefinitionsSource, LspRetrievalConfig
from contextengine.sources.recently_edited import RecentFiles, RecentlyEditedSource
from contextengine.sources.repo_map import RepoMapSource
from contextengine.sources.tool_based import ToolBasedSource

if TYPE_CHECKING:
    from contextengine.graph.builder import DependencyGraphBuilder
    from contextengine.ide import Ide
    from contextengine.llm import ChatModel
    from contextengine.tools import ToolRegistry

__all__ = [
    "ChunkSource",
    "EmbeddingsSource",
    "FullTextSource",
    "ImportAnalysisSource",
    "LspDefinitionsSource",
    "LspRetrievalConfig",
    "RecentFiles",
    "RecentlyEditedSource",
    "RepoMapSource",
    "SourceRegistry",
    "StubSource",
    "TextIndex",
    "ToolBasedSource",
    "VectorIndex",
    "build_default_registry",
]


class SourceRegistry:
    """Lookup table from source name to adapter."""

    def __init__(self) -> None:
        self._sources: dict[SourceName, ChunkSource] = {}

    def register(self, name: SourceName, source: ChunkSource) -> None:
        """Register *source* under *name*, replacing any previous adapter."""
        self._sources[SourceName(name)] = source

    def get(self, name: SourceName) -> ChunkSource:
        """Return the adapter for *name*. Raises LookupError if none is registered."""
        try:
            return self._sources[name]
        except KeyError:
            msg = f"no adapter registered for source {name!s}"
            raise LookupError(msg) from None

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    @property
    def names(self) -> list[SourceName]:
        return list(self._sources)


def build_default_registry(
    ide: Ide,
    *,
    text_index: TextIndex | None = None,
    vector_index: VectorIndex | None = None,
    llm: ChatModel | None = None,
    graph_builder: DependencyGraphBuilder | None = None,
    tool_registry: ToolRegistry | None = None,
    workspace_path: str | None = None,
    recent_files: RecentFiles | None = None,
    chunker: CodeChunker | None = None,
    lsp_config: LspRetrievalConfig | None = None,
) -> SourceRegistry:
    """Create a registry with an adapter for every source.

    A source whose collaborator is not supplied gets a StubSource, so it
    succeeds with no chunks instead of failing.
    """
    chunker = chunker or CodeChunker()
    registry = SourceRegistry()

    registry.register(SourceName.FTS, FullTextSource(text_index) if text_index is not None else StubSource())
    registry.register(SourceName.EMBEDDINGS, EmbeddingsSource(vector_index))
    registry.register(
        SourceName.RECENTLY_EDITED,
        RecentlyEditedSource(ide, recent_files if recent_files is not None else RecentFiles(), chunker),
    )
    registry.register(SourceName.REPO_MAP, RepoMapSource(llm, ide, chunker) if llm is not None else StubSource())
    registry.register(SourceName.LSP_DEFINITIONS, LspDefinitionsSource(ide, lsp_config))
    registry.register(
        SourceName.IMPORT_ANALYSIS,
        ImportAnalysisSource(graph_builder, ide, chunker) if graph_builder is not None else StubSource(),
    )
    # Not implemented yet.
    registry.register(SourceName.RECENTLY_VISITED_RANGES, StubSource())
    registry.register(SourceName.STATIC_CONTEXT, StubSource())

    if llm is not None and workspace_path is not None:
        if tool_registry is None:
            from contextengine.tools import build_default_registry as build_tool_registry

            tool_registry = build_tool_registry()
        registry.register(SourceName.TOOL_BASED_SEARCH, ToolBasedSource(llm, tool_registry, workspace_path))
    else:
        registry.register(SourceName.TOOL_BASED_SEARCH, StubSource())
    return registry
