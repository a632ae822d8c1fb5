"""File dependency graph: construction, traversal and cycle detection."""

from __future__ import annotations

from contextengine.graph.builder import DependencyGraphBuilder
from contextengine.graph.extractor import (
    ImportDefinition,
    ImportExtractor,
    TreeSitterImportExtractor,
    resolved_import_paths,
)
from contextengine.graph.models import (
    DependencyGraph,
    DependencyGraphStats,
    DependencyNode,
    Direction,
    FileCount,
    ImportChain,
    NodeState,
    RelatedFilesResult,
)

__all__ = [
    "DependencyGraph",
    "DependencyGraphBuilder",
    "DependencyGraphStats",
    "DependencyNode",
    "Direction",
    "FileCount",
    "ImportChain",
    "ImportDefinition",
    "ImportExtractor",
    "NodeState",
    "RelatedFilesResult",
    "TreeSitterImportExtractor",
    "resolved_import_paths",
]
