"""Value types of the file dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class NodeState(StrEnum):
    """Whether a node's own imports have been extracted."""

    # Created only because another file imports it.
    REFERENCED = "referenced"
    SCANNED = "scanned"


class Direction(StrEnum):
    """Edge direction followed by related-file traversal."""

    IMPORTS = "imports"
    IMPORTED_BY = "imported_by"
    BOTH = "both"


@dataclass
class DependencyNode:
    """Snapshot of one file in the graph. Edge lists keep insertion order."""

    filepath: str
    imports: list[str] = field(default_factory=list)
    imported_by: list[str] = field(default_factory=list)
    last_updated: float = 0.0
    state: NodeState = NodeState.REFERENCED

    @property
    def import_count(self) -> int:
        return len(self.imports)

    @property
    def imported_by_count(self) -> int:
        return len(self.imported_by)


@dataclass
class DependencyGraph:
    """Snapshot of the whole graph plus build metadata."""

    nodes: dict[str, DependencyNode] = field(default_factory=dict)
    node_count: int = 0
    edge_count: int = 0
    last_built: float = 0.0
    circular_dependencies: list[list[str]] | None = None


@dataclass(frozen=True)
class ImportChain:
    """Shortest path along import edges; ``length`` counts edges."""

    from_file: str
    to_file: str
    path: list[str]

    @property
    def length(self) -> int:
        return len(self.path) - 1


@dataclass
class RelatedFilesResult:
    """Files reachable from ``source_file``, bucketed by BFS depth."""

    source_file: str
    files_by_depth: dict[int, set[str]] = field(default_factory=dict)
    all_files: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.all_files)


@dataclass(frozen=True)
class FileCount:
    filepath: str
    count: int


@dataclass
class DependencyGraphStats:
    total_files: int = 0
    total_imports: int = 0
    avg_imports_per_file: float = 0.0
    most_imports: list[FileCount] = field(default_factory=list)
    most_imported_by: list[FileCount] = field(default_factory=list)
    circular_dependency_count: int = 0
    isolated_files: list[str] = field(default_factory=list)
