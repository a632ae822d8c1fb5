"""Dependency graph over file import relationships.

Nodes live in an arena: each file gets an integer index on first sight and
edges are stored as insertion-ordered index maps in both directions. File
paths are translated to indices only at the public API boundary.
"""

from __future__ import annotations

import time
from collections import deque
from typing import TYPE_CHECKING

import structlog

from contextengine.constants import RELATED_MAX_DEPTH, RELATED_MAX_FILES, STATS_TOP_N
from contextengine.graph.extractor import resolved_import_paths
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

if TYPE_CHECKING:
    from collections.abc import Iterable

    from contextengine.graph.extractor import ImportExtractor

logger = structlog.get_logger()


class DependencyGraphBuilder:
    """Builds and queries the file dependency graph.

    Single writer: callers must not run ``build_graph`` or
    ``add_file_to_graph`` concurrently. Nodes are never removed; a rebuild
    is the only way to drop files.
    """

    def __init__(self, extractor: ImportExtractor) -> None:
        self._extractor = extractor
        self._paths: list[str] = []
        self._index: dict[str, int] = {}
        self._imports: list[dict[int, None]] = []
        self._imported_by: list[dict[int, None]] = []
        self._state: list[NodeState] = []
        self._updated: list[float] = []
        self._last_built = time.time()
        self._cycles: list[list[str]] | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def build_graph(self, files: Iterable[str], detect_circular: bool = False) -> DependencyGraph:
        """Clear the graph and rebuild it from *files*."""
        started = time.perf_counter()
        self._clear()
        for filepath in files:
            self.add_file_to_graph(filepath)
        self._last_built = time.time()

        if detect_circular:
            self.detect_circular_dependencies()

        logger.info(
            "dependency graph built",
            nodes=len(self._paths),
            edges=self._edge_count(),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
        return self.get_graph()

    def add_file_to_graph(self, filepath: str) -> None:
        """Scan *filepath* and add its import edges.

        No-op when the file was already scanned. A node that exists only
        because another file imports it is scanned and kept, along with its
        reverse edges.
        """
        idx = self._index.get(filepath)
        if idx is not None and self._state[idx] is NodeState.SCANNED:
            return
        if idx is None:
            idx = self._new_node(filepath)

        for imported in resolved_import_paths(self._extractor.get(filepath)):
            target = self._index.get(imported)
            if target is None:
                target = self._new_node(imported)
            self._imports[idx][target] = None
            self._imported_by[target][idx] = None
            self._updated[target] = time.time()

        self._state[idx] = NodeState.SCANNED
        self._updated[idx] = time.time()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_related_files(
        self,
        target_file: str,
        max_depth: int = RELATED_MAX_DEPTH,
        direction: Direction = Direction.BOTH,
        max_files: int = RELATED_MAX_FILES,
        include_self: bool = False,
    ) -> RelatedFilesResult:
        """Breadth-first walk from *target_file*.

        Each file lands in the bucket of its shortest distance. The walk
        stops below *max_depth* and once *max_files* files are collected.
        """
        result = RelatedFilesResult(source_file=target_file)
        if max_files <= 0:
            return result

        start = self._index.get(target_file)
        if start is None:
            if include_self:
                result.files_by_depth[0] = {target_file}
                result.all_files.append(target_file)
            return result

        visited = {start}
        queue: deque[tuple[int, int]] = deque([(start, 0)])
        while queue:
            idx, depth = queue.popleft()

            if depth > 0 or include_self:
                result.files_by_depth.setdefault(depth, set()).add(self._paths[idx])
                result.all_files.append(self._paths[idx])
                if len(result.all_files) >= max_files:
                    break

            if depth >= max_depth:
                continue

            for neighbor in self._neighbors(idx, direction):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append((neighbor, depth + 1))

        return result

    def get_import_chain(self, from_file: str, to_file: str) -> ImportChain | None:
        """Shortest chain of import edges from *from_file* to *to_file*."""
        if from_file == to_file:
            return ImportChain(from_file=from_file, to_file=to_file, path=[from_file])

        start = self._index.get(from_file)
        goal = self._index.get(to_file)
        if start is None or goal is None:
            return None

        parent: dict[int, int] = {start: start}
        queue: deque[int] = deque([start])
        while queue:
            idx = queue.popleft()
            if idx == goal:
                break
            for neighbor in self._imports[idx]:
                if neighbor not in parent:
                    parent[neighbor] = idx
                    queue.append(neighbor)

        if goal not in parent:
            return None

        chain = [goal]
        while chain[-1] != start:
            chain.append(parent[chain[-1]])
        chain.reverse()
        return ImportChain(from_file=from_file, to_file=to_file, path=[self._paths[i] for i in chain])

    def detect_circular_dependencies(self) -> list[list[str]]:
        """Find import cycles by depth-first search.

        Every back edge to a file on the current path yields that part of
        the path closed by the repeated file, so ``cycle[0] == cycle[-1]``.
        Rotations of the same cycle are reported as found. The result is
        kept as the latest detection pass and counted by :meth:`get_stats`.
        """
        visited = [False] * len(self._paths)
        on_path = [False] * len(self._paths)
        cycles: list[list[str]] = []

        for root in range(len(self._paths)):
            if visited[root]:
                continue
            visited[root] = on_path[root] = True
            path = [root]
            stack = [iter(self._imports[root])]
            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_path[path.pop()] = False
                    continue
                if not visited[neighbor]:
                    visited[neighbor] = on_path[neighbor] = True
                    path.append(neighbor)
                    stack.append(iter(self._imports[neighbor]))
                elif on_path[neighbor]:
                    cycle = path[path.index(neighbor) :] + [neighbor]
                    cycles.append([self._paths[i] for i in cycle])

        self._cycles = cycles
        if cycles:
            logger.info("circular dependencies found", count=len(cycles))
        return cycles

    def get_stats(self) -> DependencyGraphStats:
        total_files = len(self._paths)
        total_imports = self._edge_count()
        by_imports = [FileCount(self._paths[i], len(self._imports[i])) for i in range(total_files)]
        by_imported = [FileCount(self._paths[i], len(self._imported_by[i])) for i in range(total_files)]
        return DependencyGraphStats(
            total_files=total_files,
            total_imports=total_imports,
            avg_imports_per_file=total_imports / total_files if total_files else 0.0,
            most_imports=sorted(by_imports, key=lambda fc: fc.count, reverse=True)[:STATS_TOP_N],
            most_imported_by=sorted(by_imported, key=lambda fc: fc.count, reverse=True)[:STATS_TOP_N],
            circular_dependency_count=len(self._cycles or []),
            isolated_files=[
                self._paths[i] for i in range(total_files) if not self._imports[i] and not self._imported_by[i]
            ],
        )

    def get_graph(self) -> DependencyGraph:
        """Snapshot of the current graph."""
        return DependencyGraph(
            nodes={path: self._node(idx) for idx, path in enumerate(self._paths)},
            node_count=len(self._paths),
            edge_count=self._edge_count(),
            last_built=self._last_built,
            circular_dependencies=list(self._cycles) if self._cycles is not None else None,
        )

    def get_node(self, filepath: str) -> DependencyNode | None:
        idx = self._index.get(filepath)
        return self._node(idx) if idx is not None else None

    def has_file(self, filepath: str) -> bool:
        return filepath in self._index

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _clear(self) -> None:
        self._paths.clear()
        self._index.clear()
        self._imports.clear()
        self._imported_by.clear()
        self._state.clear()
        self._updated.clear()
        self._cycles = None

    def _new_node(self, filepath: str) -> int:
        idx = len(self._paths)
        self._paths.append(filepath)
        self._index[filepath] = idx
        self._imports.append({})
        self._imported_by.append({})
        self._state.append(NodeState.REFERENCED)
        self._updated.append(time.time())
        return idx

    def _node(self, idx: int) -> DependencyNode:
        return DependencyNode(
            filepath=self._paths[idx],
            imports=[self._paths[i] for i in self._imports[idx]],
            imported_by=[self._paths[i] for i in self._imported_by[idx]],
            last_updated=self._updated[idx],
            state=self._state[idx],
        )

    def _neighbors(self, idx: int, direction: Direction) -> list[int]:
        neighbors: list[int] = []
        if direction in (Direction.IMPORTS, Direction.BOTH):
            neighbors.extend(self._imports[idx])
        if direction in (Direction.IMPORTED_BY, Direction.BOTH):
            neighbors.extend(self._imported_by[idx])
        return neighbors

    def _edge_count(self) -> int:
        return sum(len(edges) for edges in self._imports)
