"""Import analysis source: files one import hop away from the current file."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from contextengine.graph.models import Direction
from contextengine.sources._base import read_and_chunk

if TYPE_CHECKING:
    from contextengine.chunking import CodeChunker
    from contextengine.graph.builder import DependencyGraphBuilder
    from contextengine.ide import Ide
    from contextengine.models import Chunk, RetrievalArguments

logger = structlog.get_logger()


class ImportAnalysisSource:
    """Chunks the files that the current file imports or is imported by."""

    def __init__(self, builder: DependencyGraphBuilder, ide: Ide, chunker: CodeChunker) -> None:
        self._builder = builder
        self._ide = ide
        self._chunker = chunker

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        if not args.current_file:
            return []
        # No-op once the file has been scanned.
        self._builder.add_file_to_graph(args.current_file)

        related = self._builder.find_related_files(
            args.current_file,
            max_depth=1,
            direction=Direction.BOTH,
            max_files=args.n_retrieve,
        )
        logger.debug("import analysis related files", current_file=args.current_file, related=related.count)
        return await read_and_chunk(
            self._ide,
            self._chunker,
            related.all_files,
            args.n_retrieve,
            metadata={"source": "import_analysis"},
        )
