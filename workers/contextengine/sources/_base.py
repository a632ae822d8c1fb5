"""Base types for the retrieval source framework."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from contextengine.chunking import CodeChunker
    from contextengine.ide import Ide
    from contextengine.models import BranchAndDir, Chunk, RetrievalArguments

logger = structlog.get_logger()


class ChunkSource(Protocol):
    """Interface that every retrieval source satisfies.

    Implementations truncate to ``args.n_retrieve`` themselves and raise on
    failure; the coordinator turns exceptions into source metadata.
    """

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]: ...


class TextIndex(Protocol):
    """Full-text search index collaborator."""

    async def retrieve(
        self,
        n: int,
        terms: list[str],
        tags: list[BranchAndDir],
        directory: str | None = None,
    ) -> list[Chunk]: ...


class VectorIndex(Protocol):
    """Embedding similarity index collaborator."""

    async def retrieve(
        self,
        query: str,
        n: int,
        tags: list[BranchAndDir],
        directory: str | None = None,
    ) -> list[Chunk]: ...


class StubSource:
    """Placeholder for a source that is not implemented yet.

    Always succeeds with no chunks, so "ran, found nothing" and "not
    implemented" look the same in retrieval metadata.
    """

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        return []


async def read_and_chunk(
    ide: Ide,
    chunker: CodeChunker,
    filepaths: list[str],
    limit: int,
    metadata: dict[str, object] | None = None,
) -> list[Chunk]:
    """Read each file through the IDE and chunk it, stopping at *limit* chunks.

    Unreadable files are skipped with a debug log entry.
    """
    chunks: list[Chunk] = []
    for filepath in filepaths:
        if len(chunks) >= limit:
            break
        try:
            contents = await ide.read_file(filepath)
        except Exception as exc:
            logger.debug("skipping unreadable file", path=filepath, error=str(exc))
            continue
        for chunk in chunker.chunk_text(filepath, contents):
            if metadata:
                chunk.metadata.update(metadata)
            chunks.append(chunk)
    return chunks[:limit]
