"""Vector embeddings source."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextengine.models import Chunk, RetrievalArguments
    from contextengine.sources._base import VectorIndex


class EmbeddingsSource:
    """Queries the vector index; returns nothing when no index is configured."""

    def __init__(self, index: VectorIndex | None) -> None:
        self._index = index

    @property
    def available(self) -> bool:
        return self._index is not None

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        if self._index is None:
            return []
        chunks = await self._index.retrieve(args.query, args.n_retrieve, args.tags, args.filter_directory)
        return chunks[: args.n_retrieve]
