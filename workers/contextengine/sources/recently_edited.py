"""Recently edited files source."""

from __future__ import annotations

from collections import OrderedDict
from typing import TYPE_CHECKING

from contextengine.sources._base import read_and_chunk

if TYPE_CHECKING:
    from contextengine.chunking import CodeChunker
    from contextengine.ide import Ide
    from contextengine.models import Chunk, RetrievalArguments


class RecentFiles:
    """Bounded most-recently-used set of file paths."""

    def __init__(self, capacity: int = 20) -> None:
        self._capacity = capacity
        self._files: OrderedDict[str, None] = OrderedDict()

    def touch(self, filepath: str) -> None:
        """Mark *filepath* as the most recently edited file."""
        self._files.pop(filepath, None)
        self._files[filepath] = None
        while len(self._files) > self._capacity:
            self._files.popitem(last=False)

    def most_recent(self, n: int) -> list[str]:
        return list(reversed(self._files))[:n]

    def __len__(self) -> int:
        return len(self._files)


class RecentlyEditedSource:
    """Chunks recently edited files, topped up with currently open files."""

    def __init__(self, ide: Ide, recent: RecentFiles, chunker: CodeChunker) -> None:
        self._ide = ide
        self._recent = recent
        self._chunker = chunker

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        n = args.n_retrieve
        files = self._recent.most_recent(n)
        if len(files) < n:
            open_files = [f for f in await self._ide.get_open_files() if f not in files]
            files.extend(open_files[: n - len(files)])
        return await read_and_chunk(self._ide, self._chunker, files, n)
