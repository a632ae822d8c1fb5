"""Repo map source: lets the chat model pick relevant files from the workspace listing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from contextengine._tree_sitter_common import _MAX_FILES
from contextengine.sources._base import read_and_chunk

if TYPE_CHECKING:
    from contextengine.chunking import CodeChunker
    from contextengine.ide import Ide
    from contextengine.llm import ChatModel
    from contextengine.models import Chunk, RetrievalArguments

logger = structlog.get_logger()

_SELECT_SYSTEM = (
    "You are a code navigation assistant. Given a question and a list of file "
    "paths from a repository, output the paths of the files most likely to help "
    "answer the question, most relevant first, one path per line. Output only "
    "paths copied exactly from the list, nothing else."
)


def parse_selected_paths(reply: str, known: set[str]) -> list[str]:
    """Pull file paths out of a model reply, keeping only paths from *known*."""
    selected: list[str] = []
    for raw in reply.splitlines():
        line = raw.strip().lstrip("-*•").strip().strip("`").strip()
        if line in known and line not in selected:
            selected.append(line)
    return selected


class RepoMapSource:
    """Asks the chat model which workspace files matter for the query."""

    def __init__(self, llm: ChatModel, ide: Ide, chunker: CodeChunker, max_listed_files: int = _MAX_FILES) -> None:
        self._llm = llm
        self._ide = ide
        self._chunker = chunker
        self._max_listed_files = max_listed_files

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        if not args.query.strip():
            return []

        files = (await self._ide.list_workspace_files(args.filter_directory))[: self._max_listed_files]
        if not files:
            return []

        prompt = f"Question: {args.query}\n\nFiles:\n" + "\n".join(files)
        reply = await self._llm.chat(
            [
                {"role": "system", "content": _SELECT_SYSTEM},
                {"role": "user", "content": prompt},
            ]
        )
        selected = parse_selected_paths(reply, set(files))
        logger.debug("repo map selection", listed=len(files), selected=len(selected))
        return await read_and_chunk(
            self._ide, self._chunker, selected, args.n_retrieve, metadata={"source": "repo_map"}
        )
