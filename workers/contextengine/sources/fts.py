"""Full-text search source."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextengine.models import Chunk, RetrievalArguments
    from contextengine.sources._base import TextIndex

_WORD_RE = re.compile(r"[A-Za-z0-9_]+")


def get_cleaned_terms(query: str) -> list[str]:
    """Tokenize *query* into lower-cased search terms longer than two characters.

    Order of first appearance is kept; repeats are dropped.
    """
    terms = (token.lower() for token in _WORD_RE.findall(query))
    return list(dict.fromkeys(t for t in terms if len(t) > 2))


class FullTextSource:
    """Queries the full-text index with the cleaned query terms."""

    def __init__(self, index: TextIndex) -> None:
        self._index = index

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        if not args.query.strip():
            return []
        terms = get_cleaned_terms(args.query)
        if not terms:
            return []
        chunks = await self._index.retrieve(args.n_retrieve, terms, args.tags, args.filter_directory)
        return chunks[: args.n_retrieve]
