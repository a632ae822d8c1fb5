"""Language-server source: definitions, type definitions and references of query symbols."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from contextengine.chunking import make_chunk
from contextengine.constants import LSP_CONTEXT_LINES, LSP_MAX_REFERENCES_PER_SYMBOL, LSP_MIN_SYMBOL_LENGTH
from contextengine.ide import Location, Position

if TYPE_CHECKING:
    from contextengine.ide import DocumentSymbol, Ide, RangeInFile
    from contextengine.models import Chunk, RetrievalArguments

logger = structlog.get_logger()

_PASCAL_CASE_RE = re.compile(r"\b[A-Z][a-zA-Z0-9]*\b")
_CAMEL_CASE_RE = re.compile(r"\b[a-z][a-zA-Z0-9]*\b")
_UPPER_CASE_RE = re.compile(r"\b[A-Z][A-Z0-9_]+\b")

_COMMON_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "as", "is", "was", "are", "were", "be", "been",
        "being", "have", "has", "had", "do", "does", "did", "will", "would",
        "should", "could", "may", "might", "can", "this", "that", "these",
        "those", "i", "you", "he", "she", "it", "we", "they", "how", "what",
        "where", "why", "which", "who", "when", "not", "all", "any",
    }
)  # fmt: skip


@dataclass
class LspRetrievalConfig:
    """Tuning knobs for language-server retrieval."""

    include_definitions: bool = True
    include_type_definitions: bool = True
    # References can be expensive for popular symbols.
    include_references: bool = False
    max_references_per_symbol: int = LSP_MAX_REFERENCES_PER_SYMBOL
    context_lines: int = LSP_CONTEXT_LINES


def extract_symbols(query: str) -> list[str]:
    """Pick identifier-like words out of *query*.

    PascalCase names come first, then camelCase/lowercase, then UPPER_CASE
    constants. Common English words, short words and case-insensitive
    repeats are dropped.
    """
    matches = [
        *_PASCAL_CASE_RE.findall(query),
        *_CAMEL_CASE_RE.findall(query),
        *_UPPER_CASE_RE.findall(query),
    ]
    seen: set[str] = set()
    symbols: list[str] = []
    for match in matches:
        lower = match.lower()
        if lower in seen or lower in _COMMON_WORDS or len(match) < LSP_MIN_SYMBOL_LENGTH:
            continue
        seen.add(lower)
        symbols.append(match)
    return symbols


def find_matching_symbols(symbols: list[DocumentSymbol], name: str) -> list[DocumentSymbol]:
    """Depth-first search of the symbol tree for names containing *name*."""
    matches: list[DocumentSymbol] = []
    for symbol in symbols:
        if name in symbol.name:
            matches.append(symbol)
        if symbol.children:
            matches.extend(find_matching_symbols(symbol.children, name))
    return matches


def deduplicate_ranges(ranges: list[RangeInFile]) -> list[RangeInFile]:
    """Drop repeated (file, range) pairs, keeping first occurrences."""
    return list(dict.fromkeys(ranges))


class LspDefinitionsSource:
    """Resolves symbols named in the query through the IDE's language server.

    Symbols are located through the document symbols of ``args.current_file``;
    without a current file there is nothing to anchor navigation and the
    source returns no chunks.
    """

    def __init__(self, ide: Ide, config: LspRetrievalConfig | None = None) -> None:
        self._ide = ide
        self.config = config or LspRetrievalConfig()

    async def retrieve(self, args: RetrievalArguments) -> list[Chunk]:
        symbols = extract_symbols(args.query)
        if not symbols or not args.current_file:
            logger.debug("lsp retrieval skipped", symbols=len(symbols), current_file=args.current_file)
            return []

        try:
            doc_symbols = await self._ide.get_document_symbols(args.current_file)
        except Exception as exc:
            logger.debug("document symbols unavailable", path=args.current_file, error=str(exc))
            return []

        ranges: list[RangeInFile] = []
        for name in symbols:
            for doc_symbol in find_matching_symbols(doc_symbols, name):
                location = Location(
                    filepath=args.current_file,
                    position=Position(
                        line=doc_symbol.range.start.line,
                        character=doc_symbol.range.start.character,
                    ),
                )
                ranges.extend(await self._locations_for(name, location))

        unique = deduplicate_ranges(ranges)
        chunks = await self._ranges_to_chunks(unique)
        logger.debug(
            "lsp retrieval completed",
            symbols=len(symbols),
            ranges=len(ranges),
            unique_ranges=len(unique),
            chunks=len(chunks),
        )
        return chunks[: args.n_retrieve]

    async def _locations_for(self, name: str, location: Location) -> list[RangeInFile]:
        ranges: list[RangeInFile] = []
        try:
            if self.config.include_definitions:
                ranges.extend(await self._ide.goto_definition(location))
            if self.config.include_type_definitions:
                ranges.extend(await self._ide.goto_type_definition(location))
            if self.config.include_references:
                references = await self._ide.get_references(location)
                ranges.extend(references[: self.config.max_references_per_symbol])
        except Exception as exc:
            logger.debug("lsp lookup failed", symbol=name, error=str(exc))
        return ranges

    async def _ranges_to_chunks(self, ranges: list[RangeInFile]) -> list[Chunk]:
        chunks: list[Chunk] = []
        file_cache: dict[str, list[str]] = {}
        context = self.config.context_lines

        for target in ranges:
            lines = file_cache.get(target.filepath)
            if lines is None:
                try:
                    lines = (await self._ide.read_file(target.filepath)).split("\n")
                except Exception as exc:
                    logger.debug("cannot read lsp target", path=target.filepath, error=str(exc))
                    continue
                file_cache[target.filepath] = lines

            start_0 = max(0, target.range.start.line - context)
            end_0 = min(len(lines) - 1, target.range.end.line + context)
            if end_0 < start_0:
                continue
            chunks.append(
                make_chunk(
                    target.filepath,
                    "\n".join(lines[start_0 : end_0 + 1]),
                    start_0 + 1,
                    end_0 + 1,
                    index=len(chunks),
                    metadata={
                        "source": "lsp",
                        "target_start_line": target.range.start.line,
                        "target_end_line": target.range.end.line,
                        "context_lines": context,
                    },
                )
            )
        return chunks
