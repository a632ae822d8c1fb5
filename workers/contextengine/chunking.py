"""AST-aware splitting of file contents into retrieval chunks.

Definitions found by tree-sitter start a new chunk; code between definitions
becomes its own chunk; oversized spans are split into fixed line windows.
Files in languages without a parser fall back to plain line windows.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import structlog
from tree_sitter_language_pack import get_parser

from contextengine._tree_sitter_common import _DEF_NODE_TYPES, language_for_path
from contextengine.constants import DEFAULT_MAX_CHUNK_LINES
from contextengine.models import Chunk

if TYPE_CHECKING:
    from tree_sitter import Parser

logger = structlog.get_logger()


def chunk_digest(content: str) -> str:
    """Content-derived identity of a chunk (SHA-256 hex digest)."""
    return hashlib.sha256(content.encode("utf-8", errors="replace")).hexdigest()


def split_lines(contents: str) -> list[str]:
    r"""Split on ``\n`` only, keeping line endings.

    Form feeds, lone ``\r`` and Unicode separators stay inside their line so
    numbering agrees with tree-sitter rows and editor line numbers.
    """
    parts = contents.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def make_chunk(
    filepath: str,
    content: str,
    start_line: int,
    end_line: int,
    index: int = 0,
    metadata: dict[str, object] | None = None,
) -> Chunk:
    """Build a Chunk whose digest is derived from *content*."""
    return Chunk(
        content=content,
        filepath=filepath,
        start_line=start_line,
        end_line=end_line,
        digest=chunk_digest(content),
        index=index,
        metadata=dict(metadata or {}),
    )


class CodeChunker:
    """Splits file contents into chunks at definition boundaries using tree-sitter."""

    def __init__(self, max_chunk_lines: int = DEFAULT_MAX_CHUNK_LINES) -> None:
        if max_chunk_lines < 1:
            msg = f"max_chunk_lines must be positive, got {max_chunk_lines}"
            raise ValueError(msg)
        self._max_chunk_lines = max_chunk_lines
        self._parsers: dict[str, Parser] = {}

    @property
    def max_chunk_lines(self) -> int:
        return self._max_chunk_lines

    def chunk_text(self, filepath: str, contents: str, language: str | None = None) -> list[Chunk]:
        """Split *contents* of *filepath*; line numbers in the result are 1-based."""
        lines = split_lines(contents)
        if not lines or not contents.strip():
            return []

        language = language or language_for_path(filepath)
        spans = self._definition_spans(filepath, contents, language) if language else None
        if not spans:
            return self._number(filepath, self._windows(0, len(lines) - 1), lines, language)

        windows: list[tuple[int, int]] = []
        covered_up_to = 0  # 0-indexed line we have covered so far
        for start_0, end_0 in spans:
            if start_0 < covered_up_to:
                continue
            if start_0 > covered_up_to:
                windows.extend(self._windows(covered_up_to, start_0 - 1))
            windows.extend(self._windows(start_0, end_0))
            covered_up_to = end_0 + 1
        if covered_up_to < len(lines):
            windows.extend(self._windows(covered_up_to, len(lines) - 1))

        return self._number(filepath, windows, lines, language)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _definition_spans(self, filepath: str, contents: str, language: str) -> list[tuple[int, int]]:
        def_types = _DEF_NODE_TYPES.get(language)
        if not def_types:
            return []
        try:
            tree = self._get_parser(language).parse(contents.encode("utf-8", errors="replace"))
        except Exception:
            logger.warning("parse failed", path=filepath, language=language)
            return []

        spans: list[tuple[int, int]] = []
        for child in tree.root_node.children:
            if child.type in def_types:
                spans.append((child.start_point[0], child.end_point[0]))
            # export_statement wraps TS/JS definitions
            elif child.type == "export_statement":
                spans.extend(
                    (grandchild.start_point[0], grandchild.end_point[0])
                    for grandchild in child.children
                    if grandchild.type in def_types
                )
        spans.sort()
        return spans

    def _windows(self, start_0: int, end_0: int) -> list[tuple[int, int]]:
        """Cut the inclusive span [start_0, end_0] into windows of at most max_chunk_lines."""
        return [
            (offset, min(offset + self._max_chunk_lines - 1, end_0))
            for offset in range(start_0, end_0 + 1, self._max_chunk_lines)
        ]

    @staticmethod
    def _number(
        filepath: str,
        windows: list[tuple[int, int]],
        lines: list[str],
        language: str | None,
    ) -> list[Chunk]:
        chunks: list[Chunk] = []
        for start_0, end_0 in windows:
            text = "".join(lines[start_0 : end_0 + 1])
            if not text.strip():
                continue
            chunks.append(
                make_chunk(
                    filepath,
                    text,
                    start_0 + 1,
                    end_0 + 1,
                    index=len(chunks),
                    metadata={"language": language} if language else None,
                )
            )
        return chunks

    def _get_parser(self, language: str) -> Parser:
        if language not in self._parsers:
            self._parsers[language] = get_parser(language)
        return self._parsers[language]
