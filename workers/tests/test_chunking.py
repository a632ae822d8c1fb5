"""Tests for AST-aware chunking."""

from __future__ import annotations

import hashlib

import pytest

from contextengine.chunking import CodeChunker, chunk_digest, make_chunk, split_lines


def test_chunk_digest_is_sha256_of_content() -> None:
    assert chunk_digest("abc") == hashlib.sha256(b"abc").hexdigest()


def test_make_chunk_derives_digest() -> None:
    chunk = make_chunk("a.py", "x = 1\n", 1, 1, metadata={"k": "v"})
    assert chunk.digest == chunk_digest("x = 1\n")
    assert chunk.metadata == {"k": "v"}


def test_rejects_non_positive_window() -> None:
    with pytest.raises(ValueError, match="max_chunk_lines"):
        CodeChunker(max_chunk_lines=0)


def test_empty_contents_give_no_chunks(chunker: CodeChunker) -> None:
    assert chunker.chunk_text("a.py", "") == []
    assert chunker.chunk_text("a.py", "   \n\n") == []


def test_python_definitions_become_chunks(chunker: CodeChunker) -> None:
    contents = (
        "import os\n"
        "\n"
        "class UserService:\n"
        "    def get_user(self, user_id):\n"
        "        return None\n"
        "\n"
        "def create_handler():\n"
        "    return UserService()\n"
    )
    chunks = chunker.chunk_text("src/service.py", contents)

    starts = [c.start_line for c in chunks]
    assert 3 in starts
    assert 7 in starts
    cls = next(c for c in chunks if c.start_line == 3)
    assert cls.end_line == 5
    assert "class UserService" in cls.content
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert all(c.metadata["language"] == "python" for c in chunks)
    assert all(c.filepath == "src/service.py" for c in chunks)


def test_unknown_language_falls_back_to_line_windows() -> None:
    chunker = CodeChunker(max_chunk_lines=2)
    chunks = chunker.chunk_text("notes.txt", "one\ntwo\nthree\nfour\nfive\n")
    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 2), (3, 4), (5, 5)]
    assert chunks[0].content == "one\ntwo\n"
    assert chunks[0].metadata == {}


def test_oversized_definition_is_split() -> None:
    chunker = CodeChunker(max_chunk_lines=3)
    body = "".join(f"    x{i} = {i}\n" for i in range(5))
    chunks = chunker.chunk_text("big.py", "def big():\n" + body)
    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 3), (4, 6)]


def test_split_lines_breaks_on_newline_only() -> None:
    assert split_lines("a\x0cb\nc\rd e\n") == ["a\x0cb\n", "c\rd e\n"]
    assert split_lines("x\ny") == ["x\n", "y"]
    assert split_lines("") == []


def test_form_feed_does_not_shift_line_numbers() -> None:
    chunks = CodeChunker(max_chunk_lines=2).chunk_text("x.txt", "a = 1\n\x0c\nb = 2\nc = 3\n")

    assert [(c.start_line, c.end_line) for c in chunks] == [(1, 2), (3, 4)]
    assert chunks[1].content.split("\n")[0] == "b = 2"
