"""Shared fixtures for the context engine test suite."""

from __future__ import annotations

import pytest

from contextengine.chunking import CodeChunker
from contextengine.models import RetrievalArguments
from tests.fake_ide import FakeIde


@pytest.fixture
def fake_ide() -> FakeIde:
    """IDE with a small Python project loaded."""
    return FakeIde(
        files={
            "src/app.py": "from src.service import UserService\n\n\ndef main():\n    return UserService()\n",
            "src/service.py": (
                "class UserService:\n"
                "    def get_user(self, user_id):\n"
                "        return None\n"
                "\n"
                "\n"
                "def create_handler():\n"
                "    return UserService()\n"
            ),
            "README.md": "# Demo project\n",
        },
        open_files=["src/app.py"],
    )


@pytest.fixture
def chunker() -> CodeChunker:
    return CodeChunker(max_chunk_lines=100)


@pytest.fixture
def args() -> RetrievalArguments:
    return RetrievalArguments(query="how does UserService load a user", n_retrieve=10)
