"""IDE collaborator types: file access and language-server navigation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class Position:
    """Zero-based line/character position."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    start: Position
    end: Position


@dataclass(frozen=True)
class RangeInFile:
    filepath: str
    range: Range


@dataclass(frozen=True)
class Location:
    filepath: str
    position: Position


@dataclass
class DocumentSymbol:
    """A node of the symbol tree returned by the language server."""

    name: str
    kind: int
    range: Range
    children: list[DocumentSymbol] = field(default_factory=list)


class Ide(Protocol):
    """Interface that the hosting editor satisfies.

    ``read_file`` raises when the file is missing or unreadable.
    """

    async def read_file(self, filepath: str) -> str: ...

    async def get_open_files(self) -> list[str]: ...

    async def list_workspace_files(self, directory: str | None = None) -> list[str]: ...

    async def goto_definition(self, location: Location) -> list[RangeInFile]: ...

    async def goto_type_definition(self, location: Location) -> list[RangeInFile]: ...

    async def get_references(self, location: Location) -> list[RangeInFile]: ...

    async def get_document_symbols(self, filepath: str) -> list[DocumentSymbol]: ...
