"""Tests for the retrieval source adapters and their registry."""

from __future__ import annotations

import json
import os
from unittest.mock import AsyncMock

import pytest

from contextengine.chunking import CodeChunker
from contextengine.graph import DependencyGraphBuilder, TreeSitterImportExtractor
from contextengine.models import RetrievalArguments, SourceName
from contextengine.sources import (
    EmbeddingsSource,
    FullTextSource,
    ImportAnalysisSource,
    LspDefinitionsSource,
    LspRetrievalConfig,
    RecentFiles,
    RecentlyEditedSource,
    RepoMapSource,
    SourceRegistry,
    StubSource,
    ToolBasedSource,
    build_default_registry,
)
from contextengine.sources.fts import get_cleaned_terms
from contextengine.sources.lsp_definitions import extract_symbols, find_matching_symbols
from contextengine.sources.repo_map import parse_selected_paths
from contextengine.sources.tool_based import parse_tool_calls
from contextengine.tools import build_default_registry as build_tool_registry
from tests.fake_ide import FakeIde, make_chunk, make_range, make_symbol
from tests.fake_llm import FakeLLM

# ---------------------------------------------------------------------------
# Full-text search
# ---------------------------------------------------------------------------


def test_cleaned_terms() -> None:
    terms = get_cleaned_terms("How does the Parser parse a file? parser!")
    assert terms == ["how", "does", "the", "parser", "parse", "file"]


async def test_fts_passes_terms_and_scope() -> None:
    index = AsyncMock()
    index.retrieve.return_value = [make_chunk(str(i)) for i in range(5)]
    args = RetrievalArguments(query="load user", n_retrieve=3, filter_directory="src")

    chunks = await FullTextSource(index).retrieve(args)

    index.retrieve.assert_awaited_once_with(3, ["load", "user"], [], "src")
    assert len(chunks) == 3


async def test_fts_blank_query_returns_nothing() -> None:
    index = AsyncMock()
    assert await FullTextSource(index).retrieve(RetrievalArguments(query=" \t ")) == []
    index.retrieve.assert_not_called()


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


async def test_embeddings_without_index_returns_nothing(args: RetrievalArguments) -> None:
    source = EmbeddingsSource(None)
    assert source.available is False
    assert await source.retrieve(args) == []


async def test_embeddings_queries_index(args: RetrievalArguments) -> None:
    index = AsyncMock()
    index.retrieve.return_value = [make_chunk("v")]
    chunks = await EmbeddingsSource(index).retrieve(args)
    index.retrieve.assert_awaited_once_with(args.query, args.n_retrieve, [], None)
    assert [c.digest for c in chunks] == ["v"]


# ---------------------------------------------------------------------------
# Recently edited
# ---------------------------------------------------------------------------


def test_recent_files_is_most_recent_first_and_bounded() -> None:
    recent = RecentFiles(capacity=2)
    recent.touch("a.py")
    recent.touch("b.py")
    recent.touch("a.py")
    recent.touch("c.py")
    assert recent.most_recent(5) == ["c.py", "a.py"]
    assert len(recent) == 2


async def test_recently_edited_tops_up_with_open_files(fake_ide: FakeIde, chunker: CodeChunker) -> None:
    recent = RecentFiles()
    recent.touch("src/service.py")
    source = RecentlyEditedSource(fake_ide, recent, chunker)

    chunks = await source.retrieve(RetrievalArguments(query="q", n_retrieve=10))

    assert fake_ide.reads == ["src/service.py", "src/app.py"]
    assert {c.filepath for c in chunks} == {"src/service.py", "src/app.py"}


async def test_recently_edited_skips_unreadable_and_truncates(chunker: CodeChunker) -> None:
    contents = "def a():\n    pass\n\n\ndef b():\n    pass\n\n\ndef c():\n    pass\n"
    ide = FakeIde(files={"a.py": contents}, open_files=["gone.py", "a.py"])
    source = RecentlyEditedSource(ide, RecentFiles(), chunker)

    chunks = await source.retrieve(RetrievalArguments(query="q", n_retrieve=2))

    assert ide.reads == ["gone.py", "a.py"]
    assert len(chunks) == 2
    assert {c.filepath for c in chunks} == {"a.py"}


# ---------------------------------------------------------------------------
# Repo map
# ---------------------------------------------------------------------------


def test_parse_selected_paths_filters_unknown() -> None:
    reply = "- `src/service.py`\n* src/app.py\nsrc/missing.py\nsrc/service.py\n"
    assert parse_selected_paths(reply, {"src/service.py", "src/app.py"}) == ["src/service.py", "src/app.py"]


async def test_repo_map_reads_selected_files(fake_ide: FakeIde, chunker: CodeChunker) -> None:
    llm = FakeLLM(["src/service.py"])
    chunks = await RepoMapSource(llm, fake_ide, chunker).retrieve(
        RetrievalArguments(query="where is UserService", filter_directory="src")
    )

    assert "src/app.py" in llm.last_user_message
    assert "README.md" not in llm.last_user_message
    assert chunks
    assert {c.filepath for c in chunks} == {"src/service.py"}
    assert all(c.metadata["source"] == "repo_map" for c in chunks)


async def test_repo_map_blank_query_skips_model(fake_ide: FakeIde, chunker: CodeChunker) -> None:
    llm = FakeLLM([])
    assert await RepoMapSource(llm, fake_ide, chunker).retrieve(RetrievalArguments(query="  ")) == []
    assert llm.calls == []


async def test_repo_map_model_error_propagates(fake_ide: FakeIde, chunker: CodeChunker) -> None:
    llm = FakeLLM([])
    with pytest.raises(RuntimeError, match="exhausted"):
        await RepoMapSource(llm, fake_ide, chunker).retrieve(RetrievalArguments(query="q"))


# ---------------------------------------------------------------------------
# LSP definitions
# ---------------------------------------------------------------------------


def test_extract_symbols_orders_and_filters() -> None:
    symbols = extract_symbols("Where is UserService calling loadUser with MAX_RETRIES and the id")
    # Common words ("Where", "the") and short words ("id") are dropped.
    assert symbols == ["UserService", "calling", "loadUser", "MAX_RETRIES"]


def test_extract_symbols_dedupes_case_insensitively() -> None:
    assert extract_symbols("parser Parser PARSER") == ["Parser"]


def test_find_matching_symbols_searches_children() -> None:
    tree = [make_symbol("UserService", 0, children=[make_symbol("get_user", 1)]), make_symbol("helper", 5)]
    assert [s.name for s in find_matching_symbols(tree, "user")] == ["get_user"]
    assert [s.name for s in find_matching_symbols(tree, "UserService")] == ["UserService"]


def _lsp_ide() -> FakeIde:
    ide = FakeIde(
        files={
            "src/app.py": "from models import User\n\nuser = User()\n",
            "src/models.py": "".join(f"line {i}\n" for i in range(20)).rstrip("\n"),
        },
    )
    ide.symbols["src/app.py"] = [make_symbol("User", 2)]
    ide.definitions[("src/app.py", 2)] = [make_range("src/models.py", 10, 11), make_range("src/models.py", 10, 11)]
    ide.type_definitions[("src/app.py", 2)] = [make_range("src/models.py", 0, 0)]
    ide.references[("src/app.py", 2)] = [make_range("src/app.py", 2, 2)]
    return ide


async def test_lsp_resolves_definitions_with_context() -> None:
    ide = _lsp_ide()
    source = LspDefinitionsSource(ide, LspRetrievalConfig(context_lines=2))

    chunks = await source.retrieve(RetrievalArguments(query="User", current_file="src/app.py"))

    assert len(chunks) == 2
    definition, type_definition = chunks
    assert definition.filepath == "src/models.py"
    assert (definition.start_line, definition.end_line) == (9, 14)
    assert definition.content.splitlines()[0] == "line 8"
    assert definition.metadata["source"] == "lsp"
    # Context is clamped at the top of the file.
    assert (type_definition.start_line, type_definition.end_line) == (1, 3)


async def test_lsp_references_are_opt_in() -> None:
    ide = _lsp_ide()
    config = LspRetrievalConfig(include_definitions=False, include_type_definitions=False, include_references=True)
    args = RetrievalArguments(query="User", current_file="src/app.py")
    chunks = await LspDefinitionsSource(ide, config).retrieve(args)
    assert [c.filepath for c in chunks] == ["src/app.py"]


async def test_lsp_without_current_file_returns_nothing() -> None:
    ide = _lsp_ide()
    assert await LspDefinitionsSource(ide).retrieve(RetrievalArguments(query="User")) == []


async def test_lsp_lookup_failure_is_contained() -> None:
    ide = _lsp_ide()
    ide.failing_lookups.add(("src/app.py", 2))
    chunks = await LspDefinitionsSource(ide).retrieve(RetrievalArguments(query="User", current_file="src/app.py"))
    assert chunks == []


async def test_lsp_document_symbols_failure_returns_nothing() -> None:
    ide = _lsp_ide()
    ide.failing_symbol_files.add("src/app.py")
    args = RetrievalArguments(query="where is UserService", current_file="src/app.py")
    assert await LspDefinitionsSource(ide).retrieve(args) == []
    assert ide.reads == []


# ---------------------------------------------------------------------------
# Import analysis
# ---------------------------------------------------------------------------


def _write(root: str, rel: str, text: str) -> None:
    path = os.path.join(root, rel)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(text)


async def test_import_analysis_chunks_direct_neighbours(tmp_path: object, chunker: CodeChunker) -> None:
    root = str(tmp_path)
    files = {
        "pkg/__init__.py": "",
        "pkg/a.py": "from pkg import b\n\n\ndef run():\n    return b.helper()\n",
        "pkg/b.py": "from pkg import c\n\n\ndef helper():\n    return c.VALUE\n",
        "pkg/c.py": "VALUE = 1\n",
    }
    for rel, text in files.items():
        _write(root, rel, text)
    ide = FakeIde(files=dict(files))
    builder = DependencyGraphBuilder(TreeSitterImportExtractor(root))
    source = ImportAnalysisSource(builder, ide, chunker)

    chunks = await source.retrieve(RetrievalArguments(query="q", current_file="pkg/b.py"))

    assert builder.get_node("pkg/b.py") is not None
    assert {c.filepath for c in chunks} == {"pkg/c.py"}
    assert all(c.metadata["source"] == "import_analysis" for c in chunks)

    # Scanning a.py adds the reverse edge b <- a.
    builder.add_file_to_graph("pkg/a.py")
    chunks = await source.retrieve(RetrievalArguments(query="q", current_file="pkg/b.py"))
    assert {c.filepath for c in chunks} == {"pkg/a.py", "pkg/c.py"}


async def test_import_analysis_requires_current_file(chunker: CodeChunker) -> None:
    builder = DependencyGraphBuilder(TreeSitterImportExtractor("."))
    assert await ImportAnalysisSource(builder, FakeIde(), chunker).retrieve(RetrievalArguments(query="q")) == []


# ---------------------------------------------------------------------------
# Tool-based search
# ---------------------------------------------------------------------------


def test_parse_tool_calls() -> None:
    reply = '```json\n{"tools": [{"name": "search_files", "args": {"pattern": "x"}}, {"oops": 1}]}\n```'
    assert parse_tool_calls(reply) == [("search_files", {"pattern": "x"})]
    assert parse_tool_calls("not json") is None
    assert parse_tool_calls('{"other": []}') is None


async def test_tool_based_runs_selected_tools(tmp_path: object) -> None:
    root = str(tmp_path)
    _write(root, "src/service.py", "class UserService:\n    pass\n")
    _write(root, "src/app.py", "from src.service import UserService\n")
    plan = {
        "tools": [
            {"name": "search_files", "args": {"pattern": "UserService"}},
            {"name": "read_file", "args": {"file_path": "src/service.py"}},
        ]
    }
    llm = FakeLLM([json.dumps(plan)])
    source = ToolBasedSource(llm, build_tool_registry(), root)

    chunks = await source.retrieve(RetrievalArguments(query="UserService"))

    assert "search_files" in llm.calls[0][0]["content"]
    assert {c.filepath for c in chunks} == {"src/service.py", "src/app.py"}
    assert all(c.digest == f"file:///{c.filepath}" for c in chunks)
    assert all(c.start_line == -1 and c.end_line == -1 for c in chunks)
    assert [c.index for c in chunks] == list(range(len(chunks)))


async def test_tool_based_unparsable_plan_returns_nothing(tmp_path: object) -> None:
    llm = FakeLLM(["I would search for it"])
    source = ToolBasedSource(llm, build_tool_registry(), str(tmp_path))
    assert await source.retrieve(RetrievalArguments(query="q")) == []


async def test_tool_based_skips_unknown_tools(tmp_path: object) -> None:
    llm = FakeLLM([json.dumps({"tools": [{"name": "rm_rf", "args": {}}]})])
    source = ToolBasedSource(llm, build_tool_registry(), str(tmp_path))
    assert await source.retrieve(RetrievalArguments(query="q")) == []


# ---------------------------------------------------------------------------
# Stub and registry
# ---------------------------------------------------------------------------


async def test_stub_source_returns_nothing(args: RetrievalArguments) -> None:
    assert await StubSource().retrieve(args) == []


def test_registry_lookup() -> None:
    registry = SourceRegistry()
    stub = StubSource()
    registry.register(SourceName.STATIC_CONTEXT, stub)
    assert registry.get(SourceName.STATIC_CONTEXT) is stub
    assert SourceName.STATIC_CONTEXT in registry
    with pytest.raises(LookupError):
        registry.get(SourceName.FTS)


def test_default_registry_covers_every_source(fake_ide: FakeIde) -> None:
    registry = build_default_registry(fake_ide)
    assert set(registry.names) == set(SourceName)
    assert isinstance(registry.get(SourceName.REPO_MAP), StubSource)
    assert isinstance(registry.get(SourceName.LSP_DEFINITIONS), LspDefinitionsSource)


def test_default_registry_with_collaborators(fake_ide: FakeIde, tmp_path: object) -> None:
    registry = build_default_registry(
        fake_ide,
        text_index=AsyncMock(),
        llm=FakeLLM([]),
        graph_builder=DependencyGraphBuilder(TreeSitterImportExtractor(str(tmp_path))),
        workspace_path=str(tmp_path),
    )
    assert isinstance(registry.get(SourceName.FTS), FullTextSource)
    assert isinstance(registry.get(SourceName.REPO_MAP), RepoMapSource)
    assert isinstance(registry.get(SourceName.IMPORT_ANALYSIS), ImportAnalysisSource)
    assert isinstance(registry.get(SourceName.TOOL_BASED_SEARCH), ToolBasedSource)
    assert isinstance(registry.get(SourceName.RECENTLY_VISITED_RANGES), StubSource)


def test_parse_tool_calls_rejects_non_object_json() -> None:
    assert parse_tool_calls("[1, 2]") is None
    assert parse_tool_calls('{"tools": "search_files"}') is None
    assert parse_tool_calls("") is None
