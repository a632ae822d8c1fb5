"""Import extraction: which workspace files does a file import?

The bundled extractor parses Python and JavaScript/TypeScript with
tree-sitter and resolves import specifiers to files under a workspace
root. Imports that do not resolve to a workspace file (standard library,
third-party packages) are dropped.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog
from tree_sitter_language_pack import get_parser

from contextengine._tree_sitter_common import (
    _IMPORT_NODE_TYPES,
    _JS_RESOLVE_EXTENSIONS,
    _MAX_FILE_SIZE,
    language_for_path,
)

if TYPE_CHECKING:
    from tree_sitter import Node, Parser

logger = structlog.get_logger()


@dataclass(frozen=True)
class ImportDefinition:
    """One imported name resolved to the file that defines it."""

    name: str
    filepath: str
    line: int = 0  # 1-indexed line of the import statement


# Maps an import specifier (module path) to the definitions it brings in.
FileImports = dict[str, list[ImportDefinition]]


class ImportExtractor(Protocol):
    """Returns the imports of a file, or ``None`` when they are unknown."""

    def get(self, filepath: str) -> FileImports | None: ...


def resolved_import_paths(imports: FileImports | None) -> list[str]:
    """Unique imported file paths in first-seen order."""
    if not imports:
        return []
    paths: dict[str, None] = {}
    for definitions in imports.values():
        for definition in definitions:
            paths[definition.filepath] = None
    return list(paths)


class TreeSitterImportExtractor:
    """Extracts and resolves imports of Python and JS/TS files under *root*.

    Results are cached per file until :meth:`invalidate` is called.
    Paths are returned in the form they were asked in: absolute for an
    absolute *filepath*, root-relative POSIX paths otherwise.
    """

    def __init__(self, root: str, source_roots: tuple[str, ...] = ("",)) -> None:
        self._root = os.path.abspath(root)
        self._source_roots = source_roots
        self._parsers: dict[str, Parser] = {}
        self._cache: dict[str, FileImports | None] = {}

    def get(self, filepath: str) -> FileImports | None:
        if filepath not in self._cache:
            self._cache[filepath] = self._extract(filepath)
        return self._cache[filepath]

    def invalidate(self, filepath: str | None = None) -> None:
        """Forget cached imports of *filepath*, or of every file."""
        if filepath is None:
            self._cache.clear()
        else:
            self._cache.pop(filepath, None)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract(self, filepath: str) -> FileImports | None:
        language = language_for_path(filepath)
        if language not in _IMPORT_NODE_TYPES:
            return None

        abs_path = filepath if os.path.isabs(filepath) else os.path.join(self._root, filepath)
        try:
            if os.path.getsize(abs_path) > _MAX_FILE_SIZE:
                return None
            with open(abs_path, "rb") as f:
                source = f.read()
        except OSError:
            logger.debug("cannot read file for imports", path=filepath)
            return None

        try:
            tree = self._get_parser(language).parse(source)
        except Exception:
            logger.warning("import parse failed", path=filepath, language=language)
            return None

        rel_path = os.path.relpath(abs_path, self._root).replace(os.sep, "/")
        imports: FileImports = {}
        for node in tree.root_node.children:
            if node.type not in _IMPORT_NODE_TYPES[language]:
                continue
            if language == "python":
                found = self._python_imports(node, rel_path)
            else:
                found = self._js_imports(node, rel_path)
            for specifier, definition in found:
                target = definition.filepath
                if os.path.isabs(filepath):
                    target = os.path.join(self._root, target)
                imports.setdefault(specifier, []).append(
                    ImportDefinition(name=definition.name, filepath=target, line=definition.line)
                )
        return imports

    def _python_imports(self, node: Node, rel_path: str) -> list[tuple[str, ImportDefinition]]:
        line = node.start_point[0] + 1
        found: list[tuple[str, ImportDefinition]] = []

        if node.type == "import_statement":
            for name_node in node.children_by_field_name("name"):
                module = _dotted_text(name_node)
                resolved = self._resolve_python_module(module.split("."), None)
                if resolved:
                    found.append((module, ImportDefinition(module, resolved, line)))
            return found

        module_node = node.child_by_field_name("module_name")
        if module_node is None:
            return found
        module_text = _text(module_node)
        level = len(module_text) - len(module_text.lstrip("."))
        module_parts = [p for p in module_text.lstrip(".").split(".") if p]
        base_dir = _parent_dir(rel_path, level) if level else None
        if level and base_dir is None:
            return found

        if module_parts:
            module_file = self._resolve_python_module(module_parts, base_dir)
        else:
            # "from . import x": names come from the package itself.
            module_file = self._package_init(base_dir or "")
        for name_node in node.children_by_field_name("name"):
            name = _dotted_text(name_node)
            # "from pkg import mod" may name a submodule rather than an attribute.
            submodule = self._resolve_python_module([*module_parts, *name.split(".")], base_dir)
            target = submodule or module_file
            if target:
                found.append((module_text, ImportDefinition(name, target, line)))
        if not node.children_by_field_name("name") and module_file:
            # "from pkg import *"
            found.append((module_text, ImportDefinition("*", module_file, line)))
        return found

    def _resolve_python_module(self, parts: list[str], base_dir: str | None) -> str | None:
        if not parts:
            return None
        bases = [base_dir] if base_dir is not None else list(self._source_roots)
        for base in bases:
            stem = os.path.join(base, *parts) if base else os.path.join(*parts)
            for candidate in (f"{stem}.py", os.path.join(stem, "__init__.py")):
                if os.path.isfile(os.path.join(self._root, candidate)):
                    return os.path.normpath(candidate).replace(os.sep, "/")
        return None

    def _package_init(self, directory: str) -> str | None:
        candidate = os.path.join(directory, "__init__.py")
        if os.path.isfile(os.path.join(self._root, candidate)):
            return os.path.normpath(candidate).replace(os.sep, "/")
        return None

    def _js_imports(self, node: Node, rel_path: str) -> list[tuple[str, ImportDefinition]]:
        source_node = node.child_by_field_name("source")
        if source_node is None:
            return []
        specifier = _text(source_node).strip("'\"`")
        if not specifier.startswith("."):
            return []
        resolved = self._resolve_js_specifier(specifier, os.path.dirname(rel_path))
        if resolved is None:
            return []
        return [(specifier, ImportDefinition(specifier, resolved, node.start_point[0] + 1))]

    def _resolve_js_specifier(self, specifier: str, from_dir: str) -> str | None:
        stem = os.path.normpath(os.path.join(from_dir, specifier))
        if stem.startswith(".."):
            return None
        root_stem, ext = os.path.splitext(stem)
        candidates = [stem] if ext else []
        # TypeScript sources are imported with a ".js" suffix under ESM resolution.
        if ext in {".js", ".jsx", ".mjs"}:
            candidates.extend(root_stem + e for e in _JS_RESOLVE_EXTENSIONS)
        candidates.extend(stem + e for e in _JS_RESOLVE_EXTENSIONS)
        candidates.extend(os.path.join(stem, "index" + e) for e in _JS_RESOLVE_EXTENSIONS)
        for candidate in candidates:
            if os.path.isfile(os.path.join(self._root, candidate)):
                return candidate.replace(os.sep, "/")
        return None

    def _get_parser(self, language: str) -> Parser:
        if language not in self._parsers:
            self._parsers[language] = get_parser(language)
        return self._parsers[language]


def _text(node: Node) -> str:
    return node.text.decode("utf-8", errors="replace") if node.text else ""


def _dotted_text(node: Node) -> str:
    """Module path of a dotted_name or the original name of an aliased_import."""
    if node.type == "aliased_import":
        inner = node.child_by_field_name("name")
        if inner is not None:
            return _text(inner)
    return _text(node)


def _parent_dir(rel_path: str, level: int) -> str | None:
    """Directory that a relative import of *level* dots starts from."""
    directory = os.path.dirname(rel_path)
    for _ in range(level - 1):
        if not directory:
            return None
        directory = os.path.dirname(directory)
    return directory
