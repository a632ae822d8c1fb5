"""Shared tables for tree-sitter based chunking and import extraction."""

from __future__ import annotations

import os

# Directories to skip when listing workspace files
_SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        "node_modules",
        "vendor",
        "__pycache__",
        "dist",
        "build",
        ".venv",
        ".tox",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
    }
)

# Maximum file size in bytes (100KB)
_MAX_FILE_SIZE = 100 * 1024

# Maximum number of files to list
_MAX_FILES = 2000

# File extension to tree-sitter language name mapping
_EXTENSION_MAP: dict[str, str] = {
    ".py": "python",
    ".go": "go",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".java": "java",
    ".rs": "rust",
    ".rb": "ruby",
}

# AST node types that start a chunk boundary, per language.
_DEF_NODE_TYPES: dict[str, frozenset[str]] = {
    "go": frozenset(
        {
            "function_declaration",
            "method_declaration",
            "type_declaration",
        }
    ),
    "python": frozenset(
        {
            "function_definition",
            "class_definition",
            "decorated_definition",
        }
    ),
    "typescript": frozenset(
        {
            "function_declaration",
            "class_declaration",
            "lexical_declaration",
            "interface_declaration",
            "type_alias_declaration",
        }
    ),
    "tsx": frozenset(
        {
            "function_declaration",
            "class_declaration",
            "lexical_declaration",
            "interface_declaration",
            "type_alias_declaration",
        }
    ),
    "javascript": frozenset(
        {
            "function_declaration",
            "class_declaration",
            "lexical_declaration",
        }
    ),
    "java": frozenset({"class_declaration", "interface_declaration"}),
    "rust": frozenset({"function_item", "struct_item", "enum_item", "impl_item", "trait_item"}),
    "ruby": frozenset({"method", "class", "module"}),
}

# Import-related AST node types per language.
_IMPORT_NODE_TYPES: dict[str, frozenset[str]] = {
    "python": frozenset({"import_statement", "import_from_statement"}),
    "typescript": frozenset({"import_statement", "export_statement"}),
    "tsx": frozenset({"import_statement", "export_statement"}),
    "javascript": frozenset({"import_statement", "export_statement"}),
}

# Extensions tried, in order, when resolving an extensionless JS/TS specifier.
_JS_RESOLVE_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".mjs")


def language_for_path(path: str) -> str | None:
    """Return the tree-sitter language name for *path*, or None if unsupported."""
    _, ext = os.path.splitext(path)
    return _EXTENSION_MAP.get(ext.lower())


def list_source_files(workspace_path: str, file_extensions: list[str] | None = None) -> list[str]:
    """Walk *workspace_path* and return relative POSIX paths of recognised source files.

    Skips vendored/cache directories and files larger than ``_MAX_FILE_SIZE``;
    stops after ``_MAX_FILES`` files.
    """
    ext_filter: set[str] | None = None
    if file_extensions:
        ext_filter = {e if e.startswith(".") else f".{e}" for e in file_extensions}

    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(workspace_path):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)

        for fname in sorted(filenames):
            if len(files) >= _MAX_FILES:
                return files

            _, ext = os.path.splitext(fname)
            if ext not in _EXTENSION_MAP:
                continue
            if ext_filter is not None and ext not in ext_filter:
                continue

            abs_path = os.path.join(dirpath, fname)
            try:
                if os.path.getsize(abs_path) > _MAX_FILE_SIZE:
                    continue
            except OSError:
                continue
            files.append(os.path.relpath(abs_path, workspace_path).replace(os.sep, "/"))

    return files
