"""C# source structure indexing with Tree-sitter.

Recovers the declaring class and namespace of every method in a project so
bare test names from ``dotnet test --list-tests`` can be qualified. Every
method declaration is recorded; which of them are tests is decided by dotnet,
never here.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import tree_sitter
import tree_sitter_c_sharp

from testament.models import NAME_SEPARATOR, SourceIndex, SourceMethodInfo

logger = structlog.get_logger()

SOURCE_SUFFIX = ".cs"
SKIPPED_DIRS = frozenset({"bin", "obj"})

# Nested types are reported by vstest as Outer+Inner.
NESTED_TYPE_SEPARATOR = "+"

_TYPE_DECLARATIONS = frozenset(
    {"class_declaration", "record_declaration", "struct_declaration", "interface_declaration"}
)

# Member bodies are never entered; only these are descended.
# ERROR wraps declarations tree-sitter recovered around a syntax error.
_MEMBER_CONTAINERS = frozenset({"declaration_list", "ERROR"})


def iter_source_files(project_dir: Path) -> Iterator[Path]:
    """Yield .cs files under ``project_dir`` in a stable order.

    Build output and hidden directories are skipped.
    """
    for root, dirs, files in os.walk(project_dir):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS and not d.startswith("."))
        for name in sorted(files):
            if name.endswith(SOURCE_SUFFIX):
                yield Path(root) / name


@dataclass
class SourceIndexer:
    """Tree-sitter backed extractor of method declarations.

    Usage::

        indexer = SourceIndexer()
        methods = indexer.parse_source(b"namespace A { class B { void C() {} } }")
        index = indexer.build_index(Path("tests/MyProject.Tests"))
    """

    _language: Any = field(default=None, init=False, repr=False)
    _local: threading.local = field(default_factory=threading.local, init=False, repr=False)

    def __post_init__(self) -> None:
        self._language = tree_sitter.Language(tree_sitter_c_sharp.language())

    @property
    def _parser(self) -> Any:
        # Parsers are not thread-safe; discovery workers each get their own.
        parser = getattr(self._local, "parser", None)
        if parser is None:
            parser = tree_sitter.Parser()
            parser.language = self._language
            self._local.parser = parser
        return parser

    def parse_source(self, content: bytes | str) -> list[SourceMethodInfo]:
        """Every method declaration in a C# compilation unit, in source order."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        tree = self._parser.parse(content)
        methods: list[SourceMethodInfo] = []
        self._walk(tree.root_node, content, "", "", methods)
        return methods

    def parse_file(self, path: Path) -> list[SourceMethodInfo]:
        return self.parse_source(path.read_bytes())

    def build_index(self, project_dir: Path) -> SourceIndex:
        """Method name -> declarations, across every source file of a project.

        Unreadable or unparseable files contribute nothing; they never fail
        the index.
        """
        index: SourceIndex = {}
        files = 0
        for path in iter_source_files(project_dir):
            try:
                methods = self.parse_file(path)
            except (OSError, ValueError, RecursionError) as e:
                logger.debug("source_file_skipped", path=str(path), error=str(e))
                continue
            files += 1
            for method in methods:
                index.setdefault(method.method_name, []).append(method)

        logger.debug(
            "source_index_built",
            project_dir=str(project_dir),
            files=files,
            method_names=len(index),
        )
        return index

    def _walk(
        self,
        node: Any,
        source: bytes,
        namespace: str,
        class_name: str,
        out: list[SourceMethodInfo],
    ) -> None:
        kind = node.type

        if kind == "compilation_unit":
            # A file-scoped namespace covers every declaration after it.
            active = namespace
            for child in node.children:
                if child.type == "file_scoped_namespace_declaration":
                    active = _join(namespace, _name_of(child, source))
                    for inner in child.children:
                        self._walk(inner, source, active, class_name, out)
                else:
                    self._walk(child, source, active, class_name, out)
            return

        if kind == "namespace_declaration":
            nested = _join(namespace, _name_of(node, source))
            for child in node.children:
                self._walk(child, source, nested, class_name, out)
            return

        if kind in _TYPE_DECLARATIONS:
            name = _name_of(node, source)
            if class_name:
                name = f"{class_name}{NESTED_TYPE_SEPARATOR}{name}"
            for child in node.children:
                self._walk(child, source, namespace, name, out)
            return

        if kind == "method_declaration":
            method = _name_of(node, source)
            if method:
                out.append(
                    SourceMethodInfo(method_name=method, class_name=class_name, namespace=namespace)
                )
            return

        if kind in _MEMBER_CONTAINERS:
            for child in node.children:
                self._walk(child, source, namespace, class_name, out)


def _join(outer: str, inner: str) -> str:
    if not outer:
        return inner
    if not inner:
        return outer
    return f"{outer}{NAME_SEPARATOR}{inner}"


def _text(node: Any, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _name_of(node: Any, source: bytes) -> str:
    """The declaration's ``name`` field, or its first identifier-like child."""
    name = node.child_by_field_name("name")
    if name is not None:
        return _text(name, source)
    for child in node.children:
        if child.type in ("identifier", "qualified_name"):
            return _text(child, source)
    return ""
