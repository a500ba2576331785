"""
Syntax-tree providers for the structural stage of the block locator.

A provider parses text for a language and returns a SyntaxNode tree. The
locator only needs node types, named-ness, children, leaf text and line ranges,
so any parser can be adapted. TreeSitterProvider loads tree-sitter grammars on
first use; when a grammar package is not installed the language is simply
unsupported and the structural stage is skipped.
"""

from __future__ import annotations

import importlib
import re
from abc import ABC, abstractmethod
from pathlib import PurePath
from typing import Any, Dict, Iterator, List, Optional, Sequence

from patchwise.logger import logger

from .models import Span
from .text import reindent

WHITESPACE_RE = re.compile(r"\s+")

# Language name -> python module exposing language() for tree-sitter
TREESITTER_GRAMMARS: Dict[str, str] = {
    "python": "tree_sitter_python",
    "javascript": "tree_sitter_javascript",
    "go": "tree_sitter_go",
    "c": "tree_sitter_c",
    "cpp": "tree_sitter_cpp",
    "java": "tree_sitter_java",
    "rust": "tree_sitter_rust",
    "lua": "tree_sitter_lua",
}

LANGUAGE_EXTENSIONS: Dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".go": "go",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".java": "java",
    ".rs": "rust",
    ".lua": "lua",
}


def language_for_path(path: str) -> Optional[str]:
    return LANGUAGE_EXTENSIONS.get(PurePath(path).suffix.lower())


class SyntaxNode(ABC):
    @property
    @abstractmethod
    def type(self) -> str: ...

    @property
    @abstractmethod
    def is_named(self) -> bool: ...

    @property
    @abstractmethod
    def children(self) -> List["SyntaxNode"]: ...

    @property
    @abstractmethod
    def text(self) -> str: ...

    @property
    @abstractmethod
    def start_line(self) -> int:
        """1-based first line of the node."""
        ...

    @property
    @abstractmethod
    def end_line(self) -> int:
        """1-based last line of the node (inclusive)."""
        ...


class SyntaxTreeProvider(ABC):
    @abstractmethod
    def parse(self, text: str, language: str) -> Optional[SyntaxNode]:
        """Parse text; return the root node, or None if the language is unsupported."""
        ...


class TreeSitterNode(SyntaxNode):
    def __init__(self, node: Any) -> None:
        self._node = node

    @property
    def type(self) -> str:
        return self._node.type

    @property
    def is_named(self) -> bool:
        return bool(self._node.is_named)

    @property
    def children(self) -> List[SyntaxNode]:
        return [TreeSitterNode(c) for c in self._node.children]

    @property
    def text(self) -> str:
        raw = self._node.text
        if raw is None:
            return ""
        return raw.decode("utf-8", errors="replace")

    @property
    def start_line(self) -> int:
        return self._node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        row, col = self._node.end_point[0], self._node.end_point[1]
        # A node ending at column 0 stops before that row's first character
        if col == 0 and row > self._node.start_point[0]:
            row -= 1
        return row + 1


class TreeSitterProvider(SyntaxTreeProvider):
    def __init__(self, grammars: Optional[Dict[str, str]] = None) -> None:
        self._grammars = dict(grammars or TREESITTER_GRAMMARS)
        self._parsers: Dict[str, Any] = {}

    def _get_parser(self, language: str) -> Any:
        if language in self._parsers:
            return self._parsers[language]
        parser = None
        module_name = self._grammars.get(language)
        if module_name is not None:
            try:
                from tree_sitter import Language, Parser

                grammar = importlib.import_module(module_name)
                parser = Parser(Language(grammar.language()))
            except ImportError as e:
                logger.debug("tree-sitter grammar unavailable", language=language, err=str(e))
        self._parsers[language] = parser
        return parser

    def parse(self, text: str, language: str) -> Optional[SyntaxNode]:
        parser = self._get_parser(language)
        if parser is None:
            return None
        tree = parser.parse(text.encode("utf-8"))
        return TreeSitterNode(tree.root_node)


def is_significant(node: SyntaxNode) -> bool:
    return node.is_named and "comment" not in node.type


def significant_children(node: SyntaxNode) -> List[SyntaxNode]:
    return [c for c in node.children if is_significant(c)]


def comparable_children(node: SyntaxNode) -> List[SyntaxNode]:
    # Anonymous tokens (operators, keywords, punctuation) are kept
    return [c for c in node.children if "comment" not in c.type]


def nodes_match(a: SyntaxNode, b: SyntaxNode) -> bool:
    """
    Same type, and all non-comment children (named and anonymous) match
    recursively; leaves compare by whitespace-normalised text.
    """
    if a.type != b.type:
        return False
    ca = comparable_children(a)
    cb = comparable_children(b)
    if not ca and not cb:
        return WHITESPACE_RE.sub(" ", a.text).strip() == WHITESPACE_RE.sub(" ", b.text).strip()
    if len(ca) != len(cb):
        return False
    return all(nodes_match(x, y) for x, y in zip(ca, cb))


def _walk(root: SyntaxNode, start: int, end: int) -> Iterator[SyntaxNode]:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.end_line < start or node.start_line > end:
            continue
        yield node
        stack.extend(reversed(node.children))


def find_structural_match(
    provider: SyntaxTreeProvider,
    language: str,
    document_lines: Sequence[str],
    target_lines: Sequence[str],
    start: int,
    end: int,
) -> Optional[Span]:
    target_root = provider.parse("\n".join(reindent(target_lines, "")), language)
    if target_root is None:
        return None
    top = significant_children(target_root)
    if len(top) != 1:
        return None
    needle = top[0]

    doc_root = provider.parse("\n".join(document_lines), language)
    if doc_root is None:
        return None
    for node in _walk(doc_root, start, end):
        if node.start_line < start or node.end_line > end:
            continue
        if node.type == needle.type and nodes_match(node, needle):
            return Span(node.start_line, node.end_line)
    return None
