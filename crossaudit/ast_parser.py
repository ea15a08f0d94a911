"""Tree-sitter parsing of JavaScript/TypeScript sources for AST consumers."""

import threading
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from tree_sitter_language_pack import get_parser

LANGUAGE_BY_SUFFIX = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}


def language_for(file_path: str) -> str | None:
    """Grammar name for a file path, or None for non-JS/TS files."""
    lowered = file_path.lower()
    for suffix, language in LANGUAGE_BY_SUFFIX.items():
        if lowered.endswith(suffix):
            return language
    return None


@dataclass(frozen=True)
class ParsedSource:
    """A parsed file: the tree plus the exact bytes it was built from."""

    tree: Any
    source: bytes
    language: str

    @property
    def root(self) -> Any:
        return self.tree.root_node

    @property
    def has_errors(self) -> bool:
        return self.tree.root_node.has_error


class ASTParser:
    """Tree-sitter parser for JS/TS.

    Parser objects are not shared across threads; each worker thread gets
    its own set on first use.
    """

    def __init__(self):
        self._local = threading.local()

    def _parser(self, language: str) -> Any:
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        if language not in parsers:
            parsers[language] = get_parser(language)
        return parsers[language]

    def parse(self, content: str, file_path: str) -> ParsedSource | None:
        """Parse ``content``; returns None only for unsupported file types.

        Malformed source still yields a tree: tree-sitter recovers and marks
        the broken regions as ``ERROR`` nodes.
        """
        language = language_for(file_path)
        if language is None:
            return None
        source = content.encode("utf-8")
        tree = self._parser(language).parse(source)
        return ParsedSource(tree=tree, source=source, language=language)


def iter_nodes(node: Any) -> Iterator[Any]:
    """Pre-order walk without recursion (deeply nested literals are common)."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def node_text(node: Any) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def node_line(node: Any) -> int:
    """1-based start line."""
    return node.start_point[0] + 1


def string_value(node: Any) -> str | None:
    """Literal value of a string or substitution-free template string."""
    if node is None:
        return None
    if node.type == "string":
        text = node_text(node)
        return text[1:-1] if len(text) >= 2 else ""
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        text = node_text(node)
        return text[1:-1] if len(text) >= 2 else ""
    return None


def property_key(pair: Any) -> str | None:
    """Key name of an object ``pair``; None for computed keys."""
    key = pair.child_by_field_name("key")
    if key is None:
        return None
    if key.type in ("property_identifier", "identifier", "number"):
        return node_text(key)
    return string_value(key)


def object_properties(obj: Any) -> dict[str, Any]:
    """Map of key -> value node for the static ``key: value`` pairs of an object."""
    props = {}
    for child in obj.named_children:
        if child.type == "pair":
            key = property_key(child)
            if key is not None:
                props[key] = child.child_by_field_name("value")
        elif child.type == "shorthand_property_identifier":
            props[node_text(child)] = child
    return props


def unwrap_expression(node: Any) -> Any:
    """Strip parentheses and TS ``as``/``satisfies`` wrappers."""
    while node is not None and node.type in (
        "parenthesized_expression",
        "as_expression",
        "satisfies_expression",
        "non_null_expression",
    ):
        # the wrapped expression is always the first named child
        node = node.named_children[0] if node.named_children else None
    return node


def call_name(call: Any) -> str:
    """Callee text of a ``call_expression`` (``defineType``, ``client.create``)."""
    function = call.child_by_field_name("function")
    return node_text(function) if function is not None else ""


def call_arguments(call: Any) -> list[Any]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    return list(args.named_children)
