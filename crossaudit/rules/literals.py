"""Balanced-delimiter, string-aware scanning of JS object literals.

These scanners work on raw text so they keep working on files tree-sitter
cannot fully parse. Strings (including template literals) are skipped as
opaque tokens and comments are dropped; only ``{ [ (`` and their closers
change depth.
"""

import re

from crossaudit.rules.base import FieldResolution

QUOTES = "\"'`"
OPENERS = "{[("
CLOSERS = "}])"

_KEY_RE = re.compile(r"""^"([^"]+)"\s*:|^'([^']+)'\s*:|^([A-Za-z0-9_$]+)\s*:""")
_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_$]+$")
_SPREAD_RE = re.compile(r"^\.\.\.\s*([A-Za-z_$][\w$]*)\s*$")


def comment_end(text: str, index: int) -> int:
    """Index just past a ``//`` or ``/* */`` comment starting at ``index``.

    Returns ``index`` unchanged when no comment starts there. A line
    comment stops before its newline.
    """
    if text.startswith("//", index):
        end = text.find("\n", index)
        return len(text) if end == -1 else end
    if text.startswith("/*", index):
        end = text.find("*/", index + 2)
        return len(text) if end == -1 else end + 2
    return index


def find_closing_brace(text: str, open_index: int) -> int:
    """Index of the ``}`` closing the ``{`` at ``open_index``, or -1."""
    depth = 0
    quote = ""
    escaped = False
    i = open_index
    while i < len(text):
        char = text[i]
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = ""
            i += 1
            continue
        skip = comment_end(text, i)
        if skip != i:
            i = skip
            continue
        if char in QUOTES:
            quote = char
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_top_level(literal: str) -> list[str]:
    """Comma-separated entries at the first nesting level of ``literal``.

    Nested brackets inside an entry are kept as opaque text, strings are
    kept verbatim and comments are dropped.
    """
    entries: list[str] = []
    buffer: list[str] = []
    depth = 0
    quote = ""
    escaped = False

    def flush():
        entry = "".join(buffer).strip()
        buffer.clear()
        if entry:
            entries.append(entry)

    i = 0
    while i < len(literal):
        char = literal[i]
        if quote:
            i += 1
            if depth >= 1:
                buffer.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = ""
            continue
        skip = comment_end(literal, i)
        if skip != i:
            i = skip
            continue
        i += 1
        if char in QUOTES:
            quote = char
            if depth >= 1:
                buffer.append(char)
            continue
        if char in OPENERS:
            depth += 1
            if depth == 1:
                buffer.clear()
            else:
                buffer.append(char)
            continue
        if char in CLOSERS:
            if depth == 1:
                flush()
            elif depth > 1:
                buffer.append(char)
            depth = max(0, depth - 1)
            continue
        if depth == 1 and char == ",":
            flush()
        elif depth >= 1:
            buffer.append(char)

    return entries


def entry_key(entry: str) -> str | None:
    """Field name introduced by one object entry; None for spreads and computed keys."""
    if entry.startswith("..."):
        return None
    match = _KEY_RE.match(entry)
    if match:
        return match.group(1) or match.group(2) or match.group(3)
    if _BARE_KEY_RE.match(entry):
        return entry
    # method shorthand: name(args) { ... }
    method = re.match(r"^(?:async\s+)?([A-Za-z_$][\w$]*)\s*\(", entry)
    if method:
        return method.group(1)
    return None


def parse_object_keys(literal: str) -> set[str]:
    """Top-level keys of an object literal, spreads skipped."""
    return {key for key in map(entry_key, split_top_level(literal)) if key}


def parse_object_spreads(literal: str) -> list[str]:
    """Top-level spread entries: identifier names, or the raw text when not an identifier."""
    spreads = []
    for entry in split_top_level(literal):
        if entry.startswith("..."):
            match = _SPREAD_RE.match(entry)
            spreads.append(match.group(1) if match else entry[3:].strip())
    return spreads


def inline_object_at(start_index: int, text: str) -> str | None:
    """Text of the first balanced ``{...}`` at or after ``start_index``."""
    open_index = text.find("{", start_index)
    if open_index == -1:
        return None
    end_index = find_closing_brace(text, open_index)
    if end_index == -1:
        return None
    return text[open_index : end_index + 1]


def resolve_inline_object(start_index: int, text: str, known: dict[str, FieldResolution] | None = None) -> FieldResolution:
    """Field set of an inline object, following spreads of known variables.

    A spread of anything not in ``known`` leaves the result partial.
    """
    literal = inline_object_at(start_index, text)
    if literal is None:
        return FieldResolution.partial_of((), "unterminated object literal")

    resolution = FieldResolution.ok(parse_object_keys(literal))
    for spread in parse_object_spreads(literal):
        if known and spread in known:
            resolution = resolution.union(known[spread])
        else:
            resolution = resolution.union(
                FieldResolution.partial_of((), f"spread of untracked value '{spread}'")
            )
    return resolution
