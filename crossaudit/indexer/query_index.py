"""Query Index Builder.

Finds embedded GROQ in three call shapes:

- tagged template: groq`...`
- method call with a literal: ``client.fetch("*[...]")``
- bare call with a literal: ``defineQuery("...")`` / ``fetch("*[...]")``,
  never when preceded by ``.`` so the method form is not matched twice

Each query is parsed for validity and scanned for its top-level projection
fields. Field extraction does not depend on the parse succeeding.
"""

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from crossaudit.indexer.groq import type_filters, validate
from crossaudit.scanner import SourceFile
from crossaudit.utils.helpers import LineIndex
from crossaudit.utils.logging import logger

TAGGED_TEMPLATE = re.compile(r"\bgroq\s*`")
METHOD_CALL = re.compile(r"\.fetch\s*(?:<[^>()]*>)?\s*\(\s*(?=[\"'`])")
BARE_CALL = re.compile(r"(?<![.\w$])(defineQuery|fetch)\s*\(\s*(?=[\"'`])")

QUERY_START = re.compile(r"^\s*(\*|count\s*\(|\{|\[)")

_LEADING_IDENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(\()?")
_ALIAS = re.compile(r"""^(?:"([^"]*)"|'([^']*)'|([A-Za-z_][A-Za-z0-9_]*))\s*:(?!:)\s*(.*)$""", re.DOTALL)


@dataclass(frozen=True)
class QueryRecord:
    """One extracted query occurrence."""

    file: str
    repo: str
    line_number: int
    query_text: str
    fields: tuple[str, ...]
    parse_error: str | None
    form: str
    types: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "repo": self.repo,
            "lineNumber": self.line_number,
            "queryText": self.query_text,
            "fields": list(self.fields),
            "parseError": self.parse_error,
            "form": self.form,
            "types": list(self.types),
        }


@dataclass(frozen=True)
class QueryIndex:
    """All queries plus the reverse field -> usage-site index."""

    queries: tuple[QueryRecord, ...] = ()

    def field_usage(self) -> dict[str, list[dict[str, Any]]]:
        usage: dict[str, list[dict[str, Any]]] = {}
        for record in self.queries:
            for name in record.fields:
                usage.setdefault(name, []).append(
                    {"file": record.file, "repo": record.repo, "lineNumber": record.line_number}
                )
        return {
            name: sorted(sites, key=lambda s: (s["repo"], s["file"], s["lineNumber"]))
            for name, sites in sorted(usage.items())
        }

    def all_fields(self) -> frozenset[str]:
        return frozenset(name for record in self.queries for name in record.fields)

    def parse_errors(self) -> list[QueryRecord]:
        return [q for q in self.queries if q.parse_error]

    def to_dict(self) -> dict[str, Any]:
        return {
            "queries": [q.to_dict() for q in self.queries],
            "fieldUsage": self.field_usage(),
            "counts": {
                "queries": len(self.queries),
                "fields": len(self.all_fields()),
                "parseErrors": len(self.parse_errors()),
            },
        }


def _read_template(text: str, start: int) -> tuple[str, list[str], int] | None:
    """Read a template literal whose opening backtick is at ``start``.

    Returns ``(raw_body, interpolations, end_index)`` or None if unterminated.
    """
    pos = start + 1
    body = []
    interpolations = []
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            body.append(text[pos : pos + 2])
            pos += 2
            continue
        if char == "`":
            return "".join(body), interpolations, pos
        if text.startswith("${", pos):
            depth = 0
            expr_start = pos + 2
            quote = ""
            while pos < len(text):
                c = text[pos]
                if quote:
                    if c == "\\":
                        pos += 1
                    elif c == quote:
                        quote = ""
                elif c in "\"'":
                    quote = c
                elif c == "{":
                    depth += 1
                elif c == "}":
                    depth -= 1
                    if depth == 0:
                        break
                pos += 1
            if pos >= len(text):
                return None
            interpolations.append(text[expr_start:pos])
            body.append(f"${{{len(interpolations) - 1}}}")
            pos += 1
            continue
        body.append(char)
        pos += 1
    return None


def _read_string(text: str, start: int) -> tuple[str, list[str], int] | None:
    """Read the string literal at ``start`` (quote or backtick)."""
    quote = text[start]
    if quote == "`":
        return _read_template(text, start)
    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == quote:
            return text[start + 1 : pos], [], pos
        if char == "\n":
            return None
        pos += 1
    return None


def parameterize(body: str) -> str:
    """Replace ``${n}`` interpolation markers with ``$paramN`` for parsing."""
    return re.sub(r"\$\{(\d+)\}", lambda m: f"$param{m.group(1)}", body)


def _entry_field(entry: str) -> str | None:
    entry = entry.strip()
    if not entry or entry.startswith("...") or "=>" in entry:
        return None
    alias = _ALIAS.match(entry)
    if alias:
        entry = alias.group(4).strip()
    match = _LEADING_IDENT.match(entry)
    if not match or match.group(2):
        return None
    name = match.group(1)
    if name in ("true", "false", "null"):
        return None
    return name


def extract_fields(query: str) -> list[str]:
    """Top-level projection fields, sorted and unique.

    Collects entries only while the opener stack is exactly one ``{``.
    Strings are skipped as opaque tokens; aliased entries record their
    source field.
    """
    fields: set[str] = set()
    stack: list[str] = []
    buffer: list[str] = []
    quote = ""
    escaped = False
    top = ["{"]

    def flush():
        name = _entry_field("".join(buffer))
        buffer.clear()
        if name:
            fields.add(name)

    for char in query:
        if quote:
            if stack == top:
                buffer.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = ""
            continue
        if char in "\"'":
            quote = char
            if stack == top:
                buffer.append(char)
            continue
        if char in "{[(":
            if stack == top:
                buffer.append(char)
            stack.append(char)
            if stack == top:
                buffer.clear()
            continue
        if char in "}])":
            if stack == top:
                flush()
            if stack:
                stack.pop()
            continue
        if stack == top:
            if char == ",":
                flush()
            else:
                buffer.append(char)

    return sorted(fields)


def find_queries(content: str) -> list[tuple[int, str, str]]:
    """``(offset, form, raw_text)`` for every query occurrence, in file order."""
    found: list[tuple[int, str, str]] = []
    seen_literals: set[int] = set()

    for match in TAGGED_TEMPLATE.finditer(content):
        literal_start = match.end() - 1
        read = _read_template(content, literal_start)
        if read is None:
            continue
        seen_literals.add(literal_start)
        found.append((match.start(), "taggedTemplate", read[0]))

    for form, pattern in (("methodCall", METHOD_CALL), ("bareCall", BARE_CALL)):
        for match in pattern.finditer(content):
            literal_start = match.end()
            if literal_start in seen_literals:
                continue
            read = _read_string(content, literal_start)
            if read is None:
                continue
            body = read[0]
            # plain fetch() of a URL is not a query
            if not QUERY_START.match(body):
                continue
            seen_literals.add(literal_start)
            found.append((match.start(), form, body))

    found.sort(key=lambda item: item[0])
    return found


def extract_queries(content: str, file_path: str, repo: str = "") -> list[QueryRecord]:
    lines = LineIndex(content)
    records = []
    for offset, form, raw in find_queries(content):
        text = parameterize(raw)
        records.append(
            QueryRecord(
                file=file_path,
                repo=repo,
                line_number=lines.line_for(offset),
                query_text=raw.strip(),
                fields=tuple(extract_fields(text)),
                parse_error=validate(text),
                form=form,
                types=tuple(type_filters(text)),
            )
        )
    return records


def build_query_index(files: list[SourceFile], max_workers: int = 8) -> QueryIndex:
    def process(source_file: SourceFile) -> list[QueryRecord]:
        return extract_queries(source_file.read(), source_file.path, source_file.repo)

    records: list[QueryRecord] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for found in executor.map(process, files):
            records.extend(found)

    records.sort(key=lambda r: (r.repo, r.file, r.line_number))
    index = QueryIndex(queries=tuple(records))
    logger.info(
        f"Query index: {len(records)} queries, {len(index.parse_errors())} with parse errors"
    )
    return index
