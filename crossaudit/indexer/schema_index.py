"""Schema Index Builder.

Walks schema-definition files for two shapes:

- ``defineType({name, type, fields: [...]})``
- ``export default {name, type, fields: [...]}``

Field elements are object literals, optionally wrapped in ``defineField``.
Anything that cannot be resolved statically marks the owning type
``partial`` instead of failing; types with the same name are unioned.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from crossaudit.ast_parser import (
    ASTParser,
    call_arguments,
    call_name,
    iter_nodes,
    node_text,
    object_properties,
    string_value,
    unwrap_expression,
)
from crossaudit.scanner import SourceFile
from crossaudit.utils.logging import logger

REQUIRED_MARKERS = (".required(", "Rule.required(")
FIELD_WRAPPERS = frozenset({"defineField", "defineArrayMember"})


@dataclass(frozen=True)
class SchemaType:
    """A named content type. ``required`` is always a subset of ``fields``."""

    name: str
    kind: str
    fields: frozenset[str]
    required: frozenset[str]
    sources: frozenset[str]
    partial: bool = False
    declared_type: str | None = None

    def merge(self, other: "SchemaType") -> "SchemaType":
        kind = "document" if "document" in (self.kind, other.kind) else self.kind
        return SchemaType(
            name=self.name,
            kind=kind,
            fields=self.fields | other.fields,
            required=self.required | other.required,
            sources=self.sources | other.sources,
            partial=self.partial or other.partial,
            declared_type=self.declared_type or other.declared_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "type": self.declared_type,
            "fields": sorted(self.fields),
            "required": sorted(self.required),
            "sources": sorted(self.sources),
            "partial": self.partial,
        }


@dataclass(frozen=True)
class SchemaIndex:
    """Merged schema types, keyed by name."""

    types: tuple[SchemaType, ...] = ()
    files: tuple[str, ...] = ()

    def get(self, name: str) -> SchemaType | None:
        for schema_type in self.types:
            if schema_type.name == name:
                return schema_type
        return None

    def all_fields(self) -> frozenset[str]:
        fields: set[str] = set()
        for schema_type in self.types:
            fields |= schema_type.fields
        return frozenset(fields)

    def documents(self) -> list[SchemaType]:
        return [t for t in self.types if t.kind == "document"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "types": [t.to_dict() for t in self.types],
            "files": list(self.files),
            "counts": {
                "types": len(self.types),
                "documents": len(self.documents()),
                "partial": sum(1 for t in self.types if t.partial),
            },
        }


def _field_object(element: Any) -> Any:
    element = unwrap_expression(element)
    if element is None:
        return None
    if element.type == "object":
        return element
    if element.type == "call_expression" and call_name(element) in FIELD_WRAPPERS:
        args = call_arguments(element)
        arg = unwrap_expression(args[0]) if args else None
        if arg is not None and arg.type == "object":
            return arg
    return None


def _extract_fields(array: Any) -> tuple[set[str], set[str], bool]:
    fields: set[str] = set()
    required: set[str] = set()
    partial = False

    for element in array.named_children:
        if element.type == "comment":
            continue
        obj = _field_object(element)
        if obj is None:
            partial = True
            continue
        props = object_properties(obj)
        name = string_value(props.get("name"))
        if not name:
            partial = True
            continue
        fields.add(name)

        validation = props.get("validation")
        if validation is not None:
            text = node_text(validation)
            if any(marker in text for marker in REQUIRED_MARKERS):
                required.add(name)

        if "fields" in props:
            # composite field with its own sub-schema
            partial = True

    return fields, required, partial


def extract_schema_from_object(obj: Any, source: str) -> SchemaType | None:
    """SchemaType for one definition object, or None if it is not one."""
    props = object_properties(obj)
    name = string_value(props.get("name"))
    if not name:
        return None
    if "fields" not in props:
        return None
    declared_type = string_value(props.get("type"))
    if not declared_type:
        return None

    kind = "document" if declared_type == "document" else "object"

    fields_value = unwrap_expression(props["fields"])
    if fields_value is None or fields_value.type != "array":
        return SchemaType(
            name=name,
            kind=kind,
            fields=frozenset(),
            required=frozenset(),
            sources=frozenset({source}),
            partial=True,
            declared_type=declared_type,
        )

    fields, required, partial = _extract_fields(fields_value)
    return SchemaType(
        name=name,
        kind=kind,
        fields=frozenset(fields),
        required=frozenset(required & fields),
        sources=frozenset({source}),
        partial=partial,
        declared_type=declared_type,
    )


def extract_schema_types(content: str, source: str, parser: ASTParser) -> list[SchemaType]:
    """All schema definitions in one file's text."""
    parsed = parser.parse(content, source)
    if parsed is None:
        return []

    found = []
    for node in iter_nodes(parsed.root):
        if node.type == "call_expression" and call_name(node) == "defineType":
            args = call_arguments(node)
            arg = unwrap_expression(args[0]) if args else None
            if arg is not None and arg.type == "object":
                schema = extract_schema_from_object(arg, source)
                if schema:
                    found.append(schema)
        elif node.type == "export_statement" and any(c.type == "default" for c in node.children):
            for child in node.named_children:
                value = unwrap_expression(child)
                if value is not None and value.type == "object":
                    schema = extract_schema_from_object(value, source)
                    if schema:
                        found.append(schema)
    return found


def merge_types(discovered: list[SchemaType]) -> tuple[SchemaType, ...]:
    merged: dict[str, SchemaType] = {}
    for schema_type in discovered:
        existing = merged.get(schema_type.name)
        merged[schema_type.name] = existing.merge(schema_type) if existing else schema_type
    return tuple(merged[name] for name in sorted(merged))


def build_schema_index(
    files: list[SourceFile], parser: ASTParser | None = None, max_workers: int = 8
) -> SchemaIndex:
    """Parse every schema file and merge the discovered types."""
    parser = parser or ASTParser()

    def process(source_file: SourceFile) -> list[SchemaType]:
        label = f"{source_file.repo}/{source_file.path}"
        try:
            return extract_schema_types(source_file.read(), label, parser)
        except (ValueError, RecursionError) as e:
            logger.debug(f"Schema extraction failed for {label}: {e}")
            return []

    discovered: list[SchemaType] = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for types in executor.map(process, files):
            discovered.extend(types)

    index = SchemaIndex(
        types=merge_types(discovered),
        files=tuple(sorted(f"{f.repo}/{f.path}" for f in files)),
    )
    logger.info(f"Schema index: {len(index.types)} types from {len(files)} files")
    return index
