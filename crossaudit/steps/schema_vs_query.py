"""schema-vs-query: fields queried but never declared, and the reverse."""

from typing import Any

from crossaudit.indexer.mapping import MappingIndex, normalize_field
from crossaudit.indexer.query_index import QueryIndex
from crossaudit.indexer.schema_index import SchemaIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.steps import commands

NAME = "schema-vs-query"
COMMANDS = commands("schema")

SYSTEM_FIELDS = frozenset({"_id", "_type", "_rev", "_key", "_ref", "_createdAt", "_updatedAt"})


def empty_payload() -> dict:
    return {
        "missingInSchema": [],
        "unusedSchemaFields": [],
        "nameMismatches": [],
        "byType": {},
        "parseErrors": [],
        "counts": {"missingInSchema": 0, "unusedSchemaFields": 0, "nameMismatches": 0, "parseErrors": 0},
    }


def compare_fields(
    schema_fields: frozenset[str], query_fields: frozenset[str], mapped_keys: frozenset[str]
) -> tuple[list[str], list[str]]:
    """``(missing_in_schema, unused_schema_fields)`` after removing system fields
    and normalized correspondences."""
    query_fields = query_fields - SYSTEM_FIELDS
    schema_fields = schema_fields - SYSTEM_FIELDS
    missing = sorted(
        f for f in query_fields - schema_fields if normalize_field(f) not in mapped_keys
    )
    unused = sorted(
        f for f in schema_fields - query_fields if normalize_field(f) not in mapped_keys
    )
    return missing, unused


def _by_type(schema: SchemaIndex, queries: QueryIndex) -> dict[str, Any]:
    per_type: dict[str, set[str]] = {}
    sites: dict[str, list[dict[str, Any]]] = {}
    for record in queries.queries:
        for type_name in record.types:
            per_type.setdefault(type_name, set()).update(record.fields)
            sites.setdefault(type_name, []).append(
                {"file": record.file, "repo": record.repo, "lineNumber": record.line_number}
            )

    result = {}
    for type_name in sorted(per_type):
        schema_type = schema.get(type_name)
        if schema_type is None:
            result[type_name] = {
                "inSchema": False,
                "missingInSchema": sorted(per_type[type_name] - SYSTEM_FIELDS),
                "unusedSchemaFields": [],
                "partial": False,
                "queries": sites[type_name],
            }
            continue
        keys = frozenset(
            normalize_field(f) for f in schema_type.fields
        ) & frozenset(normalize_field(f) for f in per_type[type_name])
        missing, unused = compare_fields(schema_type.fields, frozenset(per_type[type_name]), keys)
        result[type_name] = {
            "inSchema": True,
            "missingInSchema": missing,
            "unusedSchemaFields": unused,
            # a partial type's field set is a lower bound, so "missing" may be a false alarm
            "partial": schema_type.partial,
            "queries": sites[type_name],
        }
    return result


def run(schema: SchemaIndex, queries: QueryIndex, mapping: MappingIndex) -> StepResult:
    if not schema.types and not queries.queries:
        return StepResult.skipped(NAME, "No schema types or queries to compare", empty_payload())

    mapped_keys = frozenset(e.normalized_key for e in mapping.entries)
    missing, unused = compare_fields(mapping.all_schema_fields, mapping.all_query_fields, mapped_keys)
    usage = queries.field_usage()

    mismatches = [
        e.to_dict()
        for e in mapping.mismatches()
        if not (e.schema_fields | e.query_fields) <= SYSTEM_FIELDS
    ]
    parse_errors = [
        {
            "file": q.file,
            "repo": q.repo,
            "lineNumber": q.line_number,
            "parseError": q.parse_error,
            "queryText": q.query_text,
        }
        for q in queries.parse_errors()
    ]

    payload = {
        "missingInSchema": missing,
        "missingInSchemaUsage": {f: usage.get(f, []) for f in missing},
        "unusedSchemaFields": unused,
        "nameMismatches": mismatches,
        "byType": _by_type(schema, queries),
        "parseErrors": parse_errors,
        "counts": {
            "missingInSchema": len(missing),
            "unusedSchemaFields": len(unused),
            "nameMismatches": len(mismatches),
            "parseErrors": len(parse_errors),
        },
    }

    anything = missing or unused or mismatches or parse_errors
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if anything else StepStatus.PASS,
        payload=payload,
        requires_enforcement=bool(missing),
    )
