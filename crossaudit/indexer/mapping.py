"""Mapping Index: schema/query field correspondences by normalized name.

``first_name``, ``FirstName`` and ``firstName`` all normalize to
``firstname``. Unrelated fields that normalize identically are matched
too; this is accepted.
"""

import re
from dataclasses import dataclass
from typing import Any

from crossaudit.indexer.integrations import IntegrationsInventory
from crossaudit.indexer.query_index import QueryIndex
from crossaudit.indexer.schema_index import SchemaIndex

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_field(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


@dataclass(frozen=True)
class MappingEntry:
    normalized_key: str
    schema_fields: frozenset[str]
    query_fields: frozenset[str]

    @property
    def is_exact(self) -> bool:
        """Every spelling appears on both sides."""
        return self.schema_fields == self.query_fields

    def to_dict(self) -> dict[str, Any]:
        return {
            "normalizedKey": self.normalized_key,
            "schemaFields": sorted(self.schema_fields),
            "queryFields": sorted(self.query_fields),
        }


def _group(names) -> dict[str, set[str]]:
    groups: dict[str, set[str]] = {}
    for name in names:
        key = normalize_field(name)
        if key:
            groups.setdefault(key, set()).add(name)
    return groups


@dataclass(frozen=True)
class MappingIndex:
    """Merged view of the schema, query and integrations indices."""

    entries: tuple[MappingEntry, ...]
    all_schema_fields: frozenset[str]
    all_query_fields: frozenset[str]
    env_keys: tuple[str, ...] = ()
    integration_categories: tuple[str, ...] = ()

    def corresponding(self, name: str) -> MappingEntry | None:
        key = normalize_field(name)
        for entry in self.entries:
            if entry.normalized_key == key:
                return entry
        return None

    def mismatches(self) -> list[MappingEntry]:
        return [e for e in self.entries if not e.is_exact]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "allSchemaFields": sorted(self.all_schema_fields),
            "allQueryFields": sorted(self.all_query_fields),
            "envKeys": list(self.env_keys),
            "integrationCategories": list(self.integration_categories),
        }


def build_mapping_index(
    schema: SchemaIndex,
    queries: QueryIndex,
    integrations: IntegrationsInventory | None = None,
) -> MappingIndex:
    schema_fields = schema.all_fields()
    query_fields = queries.all_fields()
    schema_groups = _group(schema_fields)
    query_groups = _group(query_fields)

    entries = tuple(
        MappingEntry(
            normalized_key=key,
            schema_fields=frozenset(schema_groups[key]),
            query_fields=frozenset(query_groups[key]),
        )
        for key in sorted(schema_groups.keys() & query_groups.keys())
    )
    return MappingIndex(
        entries=entries,
        all_schema_fields=schema_fields,
        all_query_fields=query_fields,
        env_keys=tuple(integrations.referenced_keys()) if integrations else (),
        integration_categories=tuple(integrations.categories()) if integrations else (),
    )
