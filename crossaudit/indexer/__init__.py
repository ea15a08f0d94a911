"""crossaudit indexer package.

Index builders turn the scanned file set into immutable value objects:

- SchemaIndex: merged content types from schema-definition files
- QueryIndex: embedded queries and the fields they project
- IntegrationsInventory: provider usage and env key references
- MappingIndex: normalized schema <-> query field correspondences

Builders never raise for a single bad file; unresolvable constructs are
recorded as data (``partial``, ``parse_error``).
"""

from .integrations import IntegrationsInventory, build_integrations_inventory
from .mapping import MappingIndex, build_mapping_index
from .query_index import QueryIndex, build_query_index
from .schema_index import SchemaIndex, build_schema_index

__all__ = [
    "IntegrationsInventory",
    "MappingIndex",
    "QueryIndex",
    "SchemaIndex",
    "build_integrations_inventory",
    "build_mapping_index",
    "build_query_index",
    "build_schema_index",
]
