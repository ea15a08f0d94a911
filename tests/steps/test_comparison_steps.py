"""Tests for the cross-reference steps over synthetic indices."""

from pathlib import Path

import pytest

from crossaudit.indexer.env_files import EnvDeclarations
from crossaudit.indexer.integrations import EnvReference, IntegrationsInventory
from crossaudit.indexer.mapping import build_mapping_index
from crossaudit.indexer.query_index import QueryIndex, QueryRecord
from crossaudit.indexer.schema_index import SchemaIndex, SchemaType
from crossaudit.pipeline.structures import StepStatus
from crossaudit.repos import STATUS_MISSING, RepoDescriptor
from crossaudit.sanity_client import RuntimeSample
from crossaudit.steps import env_resolution_matrix, external_id_integrity, schema_vs_query


def schema_of(*types):
    return SchemaIndex(types=tuple(types))


def doc_type(name, fields, required=()):
    return SchemaType(name, "document", frozenset(fields), frozenset(required), frozenset({f"studio/{name}.ts"}))


def query(fields, types=("order",), parse_error=None, line=3):
    return QueryRecord(
        file="src/q.ts",
        repo="storefront",
        line_number=line,
        query_text="*[...]",
        fields=tuple(sorted(fields)),
        parse_error=parse_error,
        form="methodCall",
        types=tuple(types),
    )


def compare(schema, *records):
    queries = QueryIndex(queries=records)
    return schema_vs_query.run(schema, queries, build_mapping_index(schema, queries))


class TestSchemaVsQuery:
    def test_missing_and_unused_fields(self):
        result = compare(schema_of(doc_type("order", {"status", "total"})), query({"_id", "status", "totalAmount"}))

        assert result.status == StepStatus.WARN
        assert result.requires_enforcement
        assert result.payload["missingInSchema"] == ["totalAmount"]
        assert result.payload["unusedSchemaFields"] == ["total"]
        assert result.payload["missingInSchemaUsage"]["totalAmount"] == [
            {"file": "src/q.ts", "repo": "storefront", "lineNumber": 3}
        ]
        assert result.payload["byType"]["order"]["missingInSchema"] == ["totalAmount"]

    def test_normalized_names_are_mismatches_not_missing(self):
        result = compare(schema_of(doc_type("customer", {"firstName"})), query({"first_name"}, types=("customer",)))

        assert result.payload["missingInSchema"] == []
        assert result.payload["unusedSchemaFields"] == []
        assert result.payload["nameMismatches"] == [
            {"normalizedKey": "firstname", "schemaFields": ["firstName"], "queryFields": ["first_name"]}
        ]
        assert result.status == StepStatus.WARN
        assert not result.requires_enforcement

    def test_exact_match_passes(self):
        result = compare(schema_of(doc_type("order", {"status"})), query({"status"}))
        assert result.status == StepStatus.PASS

    def test_unknown_query_type_and_parse_errors(self):
        result = compare(
            schema_of(doc_type("order", {"status"})),
            query({"status"}),
            query({"title"}, types=("ghost",), parse_error="Expected ']' at position 4", line=9),
        )

        assert result.payload["byType"]["ghost"]["inSchema"] is False
        assert result.payload["parseErrors"][0]["lineNumber"] == 9
        assert result.payload["counts"]["parseErrors"] == 1

    def test_partial_type_is_flagged(self):
        partial = SchemaType("order", "document", frozenset({"status"}), frozenset(), frozenset({"x"}), partial=True)
        result = compare(schema_of(partial), query({"status", "extra"}))
        assert result.payload["byType"]["order"]["partial"] is True

    def test_skipped_without_inputs(self):
        result = compare(SchemaIndex())

        assert result.status == StepStatus.SKIPPED
        assert result.reason == "No schema types or queries to compare"
        assert result.payload == schema_vs_query.empty_payload()


class TestExternalIdIntegrity:
    SCHEMA = schema_of(
        doc_type("order", {"stripePaymentIntentId", "easyPostShipmentId", "total"}, required={"stripePaymentIntentId"})
    )

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("stripePaymentIntentId", True),
            ("easyPostShipmentId", True),
            ("customerId", True),
            ("legacyExternalId", True),
            ("total", False),
            ("_id", False),
        ],
    )
    def test_id_field_names(self, name, expected):
        assert external_id_integrity.is_external_id_field(name) is expected

    def test_static_only_without_sample(self):
        result = external_id_integrity.run(self.SCHEMA, RuntimeSample.unavailable("no credentials"))

        assert result.status == StepStatus.PASS
        assert result.payload["idFields"] == [
            {"type": "order", "field": "easyPostShipmentId", "required": False},
            {"type": "order", "field": "stripePaymentIntentId", "required": True},
        ]
        assert result.payload["runtime"] == {"sampled": False, "reason": "no credentials"}

    def test_duplicates_and_null_rates(self):
        docs = (
            {"stripePaymentIntentId": "pi_1"},
            {"stripePaymentIntentId": "pi_1"},
            {"stripePaymentIntentId": None},
            {"easyPostShipmentId": "shp_1"},
        )
        result = external_id_integrity.run(self.SCHEMA, RuntimeSample(documents={"order": docs}))

        assert result.status == StepStatus.WARN
        assert result.requires_enforcement
        assert result.payload["duplicates"] == {"order.stripePaymentIntentId": {"pi_1": 2}}
        assert result.payload["nullRates"] == {
            "order.easyPostShipmentId": 0.75,
            "order.stripePaymentIntentId": 0.5,
        }

    def test_skipped_without_schema(self):
        result = external_id_integrity.run(SchemaIndex(), RuntimeSample.unavailable("x"))
        assert result.status == StepStatus.SKIPPED


class TestEnvResolutionMatrix:
    @pytest.fixture
    def result(self):
        repos = (
            RepoDescriptor(name="functions", role="functions", path=Path("/repos/functions")),
            RepoDescriptor(name="gone", role="studio", path=Path("/repos/gone"), status=STATUS_MISSING),
        )
        declarations = {
            "functions": EnvDeclarations(
                repo="functions",
                file_keys={
                    "A": ({"file": ".env", "lineNumber": 1},),
                    "UNUSED": ({"file": ".env", "lineNumber": 2},),
                },
                process_keys=frozenset({"B"}),
            )
        }
        inventory = IntegrationsInventory(
            env_refs=(
                EnvReference("A", "a.ts", "functions", 1),
                EnvReference("B", "a.ts", "functions", 2),
                EnvReference("C", "b.ts", "functions", 7),
            )
        )
        return env_resolution_matrix.run(repos, declarations, inventory)

    def test_missing_keys_require_enforcement(self, result):
        repo = result.payload["repos"]["functions"]

        assert result.status == StepStatus.WARN
        assert result.requires_enforcement
        assert repo["missingInRepo"] == [
            {"key": "C", "references": [{"file": "b.ts", "repo": "functions", "lineNumber": 7}]}
        ]
        assert repo["unusedInRepo"] == [{"key": "UNUSED", "declaredIn": [{"file": ".env", "lineNumber": 2}]}]

    def test_resolution_names_sources_only(self, result):
        assert result.payload["repos"]["functions"]["resolution"] == {"A": ".env", "B": "process", "C": None}

    def test_unusable_repo_is_listed_with_status(self, result):
        assert result.payload["repos"]["gone"]["status"] == STATUS_MISSING
        assert result.payload["counts"] == {"missing": 1, "unused": 1, "referenced": 3}
