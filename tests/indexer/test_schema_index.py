"""Tests for schema type extraction."""

import pytest
from conftest import ORDER_SCHEMA

from crossaudit.ast_parser import ASTParser
from crossaudit.indexer.schema_index import (
    SchemaType,
    build_schema_index,
    extract_schema_types,
    merge_types,
)
from crossaudit.scanner import SourceFile


@pytest.fixture(scope="module")
def parser():
    return ASTParser()


def extract(content, parser, source="studio/schemaTypes/doc.ts"):
    return extract_schema_types(content, source, parser)


class TestExtraction:
    """Definition shapes the extractor understands."""

    def test_define_type_document(self, parser):
        (order,) = extract(ORDER_SCHEMA, parser)

        assert order.name == "order"
        assert order.kind == "document"
        assert order.fields == frozenset({"status", "total"})
        assert order.required == frozenset({"status"})
        assert not order.partial

    def test_export_default_object(self, parser):
        content = """
export default {
  name: 'address',
  type: 'object',
  fields: [
    {name: 'street', type: 'string'},
    {name: 'city', type: 'string', validation: Rule => Rule.required()},
  ],
}
"""
        (address,) = extract(content, parser)

        assert address.kind == "object"
        assert address.declared_type == "object"
        assert address.fields == frozenset({"street", "city"})
        assert address.required == frozenset({"city"})

    def test_as_const_wrapper(self, parser):
        content = "export default {name: 'tag', type: 'document', fields: [{name: 'label', type: 'string'}]} as const\n"
        (tag,) = extract(content, parser)
        assert tag.fields == frozenset({"label"})

    def test_spread_fields_mark_partial(self, parser):
        content = """
export default defineType({
  name: 'product',
  type: 'document',
  fields: [...sharedFields, defineField({name: 'sku', type: 'string'})],
})
"""
        (product,) = extract(content, parser)

        assert product.fields == frozenset({"sku"})
        assert product.partial

    def test_non_literal_fields_mark_partial(self, parser):
        content = "export default defineType({name: 'page', type: 'document', fields: pageFields})\n"
        (page,) = extract(content, parser)

        assert page.fields == frozenset()
        assert page.partial

    def test_composite_field_marks_partial(self, parser):
        content = """
export default defineType({
  name: 'customer',
  type: 'document',
  fields: [
    {name: 'address', type: 'object', fields: [{name: 'zip', type: 'string'}]},
  ],
})
"""
        (customer,) = extract(content, parser)

        assert customer.fields == frozenset({"address"})
        assert customer.partial

    def test_definitions_without_fields_are_ignored(self, parser):
        assert extract("export default defineType({name: 'slugish', type: 'string'})\n", parser) == []
        assert extract("export default {title: 'No name', fields: []}\n", parser) == []

    def test_definition_needs_string_type(self, parser):
        assert extract("export default {name: 'untyped', fields: [{name: 'a'}]}\n", parser) == []
        assert extract("export default defineType({name: 'dyn', type: kind, fields: []})\n", parser) == []
        (typed,) = extract("export default defineType({name: 'typed', type: 'object', fields: []})\n", parser)
        assert typed.kind == "object"

    def test_unsupported_file_type(self, parser):
        assert extract(ORDER_SCHEMA, parser, source="studio/schema.json") == []


def test_merge_unions_same_named_types():
    a = SchemaType("order", "object", frozenset({"a"}), frozenset({"a"}), frozenset({"x.ts"}))
    b = SchemaType("order", "document", frozenset({"b"}), frozenset(), frozenset({"y.ts"}), partial=True)
    other = SchemaType("address", "object", frozenset({"zip"}), frozenset(), frozenset({"z.ts"}))

    merged = merge_types([a, other, b])

    assert [t.name for t in merged] == ["address", "order"]
    order = merged[1]
    assert order.kind == "document"
    assert order.fields == frozenset({"a", "b"})
    assert order.sources == frozenset({"x.ts", "y.ts"})
    assert order.partial


def test_build_schema_index(tmp_path, parser):
    path = tmp_path / "order.ts"
    path.write_text(ORDER_SCHEMA, encoding="utf-8")
    files = [
        SourceFile(
            repo="studio",
            repo_role="studio",
            path="schemaTypes/order.ts",
            abs_path=path,
            roles=frozenset({"code", "schema"}),
        )
    ]

    index = build_schema_index(files, parser, max_workers=2)

    assert index.files == ("studio/schemaTypes/order.ts",)
    assert index.get("order").sources == frozenset({"studio/schemaTypes/order.ts"})
    assert index.all_fields() == frozenset({"status", "total"})
    assert index.to_dict()["counts"] == {"types": 1, "documents": 1, "partial": 0}
    assert index.get("missing") is None
