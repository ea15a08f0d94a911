"""Tests for the tree-sitter parsing helpers."""

import pytest

from crossaudit.ast_parser import (
    ASTParser,
    call_arguments,
    call_name,
    iter_nodes,
    language_for,
    node_line,
    object_properties,
    string_value,
    unwrap_expression,
)


@pytest.fixture(scope="module")
def parser():
    return ASTParser()


def first(parsed, node_type):
    return next(n for n in iter_nodes(parsed.root) if n.type == node_type)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("schemaTypes/order.ts", "typescript"),
        ("components/Order.TSX", "tsx"),
        ("netlify/functions/a.mjs", "javascript"),
        ("README.md", None),
        ("schema.json", None),
    ],
)
def test_language_for(path, expected):
    assert language_for(path) == expected


def test_unsupported_file_is_not_parsed(parser):
    assert parser.parse("{}", "data.json") is None


def test_malformed_source_still_parses(parser):
    parsed = parser.parse("const a = {", "broken.ts")
    assert parsed is not None
    assert parsed.has_errors


def test_call_helpers(parser):
    parsed = parser.parse("\n\nclient.create({_type: 'order', 'total': 1, status})", "a.ts")
    call = first(parsed, "call_expression")

    assert call_name(call) == "client.create"
    assert node_line(call) == 3
    (arg,) = call_arguments(call)
    props = object_properties(arg)
    assert sorted(props) == ["_type", "status", "total"]
    assert string_value(props["_type"]) == "order"


def test_unwrap_as_const(parser):
    parsed = parser.parse("export default ({name: 'x'} as const)", "a.ts")
    exported = first(parsed, "export_statement")
    value = unwrap_expression(exported.named_children[-1])

    assert value.type == "object"


def test_template_strings(parser):
    parsed = parser.parse("const a = `plain`; const b = `with ${x}`", "a.ts")
    templates = [n for n in iter_nodes(parsed.root) if n.type == "template_string"]

    assert [string_value(t) for t in templates] == ["plain", None]
