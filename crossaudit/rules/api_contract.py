"""Third-party API payload contract checks.

Each contract names a call signature and the fields its payload must carry.
A required entry is either one field or a tuple of alternatives, at least
one of which must be present.

Arguments are resolved in two ways:

- inline object literal: scanned textually (``literals``)
- bare identifier: looked up in a file-scoped symbol table built from the
  tree-sitter AST in one forward pass over declarations and assignments

Fields hidden behind an untracked spread or identifier are not assumed
present: required fields the payload does not show are reported, with the
partial resolution attached as evidence. Only arguments that are neither a
literal nor an identifier are recorded as unresolved.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from crossaudit.ast_parser import (
    ASTParser,
    ParsedSource,
    iter_nodes,
    node_line,
    node_text,
    property_key,
    unwrap_expression,
)
from crossaudit.rules.base import (
    Classification,
    Evidence,
    FieldResolution,
    Finding,
    RuleContext,
    Severity,
)
from crossaudit.rules.literals import resolve_inline_object

RULE_NAME = "api-contract"

SKIPPED_FILES = (
    re.compile(r"(Validation|validator)\.[cm]?[jt]sx?$"),
    re.compile(r"easypostValidation\.ts$"),
    re.compile(r"resendValidation\.ts$"),
)

SYSTEM_KEYS = frozenset({"_id", "_type", "_rev", "_key", "_ref", "_createdAt", "_updatedAt", "_weak"})

_IDENTIFIER_ARG = re.compile(r"([A-Za-z_$][\w$]*)\s*[,)]")


@dataclass(frozen=True)
class ApiContract:
    service: str
    operation: str
    pattern: re.Pattern
    required: tuple[Any, ...]


CONTRACTS = (
    ApiContract(
        service="easypost",
        operation="Shipment.create",
        pattern=re.compile(r"\b(?:\w+\.)?Shipment\.create\s*\(\s*"),
        required=("to_address", "from_address", "parcel"),
    ),
    ApiContract(
        service="resend",
        operation="emails.send",
        pattern=re.compile(r"\b\w*[Rr]esend\w*\.emails\.send\s*\(\s*"),
        required=("to", "from", "subject", ("html", "text")),
    ),
    ApiContract(
        service="stripe",
        operation="checkout.sessions.create",
        pattern=re.compile(r"\b\w*[Ss]tripe\w*\.checkout\.sessions\.create\s*\(\s*"),
        required=("mode",),
    ),
    ApiContract(
        service="stripe",
        operation="refunds.create",
        pattern=re.compile(r"\b\w*[Ss]tripe\w*\.refunds\.create\s*\(\s*"),
        required=(("payment_intent", "charge"),),
    ),
)

# Provider response identifiers that should be persisted on documents
PERSISTED_ID_FIELDS = {
    "easypost": (re.compile(r"easypost", re.IGNORECASE), ("easyPostShipmentId", "trackingNumber", "shippingLabelUrl")),
    "resend": (re.compile(r"\bresend", re.IGNORECASE), ("resendMessageId", "messageId")),
}

DOCUMENT_WRITE = re.compile(r"\.(create|createOrReplace|createIfNotExists)\s*\(\s*")
PATCH_SET = re.compile(r"\.patch\s*\([^;]*?\)\s*\.\s*(set|setIfMissing)\s*\(\s*")


# ---------------------------------------------------------------------------
# Symbol table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Binding:
    name: str
    offset: int
    line: int
    fields: FieldResolution


@dataclass
class SymbolTable:
    """Object-literal bindings per identifier, in file order (byte offsets)."""

    bindings: dict[str, list[Binding]] = field(default_factory=dict)

    def add(self, binding: Binding) -> None:
        self.bindings.setdefault(binding.name, []).append(binding)

    def resolve(self, name: str, offset: int) -> FieldResolution | None:
        """Most recent binding before ``offset``; the last one in the file otherwise."""
        candidates = self.bindings.get(name)
        if not candidates:
            return None
        before = [b for b in candidates if b.offset < offset]
        return (before[-1] if before else candidates[-1]).fields

    def known_at(self, offset: int) -> dict[str, FieldResolution]:
        known = {}
        for name in self.bindings:
            resolution = self.resolve(name, offset)
            if resolution is not None:
                known[name] = resolution
        return known

    def __contains__(self, name: str) -> bool:
        return name in self.bindings


def _object_fields(obj: Any, table: SymbolTable) -> FieldResolution:
    keys: set[str] = set()
    resolution = FieldResolution.ok(())
    for child in obj.named_children:
        if child.type == "pair":
            key = property_key(child)
            if key is None:
                resolution = resolution.union(FieldResolution.partial_of((), "computed key"))
            else:
                keys.add(key)
        elif child.type in ("shorthand_property_identifier", "method_definition"):
            name_node = child.child_by_field_name("name") if child.type == "method_definition" else child
            keys.add(node_text(name_node))
        elif child.type == "spread_element":
            target = unwrap_expression(child.named_children[0]) if child.named_children else None
            spread = table.resolve(node_text(target), child.start_byte) if target is not None and target.type == "identifier" else None
            if spread is None:
                resolution = resolution.union(
                    FieldResolution.partial_of((), f"spread of untracked value '{node_text(target)}'")
                )
            else:
                resolution = resolution.union(spread)
    return resolution.union(FieldResolution.ok(keys))


def extract_variable_assignments(parsed: ParsedSource | None) -> SymbolTable:
    """Track which object literal each identifier holds, file-wide.

    Handles ``const x = {...}``, ``x = {...}`` and ``x.key = value`` (which
    extends the current binding of ``x``).
    """
    table = SymbolTable()
    if parsed is None:
        return table

    for node in iter_nodes(parsed.root):
        if node.type == "variable_declarator":
            name = node.child_by_field_name("name")
            value = unwrap_expression(node.child_by_field_name("value"))
            if name is None or name.type != "identifier" or value is None or value.type != "object":
                continue
            table.add(
                Binding(
                    name=node_text(name),
                    offset=node.start_byte,
                    line=node_line(node),
                    fields=_object_fields(value, table),
                )
            )
        elif node.type == "assignment_expression":
            left = node.child_by_field_name("left")
            right = unwrap_expression(node.child_by_field_name("right"))
            if left is None or right is None:
                continue
            if left.type == "identifier" and right.type == "object":
                table.add(
                    Binding(
                        name=node_text(left),
                        offset=node.start_byte,
                        line=node_line(node),
                        fields=_object_fields(right, table),
                    )
                )
            elif left.type == "member_expression":
                target = left.child_by_field_name("object")
                prop = left.child_by_field_name("property")
                if target is None or prop is None or target.type != "identifier":
                    continue
                current = table.resolve(node_text(target), node.start_byte)
                if current is None:
                    continue
                table.add(
                    Binding(
                        name=node_text(target),
                        offset=node.start_byte,
                        line=node_line(node),
                        fields=current.union(FieldResolution.ok({node_text(prop)})),
                    )
                )
    return table


# ---------------------------------------------------------------------------
# Contract checks
# ---------------------------------------------------------------------------


def check_required_fields(fields, required) -> list:
    """Required entries not satisfied by ``fields``; OR-groups need one member."""
    missing = []
    for entry in required:
        if isinstance(entry, tuple):
            if not any(item in fields for item in entry):
                missing.append(entry)
        elif entry not in fields:
            missing.append(entry)
    return missing


@dataclass
class ContractScan:
    """Per-file API contract results."""

    violations: list[Finding] = field(default_factory=list)
    unresolved: list[dict[str, Any]] = field(default_factory=list)
    document_writes: list[dict[str, Any]] = field(default_factory=list)


def _byte_offset(content: str, index: int) -> int:
    return len(content[:index].encode("utf-8"))


def _resolve_argument(
    content: str, arg_index: int, table: SymbolTable
) -> tuple[FieldResolution | None, str]:
    """Field set of the call argument starting at ``arg_index``.

    Returns ``(None, description)`` when the argument cannot be resolved.
    """
    if content.startswith("{", arg_index):
        known = table.known_at(_byte_offset(content, arg_index))
        return resolve_inline_object(arg_index, content, known), "inline object"

    match = _IDENTIFIER_ARG.match(content, arg_index)
    if match:
        name = match.group(1)
        resolution = table.resolve(name, _byte_offset(content, arg_index))
        if resolution is None:
            return None, f"identifier '{name}' has no tracked object literal"
        return resolution, f"identifier '{name}'"

    snippet = content[arg_index : arg_index + 40].split("\n", 1)[0]
    return None, f"argument '{snippet}' is not an object literal or identifier"


def is_skipped_file(file_path: str) -> bool:
    return any(pattern.search(file_path) for pattern in SKIPPED_FILES)


def detect_api_contract_violation(
    file_path: str,
    content: str,
    parsed: ParsedSource | None = None,
    context: RuleContext | None = None,
    parser: ASTParser | None = None,
) -> ContractScan:
    """Check every contract call in one file."""
    scan = ContractScan()
    if is_skipped_file(file_path):
        return scan

    ctx = context or RuleContext(file_path=file_path, content=content)
    if parsed is None:
        parsed = (parser or ASTParser()).parse(content, file_path)
    table = extract_variable_assignments(parsed)

    for contract in CONTRACTS:
        for match in contract.pattern.finditer(content):
            line = ctx.line_for(match.start())
            resolution, how = _resolve_argument(content, match.end(), table)
            if resolution is None and _IDENTIFIER_ARG.match(content, match.end()):
                # an identifier with no tracked literal carries no known fields
                resolution = FieldResolution.partial_of((), how)
            if resolution is None:
                scan.unresolved.append(
                    {
                        "service": contract.service,
                        "operation": contract.operation,
                        "file": file_path,
                        "repo": ctx.repo,
                        "lineNumber": line,
                        "reason": how,
                    }
                )
                continue

            evidence = [Evidence(type="call", detail=how, file=file_path, line_number=line)]
            if resolution.partial:
                evidence.append(
                    Evidence(
                        type="partialResolution",
                        detail=resolution.reason or "partial field set",
                        file=file_path,
                        line_number=line,
                    )
                )

            for entry in check_required_fields(resolution.fields, contract.required):
                if isinstance(entry, tuple):
                    field_path = " OR ".join(entry)
                    fix = f"Ensure one of [{', '.join(entry)}] is set before {contract.operation} call."
                else:
                    field_path = entry
                    fix = (
                        f"Ensure required {contract.service} field '{entry}' "
                        f"is set before {contract.operation} call."
                    )
                scan.violations.append(
                    Finding(
                        classification=Classification.MISSING_FIELD,
                        reason=f"{contract.service} {contract.operation} payload is missing {field_path}",
                        file=file_path,
                        line_numbers=[line],
                        evidence=list(evidence),
                        repo=ctx.repo,
                        rule=RULE_NAME,
                        snippet=ctx.snippet(match.start()),
                        recommended_fix=fix,
                        extra={
                            "service": contract.service,
                            "operation": contract.operation,
                            "fieldPath": field_path,
                            "partial": resolution.partial,
                        },
                    )
                )

    scan.document_writes = find_document_writes(content, table, ctx)
    return scan


def find_document_writes(content: str, table: SymbolTable, ctx: RuleContext) -> list[dict[str, Any]]:
    """Keys written by document create / patch-set calls.

    Create calls only count when the payload names a ``_type``, so provider
    SDK ``create`` calls are not mistaken for document writes.
    """
    writes = []
    for pattern, kind in ((DOCUMENT_WRITE, "create"), (PATCH_SET, "patch")):
        for match in pattern.finditer(content):
            resolution, _ = _resolve_argument(content, match.end(), table)
            if resolution is None:
                continue
            if kind == "create" and "_type" not in resolution.fields:
                continue
            writes.append(
                {
                    "kind": kind,
                    "file": ctx.file_path,
                    "repo": ctx.repo,
                    "lineNumber": ctx.line_for(match.start()),
                    "fields": sorted(resolution.fields - SYSTEM_KEYS),
                    "partial": resolution.partial,
                }
            )
    return writes


def schema_mismatches(writes: list[dict[str, Any]], schema_fields: frozenset[str]) -> list[Finding]:
    """Informational findings for written keys the schema does not declare."""
    findings = []
    if not schema_fields:
        return findings
    for write in writes:
        for key in write["fields"]:
            if key in schema_fields or key.startswith("_"):
                continue
            findings.append(
                Finding(
                    classification=Classification.SCHEMA_MISMATCH,
                    reason=f"Document {write['kind']} writes '{key}' which no schema type declares",
                    file=write["file"],
                    line_numbers=[write["lineNumber"]],
                    evidence=[
                        Evidence(type="documentWrite", detail=key, file=write["file"], line_number=write["lineNumber"])
                    ],
                    repo=write["repo"],
                    rule=RULE_NAME,
                    severity=Severity.INFO,
                    recommended_fix="Align persisted fields with the content schema.",
                    extra={"fieldPath": key},
                )
            )
    return findings


def persisted_id_checks(
    contents: list[tuple[str, str, str]], schema_fields: frozenset[str]
) -> list[dict[str, Any]]:
    """Provider response ids missing from the schema or never written by code.

    ``contents`` holds ``(repo, path, text)`` for every scanned code file.
    Only services that appear somewhere in the code are checked.
    """
    results = []
    for service, (signature, id_fields) in sorted(PERSISTED_ID_FIELDS.items()):
        if not any(signature.search(text) for _, _, text in contents):
            continue
        for id_field in id_fields:
            if schema_fields and id_field not in schema_fields:
                results.append(
                    {
                        "type": Classification.SCHEMA_MISMATCH.value,
                        "service": service,
                        "fieldPath": id_field,
                        "recommendedFix": f"Align persisted {service} fields with schema fields.",
                    }
                )
            if not any(id_field in text for _, _, text in contents):
                results.append(
                    {
                        "type": Classification.NOT_PERSISTED.value,
                        "service": service,
                        "fieldPath": id_field,
                        "recommendedFix": f"Persist the {service} response field '{id_field}' for the audit trail.",
                    }
                )
    return results
