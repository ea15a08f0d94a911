"""api-contract-violations: provider payload contracts and document writes."""

from concurrent.futures import ThreadPoolExecutor

from crossaudit.ast_parser import ASTParser
from crossaudit.indexer.mapping import MappingIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.rules.api_contract import (
    ContractScan,
    detect_api_contract_violation,
    persisted_id_checks,
    schema_mismatches,
)
from crossaudit.rules.base import RuleContext
from crossaudit.scanner import SourceFile
from crossaudit.steps import commands

NAME = "api-contract-violations"
COMMANDS = commands("contracts")


def empty_payload() -> dict:
    return {
        "violations": [],
        "schemaMismatches": [],
        "persistedIds": [],
        "unresolvedCalls": [],
        "counts": {"violations": 0, "schemaMismatches": 0, "unresolvedCalls": 0},
    }


def run(
    files: list[SourceFile],
    mapping: MappingIndex,
    parser: ASTParser | None = None,
    max_workers: int = 8,
    snippet_chars: int = 200,
) -> StepResult:
    if not files:
        return StepResult.skipped(NAME, "No code files found", empty_payload())

    parser = parser or ASTParser()

    def process(source_file: SourceFile) -> tuple[str, ContractScan]:
        content = source_file.read()
        ctx = RuleContext(
            file_path=source_file.path,
            content=content,
            repo=source_file.repo,
            snippet_chars=snippet_chars,
        )
        return content, detect_api_contract_violation(
            source_file.path, content, context=ctx, parser=parser
        )

    violations = []
    unresolved = []
    writes = []
    contents = []
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        for source_file, (content, scan) in zip(files, executor.map(process, files)):
            violations.extend(scan.violations)
            unresolved.extend(scan.unresolved)
            writes.extend(scan.document_writes)
            contents.append((source_file.repo, source_file.path, content))

    mismatches = schema_mismatches(writes, mapping.all_schema_fields)
    persisted = persisted_id_checks(contents, mapping.all_schema_fields)

    violations.sort(key=lambda f: f.sort_key())
    mismatches.sort(key=lambda f: f.sort_key())
    unresolved.sort(key=lambda u: (u["repo"], u["file"], u["lineNumber"], u["operation"]))

    payload = {
        "violations": [v.to_dict() for v in violations],
        "schemaMismatches": [m.to_dict() for m in mismatches],
        "persistedIds": persisted,
        "unresolvedCalls": unresolved,
        "counts": {
            "violations": len(violations),
            "schemaMismatches": len(mismatches),
            "unresolvedCalls": len(unresolved),
        },
    }
    blocking = bool(violations)
    informational = bool(mismatches or persisted)
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if blocking or informational else StepStatus.PASS,
        payload=payload,
        requires_enforcement=blocking,
    )
