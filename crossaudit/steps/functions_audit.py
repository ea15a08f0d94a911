"""functions-audit: inventory and usage classification of serverless functions."""

from crossaudit.indexer.env_files import EnvDeclarations
from crossaudit.indexer.query_index import QueryIndex
from crossaudit.indexer.schema_index import SchemaIndex
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.repos import RepoDescriptor
from crossaudit.rules.functions_audit import (
    audit_functions,
    describe_function,
    load_dependencies,
    load_schedules,
)
from crossaudit.scanner import SourceFile
from crossaudit.steps import commands

NAME = "functions-audit"
COMMANDS = commands()


def empty_payload() -> dict:
    return {
        "functions": [],
        "inUse": [],
        "shouldBeUsed": [],
        "broken": [],
        "obsolete": [],
        "duplicate": [],
        "counts": {"functions": 0, "inUse": 0, "shouldBeUsed": 0, "broken": 0, "obsolete": 0, "duplicate": 0},
    }


def merge_env_locations(declarations: dict[str, EnvDeclarations]) -> dict[str, list[dict]]:
    """Key -> file locations across every repository, labelled ``repo/file``."""
    merged: dict[str, list[dict]] = {}
    for repo_name, decl in sorted(declarations.items()):
        for key, locations in decl.file_keys.items():
            for loc in locations:
                merged.setdefault(key, []).append(
                    {"file": f"{repo_name}/{loc['file']}", "lineNumber": loc["lineNumber"]}
                )
    return merged


def run(
    function_files: list[SourceFile],
    code_files: list[SourceFile],
    repos: tuple[RepoDescriptor, ...],
    schema: SchemaIndex,
    queries: QueryIndex,
    declarations: dict[str, EnvDeclarations],
) -> StepResult:
    if not function_files:
        return StepResult.skipped(NAME, "No function files found", empty_payload())

    contents = {(f.repo, f.path): f.read() for f in function_files}
    functions = [describe_function(f, contents[(f.repo, f.path)]) for f in function_files]
    code_contents = [(f, f.read()) for f in code_files]

    process_env: frozenset[str] = frozenset()
    for decl in declarations.values():
        process_env |= decl.process_keys

    schedules = {}
    dependencies = {}
    for repo in repos:
        schedules.update(load_schedules(repo))
        dependencies[repo.name] = load_dependencies(repo)

    audit = audit_functions(
        functions=functions,
        code_contents=code_contents,
        declared_env=merge_env_locations(declarations),
        process_env=process_env,
        dependencies=dependencies,
        schedules=schedules,
        queries=queries,
        schema_fields=schema.all_fields(),
        function_contents=contents,
    )

    buckets = {
        "inUse": audit.in_use,
        "shouldBeUsed": audit.should_be_used,
        "broken": audit.broken,
        "obsolete": audit.obsolete,
        "duplicate": audit.duplicate,
    }
    payload = {key: [f.to_dict() for f in findings] for key, findings in buckets.items()}
    payload["functions"] = [fn.to_dict() for fn in audit.functions]
    payload["counts"] = {"functions": len(audit.functions)} | {k: len(v) for k, v in buckets.items()}

    problems = audit.broken or audit.duplicate or audit.obsolete
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if problems else StepStatus.PASS,
        payload=payload,
        requires_enforcement=False,
    )
