"""env-resolution-matrix: referenced env keys vs. declared ones, per repo.

Only key names and the source that would supply them are reported.
"""

from crossaudit.indexer.env_files import EnvDeclarations
from crossaudit.indexer.integrations import IntegrationsInventory
from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.repos import RepoDescriptor
from crossaudit.steps import commands

NAME = "env-resolution-matrix"
COMMANDS = commands("env")


def empty_payload() -> dict:
    return {"repos": {}, "counts": {"missing": 0, "unused": 0, "referenced": 0}}


def run(
    repos: tuple[RepoDescriptor, ...],
    declarations: dict[str, EnvDeclarations],
    inventory: IntegrationsInventory,
) -> StepResult:
    matrix = {}
    total_missing = total_unused = total_referenced = 0

    for repo in repos:
        if not repo.ok:
            matrix[repo.name] = {
                "status": repo.status,
                "role": repo.role,
                "declaredKeys": [],
                "referencedKeys": [],
                "missingInRepo": [],
                "unusedInRepo": [],
                "resolution": {},
            }
            continue

        declared = declarations.get(repo.name) or EnvDeclarations(repo=repo.name)
        referenced = inventory.referenced_keys(repo.name)
        usage = inventory.env_key_usage(repo.name)
        missing = [key for key in referenced if key not in declared]
        unused = sorted(set(declared.file_keys) - set(referenced))

        matrix[repo.name] = {
            "status": repo.status,
            "role": repo.role,
            "declaredKeys": sorted(declared.file_keys),
            "referencedKeys": referenced,
            "missingInRepo": [
                {"key": key, "references": usage.get(key, [])} for key in missing
            ],
            "unusedInRepo": [
                {"key": key, "declaredIn": declared.locations(key)} for key in unused
            ],
            "resolution": {key: declared.source_of(key) for key in referenced},
        }
        total_missing += len(missing)
        total_unused += len(unused)
        total_referenced += len(referenced)

    payload = {
        "repos": matrix,
        "counts": {"missing": total_missing, "unused": total_unused, "referenced": total_referenced},
    }
    has_missing = total_missing > 0
    return StepResult(
        name=NAME,
        status=StepStatus.WARN if has_missing else StepStatus.PASS,
        payload=payload,
        requires_enforcement=has_missing,
    )
