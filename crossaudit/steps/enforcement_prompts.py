"""enforcement-prompts: remediation prompts for a downstream fix agent.

One text file per ``(repository, scope)`` pair from ``PROMPT_TABLE``. The
agent is told to act only when every cited artifact is enforcement-approved.
"""

from dataclasses import dataclass
from pathlib import Path

from crossaudit.pipeline.structures import StepResult, StepStatus
from crossaudit.repos import RepoDescriptor
from crossaudit.steps import commands
from crossaudit.utils.helpers import write_text
from crossaudit.utils.logging import logger

NAME = "enforcement-prompts"
COMMANDS = commands("schema", "contracts", "env")


@dataclass(frozen=True)
class PromptSpec:
    roles: frozenset[str]
    scope: str
    inputs: tuple[str, ...]


PROMPT_TABLE = (
    PromptSpec(
        roles=frozenset({"functions", "storefront"}),
        scope="webhook-handlers",
        inputs=("webhook-drift-report", "api-contract-violations"),
    ),
    PromptSpec(
        roles=frozenset({"functions", "storefront"}),
        scope="environment-wiring",
        inputs=("env-resolution-matrix",),
    ),
    PromptSpec(
        roles=frozenset({"studio"}),
        scope="content-schema",
        inputs=("schema-vs-query", "external-id-integrity"),
    ),
)


def empty_payload() -> dict:
    return {"prompts": [], "counts": {"prompts": 0, "ready": 0}}


def prompt_filename(repo: str, scope: str) -> str:
    return f"codex-prompt-{repo}-{scope}.txt"


def render_prompt(repo: RepoDescriptor, spec: PromptSpec, results: dict[str, StepResult]) -> str:
    lines = [
        f"Repository: {repo.name} ({repo.role})",
        f"Scope: {spec.scope}",
        "",
        "Input artifacts:",
    ]
    for name in spec.inputs:
        result = results.get(name)
        if result is None:
            lines.append(f"- {name}.json: missing, enforcementApproved=false")
            continue
        lines.append(
            f"- {name}.json: status={result.status.value}, "
            f"requiresEnforcement={str(result.requires_enforcement).lower()}, "
            f"enforcementApproved={str(result.enforcement_approved).lower()}"
        )
    lines += [
        "",
        "Instructions:",
        "1. Act ONLY if every input artifact above shows enforcementApproved=true.",
        "   Otherwise make no changes and report which artifacts are not approved.",
        f"2. Limit edits to the {spec.scope} of repository {repo.name}.",
        "3. Make minimal, scoped edits that resolve the findings in the input artifacts.",
        "   Do not refactor, rename or reformat unrelated code.",
        "4. Do not change secrets, env values or deployment configuration.",
        "",
    ]
    return "\n".join(lines)


def run(repos: tuple[RepoDescriptor, ...], results: dict[str, StepResult], run_dir: Path) -> StepResult:
    prompts = []
    for repo in repos:
        if not repo.ok:
            continue
        for spec in PROMPT_TABLE:
            if repo.role not in spec.roles:
                continue
            filename = prompt_filename(repo.name, spec.scope)
            write_text(Path(run_dir) / filename, render_prompt(repo, spec, results))
            ready = all(
                name in results and results[name].enforcement_approved for name in spec.inputs
            )
            prompts.append(
                {
                    "repo": repo.name,
                    "scope": spec.scope,
                    "file": filename,
                    "inputs": list(spec.inputs),
                    "ready": ready,
                }
            )

    if not prompts:
        return StepResult.skipped(NAME, "No repository matches a remediation scope", empty_payload())

    logger.info(f"Wrote {len(prompts)} remediation prompt(s)")
    return StepResult(
        name=NAME,
        status=StepStatus.PASS,
        payload={"prompts": prompts, "counts": {"prompts": len(prompts), "ready": sum(p["ready"] for p in prompts)}},
    )
