"""Pipeline runner: executes the steps in dependency order.

Indices are built once and handed to each step explicitly. The runner is the
only place a step exception is caught; it becomes a FAIL StepResult and the
remaining steps still run. Steps the command does not select are recorded as
SKIPPED so every artifact always exists.
"""

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from crossaudit.ast_parser import ASTParser
from crossaudit.config_runtime import phase_for
from crossaudit.indexer.env_files import EnvDeclarations, load_env_declarations
from crossaudit.indexer.integrations import IntegrationsInventory, build_integrations_inventory
from crossaudit.indexer.mapping import MappingIndex, build_mapping_index
from crossaudit.indexer.query_index import QueryIndex, build_query_index
from crossaudit.indexer.schema_index import SchemaIndex, build_schema_index
from crossaudit.pipeline.structures import AuditContext, StepResult, Verdict
from crossaudit.sanity_client import RuntimeSample, SanityClient, resolve_credentials
from crossaudit.scanner import ROLE_CODE, ROLE_FUNCTIONS, ROLE_SCHEMA, FileScanner, FileSet
from crossaudit.steps import (
    api_contract_violations,
    enforcement_prompts,
    env_resolution_matrix,
    external_id_integrity,
    functions_audit,
    integrations_inventory,
    query_index,
    sanity_runtime_scan,
    schema_index,
    schema_vs_query,
    summary,
    webhook_drift_report,
)
from crossaudit.utils.constants import VERDICT_JSON
from crossaudit.utils.exit_codes import ExitCodes
from crossaudit.utils.helpers import load_json_file, now_stamp, write_json
from crossaudit.utils.logging import configure_file_logging, logger, step_logger


@dataclass
class PipelineState:
    """Values produced by earlier steps. Defaults stand in for skipped steps."""

    ctx: AuditContext
    files: FileSet
    environ: Mapping[str, str]
    parser: ASTParser = field(default_factory=ASTParser)
    schema: SchemaIndex = field(default_factory=SchemaIndex)
    queries: QueryIndex = field(default_factory=QueryIndex)
    inventory: IntegrationsInventory = field(default_factory=IntegrationsInventory)
    sample: RuntimeSample = field(default_factory=lambda: RuntimeSample.unavailable("Runtime sampling not run"))
    results: dict[str, StepResult] = field(default_factory=dict)
    client_factory: Callable[..., SanityClient] | None = None
    _declarations: dict[str, EnvDeclarations] | None = None
    _mapping: MappingIndex | None = None

    @property
    def limits(self) -> dict[str, Any]:
        return self.ctx.config["limits"]

    @property
    def declarations(self) -> dict[str, EnvDeclarations]:
        if self._declarations is None:
            env_files = self.ctx.config["env"]["env_files"]
            self._declarations = {
                repo.name: load_env_declarations(repo, env_files, self.environ) for repo in self.ctx.repos
            }
        return self._declarations

    @property
    def mapping(self) -> MappingIndex:
        if self._mapping is None:
            self._mapping = build_mapping_index(self.schema, self.queries, self.inventory)
        return self._mapping


def _run_schema_index(state: PipelineState) -> StepResult:
    files = state.files.with_role(ROLE_SCHEMA)
    state.schema = build_schema_index(files, state.parser, state.limits["max_workers"])
    return schema_index.run(state.schema)


def _run_query_index(state: PipelineState) -> StepResult:
    files = state.files.with_role(ROLE_CODE)
    state.queries = build_query_index(files, state.limits["max_workers"])
    return query_index.run(state.queries, len(files))


def _run_integrations_inventory(state: PipelineState) -> StepResult:
    files = state.files.with_role(ROLE_CODE)
    state.inventory = build_integrations_inventory(
        files, state.limits["max_workers"], state.limits["snippet_chars"]
    )
    return integrations_inventory.run(state.inventory, len(files))


def _run_env_resolution_matrix(state: PipelineState) -> StepResult:
    return env_resolution_matrix.run(state.ctx.repos, state.declarations, state.inventory)


def _run_schema_vs_query(state: PipelineState) -> StepResult:
    return schema_vs_query.run(state.schema, state.queries, state.mapping)


def _run_sanity_runtime_scan(state: PipelineState) -> StepResult:
    cfg = state.ctx.config
    credentials, missing = resolve_credentials(
        state.ctx.repos, cfg["env"]["env_files"], cfg["runtime"]["api_version"], state.environ
    )
    timeout = cfg["timeouts"]["runtime_sample"]
    factory = state.client_factory or (lambda creds: SanityClient(creds, timeout=timeout))
    state.sample = sanity_runtime_scan.collect_sample(
        state.schema, credentials, missing, cfg["runtime"]["sample_size"], factory
    )
    return sanity_runtime_scan.run(state.schema, state.sample)


def _run_api_contract_violations(state: PipelineState) -> StepResult:
    return api_contract_violations.run(
        state.files.with_role(ROLE_CODE),
        state.mapping,
        state.parser,
        state.limits["max_workers"],
        state.limits["snippet_chars"],
    )


def _run_external_id_integrity(state: PipelineState) -> StepResult:
    return external_id_integrity.run(state.schema, state.sample)


def _run_webhook_drift_report(state: PipelineState) -> StepResult:
    return webhook_drift_report.run(
        state.files.with_role(ROLE_CODE), state.limits["max_workers"], state.limits["snippet_chars"]
    )


def _run_functions_audit(state: PipelineState) -> StepResult:
    return functions_audit.run(
        state.files.with_role(ROLE_FUNCTIONS),
        state.files.with_role(ROLE_CODE),
        state.ctx.repos,
        state.schema,
        state.queries,
        state.declarations,
    )


def _run_enforcement_prompts(state: PipelineState) -> StepResult:
    return enforcement_prompts.run(state.ctx.repos, state.results, state.ctx.run_dir)


@dataclass(frozen=True)
class StepSpec:
    name: str
    commands: frozenset[str]
    empty_payload: Callable[[], dict]
    execute: Callable[[PipelineState], StepResult]


def _step(module, execute: Callable[[PipelineState], StepResult]) -> StepSpec:
    return StepSpec(module.NAME, module.COMMANDS, module.empty_payload, execute)


# Dependency order: indices, then cross-references, then aggregation
STEPS = (
    _step(schema_index, _run_schema_index),
    _step(query_index, _run_query_index),
    _step(integrations_inventory, _run_integrations_inventory),
    _step(env_resolution_matrix, _run_env_resolution_matrix),
    _step(schema_vs_query, _run_schema_vs_query),
    _step(sanity_runtime_scan, _run_sanity_runtime_scan),
    _step(api_contract_violations, _run_api_contract_violations),
    _step(external_id_integrity, _run_external_id_integrity),
    _step(webhook_drift_report, _run_webhook_drift_report),
    _step(functions_audit, _run_functions_audit),
    _step(enforcement_prompts, _run_enforcement_prompts),
)

STEP_NAMES = tuple(step.name for step in STEPS)
COMMANDS = ("run", "ci", "schema", "contracts", "env")


@dataclass(frozen=True)
class RunReport:
    """Outcome of one pipeline run."""

    run_dir: Path
    results: dict[str, StepResult]
    verdict: Verdict
    exit_code: int


def execute_step(step: StepSpec, state: PipelineState) -> StepResult:
    """Run one step, converting any exception into a FAIL result."""
    command = state.ctx.command
    if command not in step.commands:
        return StepResult.skipped(step.name, f"Command {command} skips {step.name}", step.empty_payload())

    log = step_logger(step.name)
    log.info(f"Step {step.name} started")
    try:
        result = step.execute(state)
    except Exception as e:
        log.opt(exception=True).error(f"Step {step.name} raised: {e}")
        return StepResult.failed(step.name, f"{type(e).__name__}: {e}", step.empty_payload())

    if result.reason:
        log.warning(f"Step {step.name} {result.status.value}: {result.reason}")
    else:
        log.info(f"Step {step.name} finished: {result.status.value}")
    return result


def stamp_enforcement(result: StepResult, config: dict[str, Any]) -> StepResult:
    """Attach the configured phase and approval to a finished result."""
    approved = set(config["enforcement"]["approved"])
    return replace(result, phase=phase_for(config, result.name), enforcement_approved=result.name in approved)


def exit_code_for(verdict: Verdict, command: str) -> int:
    if verdict.integrity_errors:
        return ExitCodes.INTEGRITY_ERROR
    if command == "ci" and not verdict.passed:
        return ExitCodes.VERDICT_FAIL
    return ExitCodes.SUCCESS


def run_pipeline(
    ctx: AuditContext,
    environ: Mapping[str, str] | None = None,
    client_factory: Callable[..., SanityClient] | None = None,
) -> RunReport:
    """Execute every step for ``ctx.command`` and write all artifacts."""
    out_dir = Path(ctx.config["paths"]["out_dir"])
    run_dir = ctx.run_dir or out_dir / now_stamp()
    run_dir.mkdir(parents=True, exist_ok=True)
    ctx = replace(ctx, run_dir=run_dir)

    handler_id = configure_file_logging(run_dir)
    try:
        logger.info(f"Running '{ctx.command}' over {len(ctx.repos)} repositories into {run_dir}")
        files = FileScanner(ctx.config).scan(ctx.repos)
        state = PipelineState(
            ctx=ctx,
            files=files,
            environ=os.environ if environ is None else environ,
            client_factory=client_factory,
        )

        for step in STEPS:
            result = stamp_enforcement(execute_step(step, state), ctx.config)
            state.results[step.name] = result
            write_json(run_dir / f"{step.name}.json", result.to_dict())

        verdict = summary.compute_verdict(state.results)
        summary.write_summary(run_dir, state.results, verdict)
        exit_code = exit_code_for(verdict, ctx.command)
        logger.info(f"Verdict {verdict.status} (exit {exit_code}): {ExitCodes.get_description(exit_code)}")
    finally:
        logger.remove(handler_id)

    return RunReport(run_dir=run_dir, results=dict(state.results), verdict=verdict, exit_code=exit_code)


def latest_run_dir(out_dir: Path) -> Path | None:
    """Newest run directory under ``out_dir``; stamps sort chronologically."""
    out_dir = Path(out_dir)
    if not out_dir.is_dir():
        return None
    dirs = sorted(p for p in out_dir.iterdir() if p.is_dir())
    return dirs[-1] if dirs else None


def load_latest_verdict(out_dir: Path) -> tuple[Path, dict[str, Any]] | None:
    """``(run_dir, verdict)`` of the newest run, or None when there is none."""
    run_dir = latest_run_dir(out_dir)
    if run_dir is None or not (run_dir / VERDICT_JSON).is_file():
        return None
    return run_dir, load_json_file(run_dir / VERDICT_JSON)
