"""CI gate: run the pipeline (or reuse the latest run) and exit on the verdict."""

import sys
from pathlib import Path

import click

from crossaudit.commands._shared import execute, finish, pipeline_options
from crossaudit.config_runtime import load_runtime_config
from crossaudit.pipeline.runner import load_latest_verdict
from crossaudit.pipeline.ui import console
from crossaudit.utils.error_handler import handle_exceptions
from crossaudit.utils.exit_codes import ExitCodes


@click.command()
@handle_exceptions
@pipeline_options
@click.option("--reuse-latest", is_flag=True,
              help="Gate on the newest existing ci-verdict.json instead of re-running")
def ci(root, config_path, out_dir, repo_specs, quiet, reuse_latest):
    """Run every audit step and exit non-zero when the gate fails.

    \b
    EXIT CODES:
      0  verdict PASS
      1  verdict FAIL (an enforced step reported violations)
      3  a step raised; results are partial
    """
    if not reuse_latest:
        finish(execute("ci", root, config_path, out_dir, repo_specs, quiet))
        return

    config = load_runtime_config(root, config_path)
    base = Path(out_dir) if out_dir is not None else Path(config["paths"]["out_dir"])
    latest = load_latest_verdict(base)
    if latest is None:
        raise click.ClickException(f"No audit output found for ci under {base}")

    run_dir, verdict = latest
    status = verdict.get("status", "FAIL")
    if not quiet:
        console.print(f"Reusing verdict from [path]{run_dir}[/path]: {status}")
    if verdict.get("integrityErrors"):
        sys.exit(ExitCodes.INTEGRITY_ERROR)
    if status != "PASS":
        sys.exit(ExitCodes.VERDICT_FAIL)
