"""Options and execution shared by the pipeline commands."""

import sys
from pathlib import Path

import click

from crossaudit.config_runtime import load_runtime_config
from crossaudit.pipeline.runner import RunReport, run_pipeline
from crossaudit.pipeline.structures import AuditContext
from crossaudit.pipeline.ui import console, print_header, print_run_report, print_warning
from crossaudit.repos import resolve_repos
from crossaudit.utils.exit_codes import ExitCodes


def pipeline_options(func):
    """Attach the options every pipeline command accepts."""
    options = (
        click.option("--root", default=".", type=click.Path(file_okay=False, path_type=Path),
                     help="Project root (config lookup and default repository)"),
        click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
                     help="Config file (default: .crossaudit/config.json under root)"),
        click.option("--out", "out_dir", type=click.Path(file_okay=False, path_type=Path),
                     help="Output root for timestamped run directories"),
        click.option("--repo", "repo_specs", multiple=True, metavar="NAME=PATH[:ROLE]",
                     help="Repository to audit (repeatable, replaces configured repos)"),
        click.option("--quiet", is_flag=True, help="Minimal output"),
    )
    for option in reversed(options):
        func = option(func)
    return func


def execute(command: str, root: Path, config_path: Path | None, out_dir: Path | None,
            repo_specs: tuple[str, ...], quiet: bool) -> RunReport:
    """Load configuration, run the pipeline, render the outcome."""
    config = load_runtime_config(root, config_path)
    if out_dir is not None:
        config["paths"]["out_dir"] = str(out_dir)
    repos = resolve_repos(config, root, repo_specs)

    ctx = AuditContext(root=Path(root).resolve(), command=command, config=config, repos=repos, quiet=quiet)
    report = run_pipeline(ctx)

    if quiet:
        click.echo(f"{report.verdict.status} {report.run_dir}")
    else:
        console.print()
        print_header(f"AUDIT RESULTS: {command}")
        for repo in repos:
            if not repo.ok:
                print_warning(f"Repository {repo.name} is not usable: {repo.status}")
        print_run_report(report.results, report.verdict, report.run_dir)
    return report


def finish(report: RunReport) -> None:
    """Exit with the run's code; success falls through."""
    if report.exit_code != ExitCodes.SUCCESS:
        sys.exit(report.exit_code)
