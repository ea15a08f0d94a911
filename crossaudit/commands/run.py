"""Run the full audit pipeline."""

import click

from crossaudit.commands._shared import execute, finish, pipeline_options
from crossaudit.utils.error_handler import handle_exceptions


@click.command()
@handle_exceptions
@pipeline_options
def run(root, config_path, out_dir, repo_specs, quiet):
    """Run every audit step and write artifacts, summary and verdict.

    The verdict never changes the exit code here (use `ci` for gating); a
    step that raised still exits with code 3.

    \b
    EXAMPLES:
      crossaudit run
      crossaudit run --repo studio=../studio:studio --repo fns=../fns:functions
    """
    finish(execute("run", root, config_path, out_dir, repo_specs, quiet))
