"""Commands that run a named subset of the steps."""

import click

from crossaudit.commands._shared import execute, finish, pipeline_options
from crossaudit.utils.error_handler import handle_exceptions


@click.command()
@handle_exceptions
@pipeline_options
def schema(root, config_path, out_dir, repo_specs, quiet):
    """Schema steps only: schema-index, query-index, schema-vs-query, sanity-runtime-scan."""
    finish(execute("schema", root, config_path, out_dir, repo_specs, quiet))


@click.command()
@handle_exceptions
@pipeline_options
def contracts(root, config_path, out_dir, repo_specs, quiet):
    """Provider payload contracts only: api-contract-violations."""
    finish(execute("contracts", root, config_path, out_dir, repo_specs, quiet))


@click.command()
@handle_exceptions
@pipeline_options
def env(root, config_path, out_dir, repo_specs, quiet):
    """Environment wiring only: integrations-inventory, env-resolution-matrix."""
    finish(execute("env", root, config_path, out_dir, repo_specs, quiet))
