"""crossaudit CLI - main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click

from crossaudit import __version__


@click.group()
@click.version_option(version=__version__, prog_name="crossaudit")
@click.help_option("-h", "--help")
def cli():
    """crossaudit - cross-repository schema, query and integration audit

    \b
    QUICK START:
      crossaudit run            # Every step, artifacts + verdict
      crossaudit ci             # Same, exit 1 when the gate fails
      crossaudit schema         # Schema/query steps only

    \b
    For detailed options: crossaudit <command> --help"""
    pass


from crossaudit.commands.ci import ci
from crossaudit.commands.run import run
from crossaudit.commands.scoped import contracts, env, schema

cli.add_command(run)
cli.add_command(ci)
cli.add_command(schema)
cli.add_command(contracts)
cli.add_command(env)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
