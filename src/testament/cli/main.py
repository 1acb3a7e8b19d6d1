"""Testament CLI - testament command."""

import click

from testament import __version__
from testament.cli.cache import cache_group
from testament.cli.list import list_command
from testament.cli.run import build_command, run_command
from testament.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="testament")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Testament - discover, run and monitor .NET tests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(verbose=verbose)


cli.add_command(list_command, name="list")
cli.add_command(run_command, name="run")
cli.add_command(build_command, name="build")
cli.add_command(cache_group, name="cache")


if __name__ == "__main__":
    cli()
