"""CoverPlane CLI - coverplane command."""

import click

from coverplane.cli.analyze import analyze_command
from coverplane.cli.run import run_command
from coverplane.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="coverplane")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """CoverPlane - line, function, block and condition coverage for Python."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(run_command, name="run")
cli.add_command(analyze_command, name="analyze")


if __name__ == "__main__":
    cli()
