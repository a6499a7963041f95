"""coverplane run command - execute a script under coverage."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.console import Console

from coverplane.cli.tables import make_summary_table
from coverplane.config.loader import load_config
from coverplane.core.errors import CoverPlaneError
from coverplane.session import CoverageSession


@click.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option(
    "--instrument", is_flag=True, help="Rewrite imported modules instead of using sys.settrace"
)
@click.option(
    "--source",
    "source_dirs",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory to measure (repeatable). Defaults to the script's directory.",
)
@click.option(
    "--fail-under",
    type=click.FloatRange(0.0, 100.0),
    default=None,
    help="Exit with status 2 when overall line coverage is below this percent",
)
@click.option(
    "--promote",
    is_flag=True,
    help="Count a run that exits cleanly as one passing assertion over every executed line",
)
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON")
def run_command(
    script: Path,
    args: tuple[str, ...],
    instrument: bool,
    source_dirs: tuple[Path, ...],
    fail_under: float | None,
    promote: bool,
    as_json: bool,
) -> None:
    """Run SCRIPT with ARGS and report its coverage.

    Lines only count as covered when an assertion validated them, so a plain
    script run reports executed lines with 0% coverage unless --promote is given.
    """
    console = Console(stderr=True)
    script = script.resolve()
    dirs = [str(d.resolve()) for d in source_dirs] or [str(script.parent)]

    try:
        config = load_config(script.parent).coverage.model_copy(
            update={"use_instrumentation": instrument, "source_dirs": dirs}
        )
    except CoverPlaneError as e:
        raise click.ClickException(e.message) from e

    session = CoverageSession(config)
    exit_code = 0
    saved_argv = sys.argv
    sys.argv = [str(script), *args]
    session.start()
    session.begin_test()
    try:
        session.run_path(script)
        if promote:
            session.on_assertion_passed()
    except SystemExit as e:
        exit_code = e.code if isinstance(e.code, int) else (0 if e.code is None else 1)
        if promote and exit_code == 0:
            session.on_assertion_passed()
    except Exception:  # noqa: BLE001
        console.print_exception()
        exit_code = 1
    finally:
        session.stop()
        sys.argv = saved_argv

    report = session.get_report_data()
    if as_json:
        click.echo(json.dumps(report.to_dict()))
    else:
        console.print(make_summary_table(report, root=dirs[0]))

    if fail_under is not None and not session.meets_threshold(fail_under):
        console.print(
            f"[red]✗[/red] Coverage {report.overall_pct:.1f}% is below {fail_under:.1f}%"
        )
        exit_code = exit_code or 2
    if exit_code:
        sys.exit(exit_code)
