"""coverplane analyze command - show the static code map of a file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from coverplane.analysis.analyzer import StaticAnalyzer
from coverplane.analysis.models import CodeMap
from coverplane.config.models import CoverageConfig
from coverplane.core.errors import CoverPlaneError


def code_map_to_dict(code_map: CodeMap) -> dict[str, Any]:
    return {
        "path": code_map.path,
        "parsed": code_map.parsed,
        "parse_error": code_map.parse_error,
        "total_lines": code_map.total_lines,
        "executable_lines": sorted(code_map.executable_lines),
        "functions": [
            {
                "id": f.id,
                "qualname": f.qualname,
                "type": f.type.value,
                "start_line": f.start_line,
                "end_line": f.end_line,
            }
            for f in code_map.functions
        ],
        "blocks": [
            {
                "id": b.id,
                "type": b.type.value,
                "start_line": b.start_line,
                "end_line": b.end_line,
                "parent_id": b.parent_id,
            }
            for b in code_map.blocks
        ],
        "conditions": [
            {
                "id": c.id,
                "type": c.type.value,
                "operator": c.operator,
                "parent_id": c.parent_id,
                "start_line": c.start_line,
            }
            for c in code_map.conditions
        ],
    }


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def analyze_command(file: Path, as_json: bool) -> None:
    """Show executable lines, functions, blocks and conditions of FILE."""
    analyzer = StaticAnalyzer(CoverageConfig(reject_third_party=False))
    try:
        code_map = analyzer.analyze_file(file.resolve())
    except CoverPlaneError as e:
        raise click.ClickException(e.message) from e

    if as_json:
        click.echo(json.dumps(code_map_to_dict(code_map)))
        return

    console = Console()
    console.print(
        f"[bold]{file}[/bold]: {code_map.executable_line_count} executable of "
        f"{code_map.total_lines} lines"
    )
    table = Table(box=None, padding=(0, 1), pad_edge=False)
    table.add_column("Kind", style="cyan")
    table.add_column("Name")
    table.add_column("Lines", justify="right")
    for f in code_map.functions:
        table.add_row(f.type.value, f.qualname, f"{f.start_line}-{f.end_line}")
    for b in code_map.blocks:
        table.add_row(b.type.value, f"block {b.id}", f"{b.start_line}-{b.end_line}")
    for c in code_map.conditions:
        table.add_row(c.type.value, c.operator or f"condition {c.id}", str(c.start_line))
    console.print(table)
