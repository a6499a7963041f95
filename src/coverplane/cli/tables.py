"""Rich tables for coverage output."""

from __future__ import annotations

from rich.table import Table

from coverplane.core.paths import display_path
from coverplane.report.models import ReportData


def _pct_style(pct: float) -> str:
    if pct >= 90.0:
        return "green"
    if pct >= 50.0:
        return "yellow"
    return "red"


def make_summary_table(report: ReportData, *, root: str | None = None) -> Table:
    """One row per file plus a TOTAL row."""
    table = Table(box=None, padding=(0, 1), pad_edge=False)
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Lines", justify="right")
    table.add_column("Exec", justify="right")
    table.add_column("Cover", justify="right")
    table.add_column("Funcs", justify="right")
    table.add_column("Blocks", justify="right")
    table.add_column("Conds", justify="right")

    for path, file_report in report.files.items():
        name = display_path(path, root)
        if not file_report.analyzed:
            table.add_row(name, "-", "-", "[dim]not analyzed[/dim]", "-", "-", "-", style="dim")
            continue
        pct = file_report.line_coverage_pct
        table.add_row(
            name,
            str(file_report.executable_lines),
            str(file_report.executed_lines),
            f"[{_pct_style(pct)}]{pct:.1f}%[/{_pct_style(pct)}]",
            f"{file_report.covered_functions}/{file_report.total_functions}",
            f"{file_report.covered_blocks}/{file_report.total_blocks}",
            f"{file_report.covered_conditions}/{file_report.total_conditions}",
        )

    summary = report.summary
    style = _pct_style(summary.overall_pct)
    table.add_row(
        "TOTAL",
        str(summary.executable_lines),
        str(summary.executed_lines),
        f"[{style}]{summary.overall_pct:.1f}%[/{style}]",
        f"{summary.covered_functions}/{summary.total_functions}",
        f"{summary.covered_blocks}/{summary.total_blocks}",
        f"{summary.covered_conditions}/{summary.total_conditions}",
        style="bold",
    )
    return table
