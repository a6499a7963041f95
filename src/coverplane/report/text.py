"""Plain-text coverage summary for logs and terminals without rich."""

from __future__ import annotations

from coverplane.core.paths import display_path
from coverplane.report.models import ReportData


def build_text_summary(report: ReportData, *, root: str | None = None) -> str:
    """One line per file plus a total line.

    Unanalyzed files are listed with their error instead of percentages.
    """
    lines: list[str] = []
    for path, file_report in report.files.items():
        name = display_path(path, root)
        if not file_report.analyzed and file_report.error:
            lines.append(f"{name}: not analyzed ({file_report.error})")
            continue
        lines.append(
            f"{name}: {file_report.covered_lines}/{file_report.executable_lines} lines covered "
            f"({file_report.line_coverage_pct:.1f}%), "
            f"{file_report.executed_lines} executed"
        )
    summary = report.summary
    lines.append(
        f"TOTAL: {summary.covered_lines}/{summary.executable_lines} lines covered "
        f"({summary.overall_pct:.1f}%) in {summary.total_files} files"
    )
    if summary.unanalyzed_files:
        lines.append(f"Unanalyzed: {len(summary.unanalyzed_files)} files")
    return "\n".join(lines)
