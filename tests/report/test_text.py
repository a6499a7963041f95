"""Tests for report/text.py module."""

from __future__ import annotations

from coverplane.report.assembler import summarize
from coverplane.report.models import FileReport, ReportData
from coverplane.report.text import build_text_summary


def make_report() -> ReportData:
    files = {
        "/repo/pkg/a.py": FileReport(
            path="/repo/pkg/a.py",
            total_lines=4,
            executable_lines=4,
            executed_lines=3,
            covered_lines=1,
        ),
        "/repo/pkg/b.py": FileReport(path="/repo/pkg/b.py", analyzed=False, error="bad syntax"),
    }
    return ReportData(files=files, summary=summarize(files))


class TestTextSummary:
    """Tests for build_text_summary."""

    def test_lines(self) -> None:
        lines = build_text_summary(make_report(), root="/repo").splitlines()
        assert lines == [
            "pkg/a.py: 1/4 lines covered (25.0%), 3 executed",
            "pkg/b.py: not analyzed (bad syntax)",
            "TOTAL: 1/4 lines covered (25.0%) in 2 files",
            "Unanalyzed: 1 files",
        ]

    def test_outside_root_keeps_absolute_path(self) -> None:
        text = build_text_summary(make_report(), root="/elsewhere")
        assert text.startswith("/repo/pkg/a.py: ")

    def test_empty(self) -> None:
        assert build_text_summary(ReportData(), root="/repo") == (
            "TOTAL: 0/0 lines covered (0.0%) in 0 files"
        )
