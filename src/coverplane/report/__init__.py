"""Report assembly, validation and plain-text summaries."""

from coverplane.report.assembler import assemble, assemble_file, summarize
from coverplane.report.models import (
    BlockReport,
    ConditionReport,
    FileReport,
    FunctionReport,
    LineReport,
    ReportData,
    ReportSummary,
    percent,
)
from coverplane.report.text import build_text_summary
from coverplane.report.validation import (
    CoverageStatistics,
    Severity,
    ValidationIssue,
    ValidationResult,
    analyze_statistics,
    cross_check_with_static_analysis,
    validate_report,
    validate_structure,
)

__all__ = [
    "assemble",
    "assemble_file",
    "summarize",
    "build_text_summary",
    "BlockReport",
    "ConditionReport",
    "FileReport",
    "FunctionReport",
    "LineReport",
    "ReportData",
    "ReportSummary",
    "percent",
    "CoverageStatistics",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "analyze_statistics",
    "cross_check_with_static_analysis",
    "validate_report",
    "validate_structure",
]
