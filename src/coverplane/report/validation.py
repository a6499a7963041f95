"""Report validation.

Every check returns a list of ``ValidationIssue`` rather than a bool, so a
caller can show all problems at once. Severity ``error`` means the report
contradicts itself or the static analysis; ``warning`` and ``info`` are
for suspicious but possible data (outliers, anomalies, missing files).
"""

from __future__ import annotations

import os
import statistics
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from coverplane.analysis.models import CodeMap
from coverplane.config.constants import (
    COVERAGE_DISCREPANCY_PCT,
    DEFAULT_OUTLIER_STD_DEVS,
    DEFAULT_VALIDATION_THRESHOLD,
    LARGE_FILE_LINES,
    LOW_COVERAGE_PCT,
)
from coverplane.config.models import CoverageConfig
from coverplane.core.logging import get_logger
from coverplane.report.models import FileReport, ReportData, percent

log = get_logger("report.validation")


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    category: str
    message: str
    severity: Severity = Severity.ERROR
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "message": self.message,
            "severity": self.severity.value,
            "details": dict(self.details),
        }


@dataclass(frozen=True, slots=True)
class CoverageStatistics:
    """Distribution of per-file line coverage percentages."""

    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    outliers: tuple[str, ...] = ()
    issues: tuple[ValidationIssue, ...] = ()


@dataclass(frozen=True, slots=True)
class ValidationResult:
    issues: tuple[ValidationIssue, ...] = ()
    statistics: CoverageStatistics = field(default_factory=CoverageStatistics)

    @property
    def valid(self) -> bool:
        """No error-severity issues."""
        return not any(issue.severity is Severity.ERROR for issue in self.issues)

    def by_category(self, category: str) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.category == category]


# ----------------------------------------------------------------------
# Structure
# ----------------------------------------------------------------------

_SUMMED_FIELDS = (
    "total_lines",
    "executable_lines",
    "executed_lines",
    "covered_lines",
    "total_functions",
    "covered_functions",
    "total_blocks",
    "covered_blocks",
    "total_conditions",
    "covered_conditions",
)


def _check_ordering(report: FileReport) -> list[ValidationIssue]:
    issues = []
    pairs = (
        ("covered_lines", "executed_lines"),
        ("executed_lines", "executable_lines"),
        ("executable_lines", "total_lines"),
        ("covered_functions", "total_functions"),
        ("covered_blocks", "total_blocks"),
        ("covered_conditions", "total_conditions"),
    )
    for lower, upper in pairs:
        low = getattr(report, lower)
        high = getattr(report, upper)
        if low > high:
            issues.append(
                ValidationIssue(
                    category="invalid_counts",
                    message=f"{report.path}: {lower} ({low}) exceeds {upper} ({high})",
                    details={"path": report.path, lower: low, upper: high},
                )
            )
    return issues


def _check_percentages(report: ReportData, tolerance: float) -> list[ValidationIssue]:
    issues = []
    for path, file_report in report.files.items():
        expected = percent(file_report.covered_lines, file_report.executable_lines)
        claimed = file_report.line_coverage_pct
        if abs(expected - claimed) > tolerance or not 0.0 <= claimed <= 100.0:
            issues.append(
                ValidationIssue(
                    category="percentage_mismatch",
                    message=f"{path}: line coverage {claimed:.2f}% != {expected:.2f}%",
                    details={"path": path, "claimed": claimed, "expected": expected},
                )
            )
    summary = report.summary
    expected = percent(summary.covered_lines, summary.executable_lines)
    if abs(expected - summary.overall_pct) > tolerance:
        issues.append(
            ValidationIssue(
                category="percentage_mismatch",
                message=f"overall {summary.overall_pct:.2f}% != {expected:.2f}%",
                details={"claimed": summary.overall_pct, "expected": expected},
            )
        )
    return issues


def validate_structure(
    report: ReportData, *, tolerance: float = DEFAULT_VALIDATION_THRESHOLD
) -> list[ValidationIssue]:
    """Summary totals equal per-file sums; per-file counts are ordered.

    Checks ``covered <= executed <= executable`` for each file and recomputes
    every percentage within ``tolerance`` percentage points.
    """
    issues: list[ValidationIssue] = []
    summary = report.summary
    files = list(report.files.values())

    if summary.total_files != len(files):
        issues.append(
            ValidationIssue(
                category="summary_mismatch",
                message=f"total_files {summary.total_files} != {len(files)} files",
                details={
                    "field": "total_files",
                    "claimed": summary.total_files,
                    "actual": len(files),
                },
            )
        )
    for name in _SUMMED_FIELDS:
        claimed = getattr(summary, name)
        actual = sum(getattr(f, name) for f in files)
        if claimed != actual:
            issues.append(
                ValidationIssue(
                    category="summary_mismatch",
                    message=f"summary {name} {claimed} != sum of files {actual}",
                    details={"field": name, "claimed": claimed, "actual": actual},
                )
            )

    for file_report in files:
        issues.extend(_check_ordering(file_report))
    issues.extend(_check_percentages(report, tolerance))
    return issues


# ----------------------------------------------------------------------
# Static cross-check
# ----------------------------------------------------------------------


def cross_check_with_static_analysis(
    report: ReportData, code_maps: Mapping[str, CodeMap]
) -> list[ValidationIssue]:
    """Compare executable line counts with freshly derived static counts."""
    issues: list[ValidationIssue] = []
    for path, file_report in report.files.items():
        code_map = code_maps.get(path)
        if code_map is None:
            if file_report.analyzed:
                issues.append(
                    ValidationIssue(
                        category="missing_code_map",
                        message=f"{path}: reported as analyzed but no code map",
                        severity=Severity.WARNING,
                        details={"path": path},
                    )
                )
            continue
        expected = code_map.executable_line_count
        if file_report.executable_lines != expected:
            issues.append(
                ValidationIssue(
                    category="executable_mismatch",
                    message=(
                        f"{path}: report claims {file_report.executable_lines} executable "
                        f"lines, static analysis finds {expected}"
                    ),
                    details={
                        "path": path,
                        "claimed": file_report.executable_lines,
                        "expected": expected,
                    },
                )
            )
        if file_report.total_lines != code_map.total_lines:
            issues.append(
                ValidationIssue(
                    category="line_count_mismatch",
                    message=(
                        f"{path}: report claims {file_report.total_lines} lines, "
                        f"file has {code_map.total_lines}"
                    ),
                    details={
                        "path": path,
                        "claimed": file_report.total_lines,
                        "expected": code_map.total_lines,
                    },
                )
            )
    for path in code_maps:
        if path not in report.files:
            issues.append(
                ValidationIssue(
                    category="missing_file",
                    message=f"{path}: analyzed but absent from the report",
                    severity=Severity.WARNING,
                    details={"path": path},
                )
            )
    return issues


def check_files_exist(report: ReportData) -> list[ValidationIssue]:
    """Reported files that are no longer on disk."""
    return [
        ValidationIssue(
            category="file_not_found",
            message=f"{path}: reported file no longer exists",
            severity=Severity.WARNING,
            details={"path": path},
        )
        for path in report.files
        if not os.path.isfile(path)
    ]


# ----------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------


def _anomalies(report: ReportData) -> list[ValidationIssue]:
    issues = []
    for path, file_report in report.files.items():
        if (
            file_report.total_lines > LARGE_FILE_LINES
            and file_report.line_coverage_pct < LOW_COVERAGE_PCT
        ):
            issues.append(
                ValidationIssue(
                    category="low_coverage_large_file",
                    message=(
                        f"{path}: {file_report.total_lines} lines at "
                        f"{file_report.line_coverage_pct:.1f}% coverage"
                    ),
                    severity=Severity.INFO,
                    details={"path": path, "coverage": file_report.line_coverage_pct},
                )
            )
        if file_report.total_functions > 0:
            gap = abs(file_report.line_coverage_pct - file_report.function_coverage_pct)
            if gap > COVERAGE_DISCREPANCY_PCT:
                issues.append(
                    ValidationIssue(
                        category="coverage_discrepancy",
                        message=f"{path}: line and function coverage differ by {gap:.1f} points",
                        severity=Severity.INFO,
                        details={
                            "path": path,
                            "line_coverage": file_report.line_coverage_pct,
                            "function_coverage": file_report.function_coverage_pct,
                        },
                    )
                )
    return issues


def analyze_statistics(
    report: ReportData, *, std_devs: float = DEFAULT_OUTLIER_STD_DEVS
) -> CoverageStatistics:
    """Mean, median and standard deviation of per-file coverage.

    Files further than ``std_devs`` standard deviations from the mean are
    reported as informational outliers.
    """
    values = {path: f.line_coverage_pct for path, f in report.files.items()}
    anomalies = _anomalies(report)
    if not values:
        return CoverageStatistics(issues=tuple(anomalies))

    mean = statistics.fmean(values.values())
    median = statistics.median(values.values())
    std_dev = statistics.pstdev(values.values()) if len(values) > 1 else 0.0

    outliers: list[str] = []
    issues = list(anomalies)
    if std_dev > 0:
        for path, value in values.items():
            distance = abs(value - mean) / std_dev
            if distance > std_devs:
                outliers.append(path)
                issues.append(
                    ValidationIssue(
                        category="outlier",
                        message=(
                            f"{path}: {value:.1f}% is {distance:.1f} standard deviations "
                            f"from the mean {mean:.1f}%"
                        ),
                        severity=Severity.INFO,
                        details={"path": path, "coverage": value, "distance": distance},
                    )
                )
    return CoverageStatistics(
        mean=mean, median=median, std_dev=std_dev, outliers=tuple(outliers), issues=tuple(issues)
    )


def validate_report(
    report: ReportData,
    code_maps: Mapping[str, CodeMap] | None = None,
    *,
    config: CoverageConfig | None = None,
) -> ValidationResult:
    """Run every check."""
    config = config or CoverageConfig()
    issues = validate_structure(report, tolerance=config.validation_threshold)
    if code_maps is not None:
        issues.extend(cross_check_with_static_analysis(report, code_maps))
    issues.extend(check_files_exist(report))
    stats = analyze_statistics(report, std_devs=config.outlier_std_devs)
    issues.extend(stats.issues)
    result = ValidationResult(issues=tuple(issues), statistics=stats)
    log.debug("report_validated", issues=len(issues), valid=result.valid)
    return result
