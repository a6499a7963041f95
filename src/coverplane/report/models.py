"""Report data model.

ReportData is a read-only snapshot handed to formatters. ``to_dict()`` gives
the plain nested structure formatters consume:
``{"files": {path: {"lines", "functions", "blocks", "conditions",
"summary"}}, "summary": {...}}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def percent(part: int, whole: int) -> float:
    """``part / whole * 100``, defined as 0.0 when ``whole`` is zero."""
    if whole <= 0:
        return 0.0
    return part / whole * 100.0


@dataclass(frozen=True, slots=True)
class LineReport:
    number: int
    status: str
    count: int = 0


@dataclass(frozen=True, slots=True)
class FunctionReport:
    id: int
    name: str
    qualname: str
    type: str
    start_line: int
    end_line: int
    executed: bool = False
    covered: bool = False
    count: int = 0


@dataclass(frozen=True, slots=True)
class BlockReport:
    id: int
    type: str
    start_line: int
    end_line: int
    parent_id: int | None = None
    executed: bool = False
    covered: bool = False
    count: int = 0


@dataclass(frozen=True, slots=True)
class ConditionReport:
    id: int
    type: str
    operator: str | None
    parent_id: int | None
    start_line: int
    executed_true: bool = False
    executed_false: bool = False
    count: int = 0

    @property
    def covered(self) -> bool:
        return self.executed_true and self.executed_false


@dataclass(frozen=True, slots=True)
class FileReport:
    """Coverage of one active file."""

    path: str
    analyzed: bool = True
    error: str | None = None

    total_lines: int = 0
    executable_lines: int = 0
    executed_lines: int = 0
    covered_lines: int = 0

    total_functions: int = 0
    executed_functions: int = 0
    covered_functions: int = 0

    total_blocks: int = 0
    executed_blocks: int = 0
    covered_blocks: int = 0

    total_conditions: int = 0
    executed_conditions: int = 0
    covered_conditions: int = 0  # both outcomes seen

    lines: tuple[LineReport, ...] = ()
    functions: tuple[FunctionReport, ...] = ()
    blocks: tuple[BlockReport, ...] = ()
    conditions: tuple[ConditionReport, ...] = ()

    @property
    def line_coverage_pct(self) -> float:
        return percent(self.covered_lines, self.executable_lines)

    @property
    def execution_pct(self) -> float:
        return percent(self.executed_lines, self.executable_lines)

    @property
    def function_coverage_pct(self) -> float:
        return percent(self.covered_functions, self.total_functions)

    @property
    def block_coverage_pct(self) -> float:
        return percent(self.covered_blocks, self.total_blocks)

    @property
    def condition_coverage_pct(self) -> float:
        return percent(self.covered_conditions, self.total_conditions)

    def summary_dict(self) -> dict[str, Any]:
        return {
            "analyzed": self.analyzed,
            "error": self.error,
            "total_lines": self.total_lines,
            "executable_lines": self.executable_lines,
            "executed_lines": self.executed_lines,
            "covered_lines": self.covered_lines,
            "line_coverage_pct": round(self.line_coverage_pct, 2),
            "total_functions": self.total_functions,
            "executed_functions": self.executed_functions,
            "covered_functions": self.covered_functions,
            "function_coverage_pct": round(self.function_coverage_pct, 2),
            "total_blocks": self.total_blocks,
            "executed_blocks": self.executed_blocks,
            "covered_blocks": self.covered_blocks,
            "block_coverage_pct": round(self.block_coverage_pct, 2),
            "total_conditions": self.total_conditions,
            "executed_conditions": self.executed_conditions,
            "covered_conditions": self.covered_conditions,
            "condition_coverage_pct": round(self.condition_coverage_pct, 2),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": {
                line.number: {"status": line.status, "count": line.count} for line in self.lines
            },
            "functions": {
                function.id: {
                    "name": function.name,
                    "qualname": function.qualname,
                    "type": function.type,
                    "start_line": function.start_line,
                    "end_line": function.end_line,
                    "executed": function.executed,
                    "covered": function.covered,
                    "count": function.count,
                }
                for function in self.functions
            },
            "blocks": {
                block.id: {
                    "type": block.type,
                    "start_line": block.start_line,
                    "end_line": block.end_line,
                    "parent_id": block.parent_id,
                    "executed": block.executed,
                    "covered": block.covered,
                    "count": block.count,
                }
                for block in self.blocks
            },
            "conditions": {
                condition.id: {
                    "type": condition.type,
                    "operator": condition.operator,
                    "parent_id": condition.parent_id,
                    "start_line": condition.start_line,
                    "executed_true": condition.executed_true,
                    "executed_false": condition.executed_false,
                    "covered": condition.covered,
                    "count": condition.count,
                }
                for condition in self.conditions
            },
            "summary": self.summary_dict(),
        }


@dataclass(frozen=True, slots=True)
class ReportSummary:
    """Totals across all files.

    Percentages are aggregate ratios (sum of covered over sum of total),
    never averages of per-file percentages.
    """

    total_files: int = 0
    analyzed_files: int = 0
    unanalyzed_files: tuple[str, ...] = ()
    total_lines: int = 0
    executable_lines: int = 0
    executed_lines: int = 0
    covered_lines: int = 0
    total_functions: int = 0
    covered_functions: int = 0
    total_blocks: int = 0
    covered_blocks: int = 0
    total_conditions: int = 0
    covered_conditions: int = 0

    @property
    def overall_pct(self) -> float:
        return percent(self.covered_lines, self.executable_lines)

    @property
    def execution_pct(self) -> float:
        return percent(self.executed_lines, self.executable_lines)

    @property
    def function_coverage_pct(self) -> float:
        return percent(self.covered_functions, self.total_functions)

    @property
    def block_coverage_pct(self) -> float:
        return percent(self.covered_blocks, self.total_blocks)

    @property
    def condition_coverage_pct(self) -> float:
        return percent(self.covered_conditions, self.total_conditions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_files": self.total_files,
            "analyzed_files": self.analyzed_files,
            "unanalyzed_files": list(self.unanalyzed_files),
            "total_lines": self.total_lines,
            "executable_lines": self.executable_lines,
            "executed_lines": self.executed_lines,
            "covered_lines": self.covered_lines,
            "overall_pct": round(self.overall_pct, 2),
            "execution_pct": round(self.execution_pct, 2),
            "total_functions": self.total_functions,
            "covered_functions": self.covered_functions,
            "function_coverage_pct": round(self.function_coverage_pct, 2),
            "total_blocks": self.total_blocks,
            "covered_blocks": self.covered_blocks,
            "block_coverage_pct": round(self.block_coverage_pct, 2),
            "total_conditions": self.total_conditions,
            "covered_conditions": self.covered_conditions,
            "condition_coverage_pct": round(self.condition_coverage_pct, 2),
        }


@dataclass(frozen=True, slots=True)
class ReportData:
    files: dict[str, FileReport] = field(default_factory=dict)
    summary: ReportSummary = field(default_factory=ReportSummary)

    @property
    def overall_pct(self) -> float:
        return self.summary.overall_pct

    def file(self, path: str) -> FileReport | None:
        return self.files.get(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": {path: report.to_dict() for path, report in self.files.items()},
            "summary": self.summary.to_dict(),
        }
