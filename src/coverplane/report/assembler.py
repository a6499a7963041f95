"""Report data assembler: CoverageStore -> ReportData.

Pure and read-only over the store. Only active files are reported. A file
whose analysis failed is still reported, with ``analyzed=False`` and the
lines observed at runtime, so it can't silently drop out of the totals.
"""

from __future__ import annotations

from coverplane.analysis.models import CodeMap
from coverplane.report.models import (
    BlockReport,
    ConditionReport,
    FileReport,
    FunctionReport,
    LineReport,
    ReportData,
    ReportSummary,
)
from coverplane.store.models import FileCoverageState, LineStatus
from coverplane.store.store import CoverageStore


def _line_reports(state: FileCoverageState, total: int) -> tuple[LineReport, ...]:
    numbers = set(range(1, total + 1)) | set(state.line_execution_count)
    reports = []
    for number in sorted(numbers):
        count = state.line_execution_count.get(number, 0)
        if not state.is_line_executable(number):
            status = LineStatus.NON_EXECUTABLE
        elif state.line_covered.get(number, False):
            status = LineStatus.COVERED
        elif count > 0:
            status = LineStatus.EXECUTED
        else:
            status = LineStatus.NOT_EXECUTED
        reports.append(LineReport(number, status.value, count))
    return tuple(reports)


def _function_reports(
    state: FileCoverageState, code_map: CodeMap | None
) -> tuple[FunctionReport, ...]:
    if code_map is None:
        return ()
    reports = []
    for function in code_map.functions:
        element = state.function_state.get(function.id)
        reports.append(
            FunctionReport(
                id=function.id,
                name=function.name,
                qualname=function.qualname,
                type=function.type.value,
                start_line=function.start_line,
                end_line=function.end_line,
                executed=element is not None and element.executed,
                covered=element is not None and element.covered,
                count=element.execution_count if element is not None else 0,
            )
        )
    return tuple(reports)


def _block_reports(
    state: FileCoverageState, code_map: CodeMap | None
) -> tuple[BlockReport, ...]:
    if code_map is None:
        return ()
    reports = []
    for block in code_map.blocks:
        element = state.block_state.get(block.id)
        reports.append(
            BlockReport(
                id=block.id,
                type=block.type.value,
                start_line=block.start_line,
                end_line=block.end_line,
                parent_id=block.parent_id,
                executed=element is not None and element.executed,
                covered=element is not None and element.covered,
                count=element.execution_count if element is not None else 0,
            )
        )
    return tuple(reports)


def _condition_reports(
    state: FileCoverageState, code_map: CodeMap | None
) -> tuple[ConditionReport, ...]:
    if code_map is None:
        return ()
    reports = []
    for condition in code_map.conditions:
        outcome = state.condition_state.get(condition.id)
        reports.append(
            ConditionReport(
                id=condition.id,
                type=condition.type.value,
                operator=condition.operator,
                parent_id=condition.parent_id,
                start_line=condition.start_line,
                executed_true=outcome is not None and outcome.executed_true,
                executed_false=outcome is not None and outcome.executed_false,
                count=outcome.execution_count if outcome is not None else 0,
            )
        )
    return tuple(reports)


def assemble_file(state: FileCoverageState) -> FileReport:
    """Build the report of one file from its coverage state."""
    code_map = state.code_map
    total_lines = code_map.total_lines if code_map is not None else max(
        state.line_execution_count, default=0
    )
    executable = state.executable_lines()
    executed = state.executed_lines()
    covered = state.covered_lines()
    functions = _function_reports(state, code_map)
    blocks = _block_reports(state, code_map)
    conditions = _condition_reports(state, code_map)
    return FileReport(
        path=state.path,
        analyzed=state.analysis_error is None and code_map is not None and code_map.parsed,
        error=state.analysis_error,
        total_lines=total_lines,
        executable_lines=len(executable),
        executed_lines=len(executed & executable),
        covered_lines=len(covered & executable),
        total_functions=len(functions),
        executed_functions=sum(1 for f in functions if f.executed),
        covered_functions=sum(1 for f in functions if f.covered),
        total_blocks=len(blocks),
        executed_blocks=sum(1 for b in blocks if b.executed),
        covered_blocks=sum(1 for b in blocks if b.covered),
        total_conditions=len(conditions),
        executed_conditions=sum(1 for c in conditions if c.count > 0),
        covered_conditions=sum(1 for c in conditions if c.covered),
        lines=_line_reports(state, total_lines),
        functions=functions,
        blocks=blocks,
        conditions=conditions,
    )


def summarize(files: dict[str, FileReport]) -> ReportSummary:
    """Aggregate per-file reports into totals."""
    reports = list(files.values())
    return ReportSummary(
        total_files=len(reports),
        analyzed_files=sum(1 for r in reports if r.analyzed),
        unanalyzed_files=tuple(r.path for r in reports if not r.analyzed),
        total_lines=sum(r.total_lines for r in reports),
        executable_lines=sum(r.executable_lines for r in reports),
        executed_lines=sum(r.executed_lines for r in reports),
        covered_lines=sum(r.covered_lines for r in reports),
        total_functions=sum(r.total_functions for r in reports),
        covered_functions=sum(r.covered_functions for r in reports),
        total_blocks=sum(r.total_blocks for r in reports),
        covered_blocks=sum(r.covered_blocks for r in reports),
        total_conditions=sum(r.total_conditions for r in reports),
        covered_conditions=sum(r.covered_conditions for r in reports),
    )


def assemble(store: CoverageStore) -> ReportData:
    """Snapshot every active file of ``store``."""
    files: dict[str, FileReport] = {}
    for state in sorted(store.files(), key=lambda s: s.path):
        if state.active:
            files[state.path] = assemble_file(state)
    return ReportData(files=files, summary=summarize(files))
