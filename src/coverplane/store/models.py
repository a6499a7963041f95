"""Per-file mutable coverage state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from coverplane.analysis.models import CodeMap


class LineStatus(str, Enum):
    """The four states of a line."""

    NON_EXECUTABLE = "non_executable"
    NOT_EXECUTED = "not_executed"
    EXECUTED = "executed"  # ran, but no assertion validated it
    COVERED = "covered"


@dataclass(frozen=True, slots=True)
class TrackOptions:
    """Per-call overrides for ``track_line``.

    ``is_executable`` wins over the code map; ``is_covered`` additionally
    marks the line validated.
    """

    is_executable: bool | None = None
    is_covered: bool = False


@dataclass(slots=True)
class ElementState:
    """Execution state of a function or block."""

    executed: bool = False
    covered: bool = False
    execution_count: int = 0


@dataclass(slots=True)
class ConditionState:
    executed: bool = False
    executed_true: bool = False
    executed_false: bool = False
    execution_count: int = 0

    @property
    def fully_covered(self) -> bool:
        """Both outcomes were seen."""
        return self.executed_true and self.executed_false


@dataclass(slots=True)
class FileCoverageState:
    """Everything recorded for one tracked file."""

    path: str
    code_map: CodeMap | None = None
    discovered: bool = False
    active: bool = False
    line_execution_count: dict[int, int] = field(default_factory=dict)
    line_covered: dict[int, bool] = field(default_factory=dict)
    line_executable: dict[int, bool] = field(default_factory=dict)  # explicit overrides
    function_state: dict[int, ElementState] = field(default_factory=dict)
    block_state: dict[int, ElementState] = field(default_factory=dict)
    condition_state: dict[int, ConditionState] = field(default_factory=dict)
    analysis_error: str | None = None

    def is_line_executable(self, line: int) -> bool:
        """Explicit override, then the code map. Unknown lines are executable
        only when there is no code map at all."""
        override = self.line_executable.get(line)
        if override is not None:
            return override
        if self.code_map is not None:
            return self.code_map.is_executable(line)
        return True

    def executable_lines(self) -> set[int]:
        lines = set(self.code_map.executable_lines) if self.code_map is not None else set()
        for line, executable in self.line_executable.items():
            if executable:
                lines.add(line)
            else:
                lines.discard(line)
        if self.code_map is None:
            lines.update(self.line_execution_count)
        return lines

    def executed_lines(self) -> set[int]:
        return {
            line
            for line, count in self.line_execution_count.items()
            if count > 0 and self.is_line_executable(line)
        }

    def covered_lines(self) -> set[int]:
        return {
            line
            for line, covered in self.line_covered.items()
            if covered and self.is_line_executable(line)
        }
