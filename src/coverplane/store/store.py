"""Coverage data store.

The single mutable table of the engine, keyed by normalized path. Every
other component changes coverage state through these methods only. No I/O
happens here, and no method calls out to another component, so tracking
calls made while a tracked line runs can re-enter freely.

Invariant: anything marked covered is also marked executed.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

from coverplane.analysis.models import CodeMap
from coverplane.core.errors import ValidationError
from coverplane.core.paths import normalize_path
from coverplane.store.models import (
    ConditionState,
    ElementState,
    FileCoverageState,
    LineStatus,
    TrackOptions,
)

_DEFAULT_OPTIONS = TrackOptions()


def _check_line(operation: str, line: object) -> int:
    if isinstance(line, bool) or not isinstance(line, int):
        raise ValidationError.invalid_argument(operation, "line", line, "expected int")
    if line < 1:
        raise ValidationError.invalid_argument(operation, "line", line, "must be >= 1")
    return line


def _check_id(operation: str, name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError.invalid_argument(operation, name, value, "expected positive int")
    return value


class CoverageStore:
    """In-memory coverage state for one session."""

    def __init__(self) -> None:
        self._files: dict[str, FileCoverageState] = {}
        self._code_maps: dict[str, CodeMap] = {}

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _key(self, operation: str, path: str | os.PathLike[str]) -> str:
        if isinstance(path, str) and path in self._files:
            return path
        if path is None or not isinstance(path, (str, os.PathLike)):
            raise ValidationError.invalid_argument(operation, "path", path, "expected str")
        return normalize_path(path)

    def _state(self, key: str) -> FileCoverageState:
        state = self._files.get(key)
        if state is None:
            state = FileCoverageState(path=key, code_map=self._code_maps.get(key))
            self._files[key] = state
        return state

    def initialize_file(
        self, path: str | os.PathLike[str], code_map: CodeMap | None = None
    ) -> FileCoverageState:
        """Create state for ``path``. Idempotent: an existing state is returned untouched."""
        key = self._key("initialize_file", path)
        state = self._files.get(key)
        if state is not None:
            return state
        if code_map is not None:
            self._code_maps[key] = code_map
        state = self._state(key)
        state.discovered = True
        return state

    def attach_code_map(
        self, path: str | os.PathLike[str], code_map: CodeMap
    ) -> FileCoverageState:
        """Give a state created before its analysis finished a code map.

        A state that already has one keeps it.
        """
        key = self._key("attach_code_map", path)
        state = self.initialize_file(key, code_map)
        if state.code_map is None:
            state.code_map = code_map
            self._code_maps[key] = code_map
        return state

    def activate_file(self, path: str | os.PathLike[str]) -> FileCoverageState:
        """Include ``path`` in reports."""
        key = self._key("activate_file", path)
        state = self._state(key)
        state.discovered = True
        state.active = True
        return state

    def record_analysis_error(self, path: str | os.PathLike[str], message: str) -> None:
        """Remember that ``path`` could not be analyzed (reported as unanalyzed)."""
        state = self._state(self._key("record_analysis_error", path))
        state.analysis_error = message

    def get_file(self, path: str | os.PathLike[str]) -> FileCoverageState | None:
        return self._files.get(self._key("get_file", path))

    def get_file_by_key(self, key: str) -> FileCoverageState | None:
        """Lookup without normalization, for callers holding a normalized key."""
        return self._files.get(key)

    def files(self) -> Iterator[FileCoverageState]:
        return iter(list(self._files.values()))

    def get_active_files(self) -> set[str]:
        return {key for key, state in self._files.items() if state.active}

    def get_code_map(self, path: str | os.PathLike[str]) -> CodeMap | None:
        return self._code_maps.get(self._key("get_code_map", path))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_path(path) in self._files

    def __len__(self) -> int:
        return len(self._files)

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def track_line(
        self,
        path: str | os.PathLike[str],
        line: int,
        options: TrackOptions | None = None,
    ) -> None:
        """Count one execution of ``line``."""
        key = self._key("track_line", path)
        _check_line("track_line", line)
        self.track_line_fast(key, line, options or _DEFAULT_OPTIONS)

    def track_line_fast(
        self, key: str, line: int, options: TrackOptions = _DEFAULT_OPTIONS
    ) -> None:
        """``track_line`` for a key already normalized and a line already checked."""
        state = self._files.get(key) or self._state(key)
        state.line_execution_count[line] = state.line_execution_count.get(line, 0) + 1
        if options.is_executable is not None:
            state.line_executable[line] = options.is_executable
        if options.is_covered:
            state.line_covered[line] = True

    def ensure_line_executed(self, path: str | os.PathLike[str], line: int) -> bool:
        """Mark ``line`` executed without counting an extra execution.

        Returns True when the line had not run before.
        """
        key = self._key("ensure_line_executed", path)
        _check_line("ensure_line_executed", line)
        counts = self._state(key).line_execution_count
        if counts.get(line, 0) >= 1:
            return False
        counts[line] = 1
        return True

    def mark_line_covered(self, path: str | os.PathLike[str], line: int) -> None:
        """Promote ``line`` to covered (and executed, if it never ran)."""
        key = self._key("mark_line_covered", path)
        _check_line("mark_line_covered", line)
        state = self._state(key)
        state.line_covered[line] = True
        if state.line_execution_count.get(line, 0) < 1:
            state.line_execution_count[line] = 1

    def was_line_executed(self, path: str | os.PathLike[str], line: int) -> bool:
        state = self._files.get(self._key("was_line_executed", path))
        _check_line("was_line_executed", line)
        return state is not None and state.line_execution_count.get(line, 0) > 0

    def was_line_covered(self, path: str | os.PathLike[str], line: int) -> bool:
        state = self._files.get(self._key("was_line_covered", path))
        _check_line("was_line_covered", line)
        return state is not None and state.line_covered.get(line, False)

    def get_line_status(self, path: str | os.PathLike[str], line: int) -> LineStatus:
        key = self._key("get_line_status", path)
        _check_line("get_line_status", line)
        state = self._files.get(key)
        if state is None:
            code_map = self._code_maps.get(key)
            if code_map is not None and not code_map.is_executable(line):
                return LineStatus.NON_EXECUTABLE
            return LineStatus.NOT_EXECUTED
        if not state.is_line_executable(line):
            return LineStatus.NON_EXECUTABLE
        if state.line_covered.get(line, False):
            return LineStatus.COVERED
        if state.line_execution_count.get(line, 0) > 0:
            return LineStatus.EXECUTED
        return LineStatus.NOT_EXECUTED

    # ------------------------------------------------------------------
    # Functions, blocks, conditions
    # ------------------------------------------------------------------

    def track_function(
        self, path: str | os.PathLike[str], function_id: int, *, covered: bool = False
    ) -> None:
        key = self._key("track_function", path)
        _check_id("track_function", "function_id", function_id)
        self._track_element(self._state(key).function_state, function_id, covered)

    def track_block(
        self, path: str | os.PathLike[str], block_id: int, *, covered: bool = False
    ) -> None:
        key = self._key("track_block", path)
        _check_id("track_block", "block_id", block_id)
        self._track_element(self._state(key).block_state, block_id, covered)

    def mark_function_covered(self, path: str | os.PathLike[str], function_id: int) -> None:
        key = self._key("mark_function_covered", path)
        _check_id("mark_function_covered", "function_id", function_id)
        self._cover_element(self._state(key).function_state, function_id)

    def mark_block_covered(self, path: str | os.PathLike[str], block_id: int) -> None:
        key = self._key("mark_block_covered", path)
        _check_id("mark_block_covered", "block_id", block_id)
        self._cover_element(self._state(key).block_state, block_id)

    @staticmethod
    def _track_element(table: dict[int, ElementState], element_id: int, covered: bool) -> None:
        element = table.get(element_id)
        if element is None:
            element = table[element_id] = ElementState()
        element.executed = True
        element.execution_count += 1
        if covered:
            element.covered = True

    @staticmethod
    def _cover_element(table: dict[int, ElementState], element_id: int) -> None:
        element = table.get(element_id)
        if element is None:
            element = table[element_id] = ElementState()
        element.covered = True
        if not element.executed:
            element.executed = True
            element.execution_count = max(element.execution_count, 1)

    def track_condition(
        self, path: str | os.PathLike[str], condition_id: int, outcome: bool
    ) -> None:
        """Record one evaluation of a condition and its outcome."""
        key = self._key("track_condition", path)
        _check_id("track_condition", "condition_id", condition_id)
        if not isinstance(outcome, bool):
            raise ValidationError.invalid_argument(
                "track_condition", "outcome", outcome, "expected bool"
            )
        table = self._state(key).condition_state
        condition = table.get(condition_id)
        if condition is None:
            condition = table[condition_id] = ConditionState()
        condition.executed = True
        condition.execution_count += 1
        if outcome:
            condition.executed_true = True
        else:
            condition.executed_false = True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop all file state. Code maps are kept."""
        self._files.clear()

    def full_reset(self) -> None:
        """Drop all file state and every cached code map."""
        self._files.clear()
        self._code_maps.clear()
