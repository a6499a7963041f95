"""Tests for store/store.py module.

Covers:
- file initialization and activation
- line tracking, promotion and status
- function, block and condition tracking
- reset and full_reset
- argument validation
"""

from __future__ import annotations

import pytest

from coverplane.analysis.analyzer import StaticAnalyzer
from coverplane.analysis.models import CodeMap
from coverplane.core.errors import ValidationError
from coverplane.store.models import LineStatus, TrackOptions
from coverplane.store.store import CoverageStore

PATH = "/proj/mod.py"
SOURCE = "x = 1\n\ny = 2\n"


@pytest.fixture
def code_map() -> CodeMap:
    return StaticAnalyzer().analyze(PATH, SOURCE)


@pytest.fixture
def store(code_map: CodeMap) -> CoverageStore:
    store = CoverageStore()
    store.initialize_file(PATH, code_map)
    store.activate_file(PATH)
    return store


class TestFiles:
    """Tests for file registration."""

    def test_initialize_is_idempotent(self, code_map: CodeMap) -> None:
        store = CoverageStore()
        first = store.initialize_file(PATH, code_map)
        store.track_line(PATH, 1)
        second = store.initialize_file(PATH, code_map)
        assert second is first
        assert store.was_line_executed(PATH, 1)

    def test_initialize_leaves_existing_state_unchanged(self, code_map: CodeMap) -> None:
        store = CoverageStore()
        store.track_line(PATH, 1)
        state = store.initialize_file(PATH, code_map)
        assert state.code_map is None
        assert store.get_code_map(PATH) is None

    def test_attach_code_map(self, code_map: CodeMap) -> None:
        store = CoverageStore()
        store.track_line(PATH, 1)
        state = store.attach_code_map(PATH, code_map)
        assert state.code_map is code_map
        assert store.get_code_map(PATH) is code_map
        assert store.was_line_executed(PATH, 1)

    def test_attach_keeps_existing_code_map(self, code_map: CodeMap) -> None:
        store = CoverageStore()
        store.initialize_file(PATH, code_map)
        other = StaticAnalyzer().analyze(PATH, "z = 3\n")
        assert store.attach_code_map(PATH, other).code_map is code_map

    def test_initialize_does_not_activate(self, code_map: CodeMap) -> None:
        store = CoverageStore()
        store.initialize_file(PATH, code_map)
        assert store.get_active_files() == set()

    def test_activate(self, store: CoverageStore) -> None:
        assert store.get_active_files() == {PATH}

    def test_paths_are_normalized(self, store: CoverageStore) -> None:
        store.track_line("/proj/sub/../mod.py", 1)
        assert store.was_line_executed(PATH, 1)

    def test_same_basename_distinct(self) -> None:
        store = CoverageStore()
        store.track_line("/a/utils.py", 1)
        assert not store.was_line_executed("/b/utils.py", 1)
        assert len(store) == 1

    def test_record_analysis_error(self, store: CoverageStore) -> None:
        store.record_analysis_error(PATH, "boom")
        assert store.get_file(PATH).analysis_error == "boom"

    def test_contains(self, store: CoverageStore) -> None:
        assert PATH in store
        assert "/proj/other.py" not in store


class TestLines:
    """Tests for line tracking and promotion."""

    def test_track_counts(self, store: CoverageStore) -> None:
        store.track_line(PATH, 1)
        store.track_line(PATH, 1)
        assert store.get_file(PATH).line_execution_count[1] == 2

    def test_executed_is_not_covered(self, store: CoverageStore) -> None:
        store.track_line(PATH, 3)
        assert store.was_line_executed(PATH, 3)
        assert not store.was_line_covered(PATH, 3)
        assert store.get_line_status(PATH, 3) is LineStatus.EXECUTED

    def test_mark_covered_implies_executed(self, store: CoverageStore) -> None:
        store.mark_line_covered(PATH, 3)
        assert store.was_line_covered(PATH, 3)
        assert store.was_line_executed(PATH, 3)
        assert store.get_line_status(PATH, 3) is LineStatus.COVERED

    def test_track_with_is_covered(self, store: CoverageStore) -> None:
        store.track_line(PATH, 1, TrackOptions(is_covered=True))
        assert store.was_line_covered(PATH, 1)

    def test_executable_override(self, store: CoverageStore) -> None:
        store.track_line(PATH, 2, TrackOptions(is_executable=True))
        assert store.get_line_status(PATH, 2) is LineStatus.EXECUTED
        assert 2 in store.get_file(PATH).executable_lines()

    def test_non_executable_status(self, store: CoverageStore) -> None:
        assert store.get_line_status(PATH, 2) is LineStatus.NON_EXECUTABLE

    def test_not_executed_status(self, store: CoverageStore) -> None:
        assert store.get_line_status(PATH, 1) is LineStatus.NOT_EXECUTED

    def test_unknown_file_status(self) -> None:
        assert CoverageStore().get_line_status("/nowhere.py", 5) is LineStatus.NOT_EXECUTED

    def test_ensure_line_executed_does_not_double_count(self, store: CoverageStore) -> None:
        store.track_line(PATH, 1)
        store.ensure_line_executed(PATH, 1)
        store.ensure_line_executed(PATH, 3)
        counts = store.get_file(PATH).line_execution_count
        assert counts == {1: 1, 3: 1}

    def test_file_without_code_map_counts_observed_lines(self) -> None:
        store = CoverageStore()
        store.track_line("/proj/raw.py", 4)
        state = store.get_file("/proj/raw.py")
        assert state.executable_lines() == {4}
        assert state.executed_lines() == {4}


class TestElements:
    """Tests for function, block and condition tracking."""

    def test_function(self, store: CoverageStore) -> None:
        store.track_function(PATH, 1)
        store.track_function(PATH, 1)
        element = store.get_file(PATH).function_state[1]
        assert element.executed and not element.covered
        assert element.execution_count == 2

    def test_mark_block_covered_implies_executed(self, store: CoverageStore) -> None:
        store.mark_block_covered(PATH, 2)
        element = store.get_file(PATH).block_state[2]
        assert element.covered and element.executed
        assert element.execution_count == 1

    def test_mark_function_covered_keeps_count(self, store: CoverageStore) -> None:
        store.track_function(PATH, 1)
        store.track_function(PATH, 1)
        store.mark_function_covered(PATH, 1)
        assert store.get_file(PATH).function_state[1].execution_count == 2

    def test_condition_outcomes(self, store: CoverageStore) -> None:
        store.track_condition(PATH, 1, True)
        condition = store.get_file(PATH).condition_state[1]
        assert condition.executed_true and not condition.fully_covered
        store.track_condition(PATH, 1, False)
        assert condition.fully_covered
        assert condition.execution_count == 2

    def test_condition_outcome_must_be_bool(self, store: CoverageStore) -> None:
        with pytest.raises(ValidationError):
            store.track_condition(PATH, 1, 1)  # type: ignore[arg-type]


class TestLifecycle:
    """Tests for reset and full_reset."""

    def test_reset_keeps_code_maps(self, store: CoverageStore, code_map: CodeMap) -> None:
        store.track_line(PATH, 1)
        store.reset()
        assert len(store) == 0
        assert store.get_code_map(PATH) is code_map
        assert store.get_line_status(PATH, 2) is LineStatus.NON_EXECUTABLE

    def test_full_reset_drops_code_maps(self, store: CoverageStore) -> None:
        store.full_reset()
        assert store.get_code_map(PATH) is None


class TestValidation:
    """Tests for argument validation."""

    @pytest.mark.parametrize("line", [0, -1, "3", True, None])
    def test_bad_line(self, store: CoverageStore, line: object) -> None:
        with pytest.raises(ValidationError):
            store.track_line(PATH, line)  # type: ignore[arg-type]

    def test_bad_path(self, store: CoverageStore) -> None:
        with pytest.raises(ValidationError):
            store.track_line(None, 1)  # type: ignore[arg-type]

    def test_bad_id(self, store: CoverageStore) -> None:
        with pytest.raises(ValidationError):
            store.track_block(PATH, 0)
