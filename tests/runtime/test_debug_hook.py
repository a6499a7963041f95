"""Tests for runtime/debug_hook.py module.

Covers:
- line, function and block recording through sys.settrace
- guard outcome inference
- lambdas counted from call events
- start/stop restoring the previous trace function
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from types import ModuleType

import pytest

from coverplane.analysis.analyzer import StaticAnalyzer
from coverplane.config.models import CoverageConfig
from coverplane.core.paths import normalize_path
from coverplane.runtime.debug_hook import DebugHookTracker, TrackerState
from coverplane.runtime.recorder import LineRecorder
from coverplane.store.store import CoverageStore

SOURCE = '''
def classify(x):
    if x > 0:
        return "pos"
    return "non-pos"

square = lambda v: v * v
pair = (lambda a: a + 1, lambda b: b * 2)

def documented():
    """Only a docstring."""
'''


class Harness:
    def __init__(self, path: Path) -> None:
        self.key = normalize_path(path)
        config = CoverageConfig()
        self.store = CoverageStore()
        self.code_map = StaticAnalyzer(config).analyze_file(path)
        self.store.initialize_file(self.key, self.code_map)
        self.store.activate_file(self.key)
        self.recorder = LineRecorder(self.store, config)
        self.recorder.register(self.key, self.code_map)
        self.resolved: list[str] = []
        self.tracker = DebugHookTracker(self.recorder, self.resolve)

    def resolve(self, filename: str) -> str | None:
        self.resolved.append(filename)
        return self.key if normalize_path(filename) == self.key else None

    def function(self, name: str) -> int:
        return next(f.id for f in self.code_map.functions if f.name == name)


@pytest.fixture
def harness(
    write_source: Callable[[str, str], Path],
    load_module: Callable[[Path, str], ModuleType],
    restore_import_state: None,
) -> tuple[Harness, ModuleType]:
    path = write_source("traced_sample.py", SOURCE)
    harness = Harness(path)
    harness.tracker.start()
    try:
        module = load_module(path, "traced_sample")
    finally:
        harness.tracker.stop()
    return harness, module


def run_traced(harness: Harness, fn: Callable[[], object]) -> None:
    harness.tracker.start()
    try:
        fn()
    finally:
        harness.tracker.stop()


class TestLines:
    """Tests for line recording."""

    def test_module_lines(self, harness) -> None:
        h, _ = harness
        state = h.store.get_file(h.key)
        assert {1, 6, 7, 9} <= set(state.line_execution_count)
        assert 3 not in state.line_execution_count

    def test_function_body(self, harness) -> None:
        h, module = harness
        run_traced(h, lambda: module.classify(5))
        state = h.store.get_file(h.key)
        assert state.line_execution_count[2] == 1
        assert state.line_execution_count[3] == 1
        assert 4 not in state.line_execution_count
        assert state.function_state[h.function("classify")].executed
        assert state.block_state[1].executed

    def test_untraced_outside_start(self, harness) -> None:
        h, module = harness
        module.classify(5)
        assert 3 not in h.store.get_file(h.key).line_execution_count

    def test_filename_resolved_once(self, harness) -> None:
        h, module = harness
        run_traced(h, lambda: (module.classify(1), module.classify(2)))
        assert h.resolved.count(module.__file__) == 1


class TestGuards:
    """Tests for guard outcome inference."""

    def test_true_outcome(self, harness) -> None:
        h, module = harness
        run_traced(h, lambda: module.classify(1))
        condition = h.store.get_file(h.key).condition_state[1]
        assert condition.executed_true
        assert not condition.executed_false

    def test_both_outcomes(self, harness) -> None:
        h, module = harness
        run_traced(h, lambda: (module.classify(1), module.classify(-1)))
        condition = h.store.get_file(h.key).condition_state[1]
        assert condition.fully_covered
        assert condition.execution_count == 2


class TestCallEvents:
    """Tests for functions seen only through call events."""

    def test_lambda(self, harness) -> None:
        h, module = harness
        state = h.store.get_file(h.key)
        assert h.function("square") not in state.function_state
        run_traced(h, lambda: module.square(3))
        assert state.function_state[h.function("square")].executed

    def test_two_lambdas_on_one_line(self, harness) -> None:
        h, module = harness
        run_traced(h, lambda: module.pair[1](3))
        state = h.store.get_file(h.key)
        lambdas = [f for f in h.code_map.functions if f.start_line == 7]
        assert len(lambdas) == 2
        assert lambdas[0].id not in state.function_state
        assert state.function_state[lambdas[1].id].executed

    def test_docstring_only_function(self, harness) -> None:
        h, module = harness
        run_traced(h, module.documented)
        assert h.store.get_file(h.key).function_state[h.function("documented")].executed


class TestLifecycle:
    """Tests for installing and removing the hook."""

    def test_stop_restores_previous(self, restore_import_state: None) -> None:
        def previous(frame, event, arg):
            return None

        tracker = DebugHookTracker(
            LineRecorder(CoverageStore(), CoverageConfig()), lambda filename: None
        )
        sys.settrace(previous)
        try:
            tracker.start()
            assert sys.gettrace() is not previous
            assert tracker.state is TrackerState.ACTIVE
            tracker.stop()
            assert sys.gettrace() is previous
        finally:
            sys.settrace(None)

    def test_stop_without_start(self) -> None:
        tracker = DebugHookTracker(
            LineRecorder(CoverageStore(), CoverageConfig()), lambda filename: None
        )
        trace = sys.gettrace()
        tracker.stop()
        assert sys.gettrace() is trace
        assert not tracker.active

    def test_start_twice(self, restore_import_state: None) -> None:
        tracker = DebugHookTracker(
            LineRecorder(CoverageStore(), CoverageConfig()), lambda filename: None
        )
        previous = sys.gettrace()
        tracker.start()
        tracker.start()
        tracker.stop()
        assert sys.gettrace() is previous
