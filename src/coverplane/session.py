"""CoverageSession: one measurement run, from start() to stop().

The session owns the store and wires every other component to it. Nothing
else holds coverage state, and nothing global exists beyond the two hook
points Python offers (the trace function and ``sys.meta_path``), which the
session installs in ``start()`` and restores in ``stop()``.

Lifecycle: created -> running -> stopped (-> running again). ``reset()``
zeroes the data of a session without forgetting which files it tracks;
``full_reset()`` also forgets every code map.
"""

from __future__ import annotations

import builtins
import os
import runpy
import sys
from collections.abc import Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any

from coverplane.analysis.analyzer import StaticAnalyzer
from coverplane.analysis.models import AnalysisOutcome, CodeMap
from coverplane.config.loader import coverage_config_from
from coverplane.config.models import CoverageConfig
from coverplane.core.excludes import ExclusionMatcher, is_python_source
from coverplane.core.logging import clear_session_id, get_logger, set_session_id
from coverplane.core.paths import is_pseudo_filename, normalize_path
from coverplane.instrumentation.engine import InstrumentationEngine, InstrumentedModule
from coverplane.instrumentation.hooks import ModuleHooks, prepare_namespace
from coverplane.instrumentation.loader import ModuleLoadInterceptor
from coverplane.report.assembler import assemble
from coverplane.report.models import ReportData
from coverplane.report.validation import ValidationResult, validate_report
from coverplane.runtime.debug_hook import DebugHookTracker
from coverplane.runtime.recorder import LineRecorder
from coverplane.store.models import FileCoverageState, LineStatus
from coverplane.store.store import CoverageStore

if TYPE_CHECKING:
    import structlog


class SessionState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class CoverageSession:
    """Coverage measurement for one thread of execution."""

    def __init__(
        self,
        config: CoverageConfig | dict[str, Any] | None = None,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._log = logger or get_logger("session")
        self.store = CoverageStore()
        self._state = SessionState.CREATED
        self._session_id: str | None = None
        self._build(coverage_config_from(config))

    def _build(self, config: CoverageConfig) -> None:
        self._config = config
        self.analyzer = StaticAnalyzer(config, logger=self._log.bind(component="analysis"))
        self.recorder = LineRecorder(
            self.store, config, logger=self._log.bind(component="recorder")
        )
        self.matcher = ExclusionMatcher(
            exclude_patterns=config.exclude_patterns,
            include_patterns=config.include_patterns,
            source_dirs=config.source_dirs,
        )
        self._tracker: DebugHookTracker | None = None
        self._interceptor: ModuleLoadInterceptor | None = None
        self._engine: InstrumentationEngine | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> CoverageConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def engine(self) -> InstrumentationEngine:
        if self._engine is None:
            self._engine = InstrumentationEngine(
                self.analyzer, logger=self._log.bind(component="instrumentation")
            )
        return self._engine

    @property
    def interceptor(self) -> ModuleLoadInterceptor | None:
        return self._interceptor

    @property
    def tracker(self) -> DebugHookTracker | None:
        return self._tracker

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, config: CoverageConfig | dict[str, Any] | None = None) -> None:
        """Begin observing. A new ``config`` replaces the current one.

        Starting a running session is a no-op. A disabled config leaves the
        session idle.
        """
        if self.running:
            return
        if config is not None:
            self._build(coverage_config_from(config))
        if not self._config.enabled:
            self._log.info("coverage_disabled")
            return

        self._session_id = set_session_id()
        if self._config.discover_uncovered:
            self.discover()

        if self._config.use_instrumentation:
            if self._interceptor is None:
                self._interceptor = ModuleLoadInterceptor(
                    self.engine,
                    self._register_instrumented,
                    self.matcher,
                    max_depth=self._config.max_load_depth,
                    logger=self._log.bind(component="loader"),
                )
            self._interceptor.hook()
        else:
            if self._tracker is None:
                self._tracker = DebugHookTracker(
                    self.recorder, self._resolve, logger=self._log.bind(component="debug_hook")
                )
            self._tracker.start()
        self._state = SessionState.RUNNING
        self._log.info(
            "coverage_started",
            mode="instrumentation" if self._config.use_instrumentation else "debug_hook",
        )

    def stop(self) -> None:
        """Restore the original trace function and import machinery.

        Never raises, and is a no-op on a session that was never started.
        """
        if self._state is not SessionState.RUNNING:
            return
        try:
            if self._tracker is not None:
                self._tracker.stop()
            if self._interceptor is not None:
                self._interceptor.unhook()
        except Exception as e:  # noqa: BLE001
            self._log.error("coverage_stop_failed", error=str(e), exc_info=True)
        finally:
            self.recorder.close_window()
            self._state = SessionState.STOPPED
            self._log.info("coverage_stopped", files=len(self.store.get_active_files()))
            clear_session_id()

    def reset(self) -> None:
        """Zero all coverage data. Tracked files stay tracked."""
        tracked = [(key, self.store.get_code_map(key)) for key in self.store.get_active_files()]
        self.store.reset()
        for key, code_map in tracked:
            self.store.initialize_file(key, code_map)
            self.store.activate_file(key)
        self._log.debug("coverage_reset", files=len(tracked))

    def full_reset(self) -> None:
        """Drop all data, every code map and every file registration."""
        self.store.full_reset()
        self.analyzer.clear_cache()
        self.recorder.clear()
        if self._tracker is not None:
            self._tracker.forget()
        if self._interceptor is not None:
            self._interceptor.invalidate_caches()
        self._log.debug("coverage_full_reset")

    def __enter__(self) -> CoverageSession:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def track_file(self, path: str | os.PathLike[str]) -> FileCoverageState:
        """Analyze ``path`` and include it in reports.

        A file that fails analysis is still included, as unanalyzed.
        """
        key = normalize_path(path)
        tracked = self.recorder.tracked(key)
        if tracked is not None:
            return self.store.activate_file(key)
        outcome = self.analyzer.try_analyze(key)
        if outcome.code_map is not None:
            self.store.attach_code_map(key, outcome.code_map)
            self.recorder.register(key, outcome.code_map)
        if outcome.error is not None:
            self.store.record_analysis_error(key, outcome.error.message)
        return self.store.activate_file(key)

    def discover(self) -> int:
        """Track every Python file below ``source_dirs``; return how many."""
        count = 0
        for key in self._walk_sources():
            if self.store.get_file(key) is not None:
                continue
            self.track_file(key)
            count += 1
        self._log.debug("sources_discovered", files=count)
        return count

    def _walk_sources(self) -> Iterator[str]:
        for root in self.matcher.source_dirs:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames[:] = sorted(d for d in dirnames if not self.matcher.should_prune_dir(d))
                for filename in sorted(filenames):
                    if not is_python_source(filename):
                        continue
                    key = normalize_path(os.path.join(dirpath, filename))
                    if not self.matcher.is_excluded(key):
                        yield key

    def _resolve(self, filename: str) -> str | None:
        """Debug hook resolver: raw ``co_filename`` -> tracked key or None."""
        if is_pseudo_filename(filename):
            return None
        key = normalize_path(filename)
        if self.recorder.tracked(key) is not None:
            self.store.activate_file(key)
            return key
        if self.matcher.is_excluded(key) or not os.path.isfile(key):
            return None
        outcome = self.analyzer.try_analyze(key)
        if outcome.code_map is None or not outcome.code_map.parsed:
            self._file_failed(key, outcome)
            return None
        self.store.attach_code_map(key, outcome.code_map)
        self.store.activate_file(key)
        self.recorder.register(key, outcome.code_map)
        return key

    def _register_instrumented(self, module: InstrumentedModule) -> ModuleHooks:
        key = module.path
        self.store.attach_code_map(key, module.code_map)
        self.store.activate_file(key)
        self.recorder.register(key, module.code_map, module.deferred)
        return ModuleHooks(self.recorder, key)

    def _file_failed(self, key: str, outcome: AnalysisOutcome) -> None:
        if outcome.code_map is not None:
            self.store.attach_code_map(key, outcome.code_map)
        error = outcome.error
        message = error.message if error is not None else "analysis failed"
        self.store.record_analysis_error(key, message)
        self.store.activate_file(key)
        level = self._log.debug if self._config.test_mode else self._log.warning
        level("file_not_tracked", path=key, reason=message)

    # ------------------------------------------------------------------
    # Running code
    # ------------------------------------------------------------------

    def instrument(self, path: str | os.PathLike[str]) -> tuple[InstrumentedModule, ModuleHooks]:
        """Instrument ``path`` outside the import system and register it."""
        module = self.engine.instrument_file(path)
        return module, self._register_instrumented(module)

    def run_path(
        self, path: str | os.PathLike[str], *, run_name: str = "__main__"
    ) -> dict[str, Any]:
        """Execute a script under this session and return its globals."""
        filename = os.fspath(path)
        if not self.running or not self._config.use_instrumentation:
            return runpy.run_path(filename, run_name=run_name)
        module, hooks = self.instrument(filename)
        namespace: dict[str, Any] = {
            "__name__": run_name,
            "__file__": filename,
            "__package__": None,
            "__builtins__": builtins,
        }
        prepare_namespace(namespace, hooks)
        sys.path.insert(0, os.path.dirname(os.path.abspath(filename)))
        try:
            exec(module.code, namespace)
        finally:
            sys.path.pop(0)
        return namespace

    # ------------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------------

    def begin_test(self) -> None:
        """Open the window of lines an assertion can promote to covered."""
        self.recorder.open_window()

    def end_test(self) -> None:
        self.recorder.close_window()

    def on_assertion_passed(
        self, path: str | os.PathLike[str] | None = None, line: int | None = None
    ) -> int:
        """Promote everything executed in the current window to covered.

        The assertion's own line is promoted too when its file is tracked.
        Returns the number of promoted items.
        """
        promoted = self.recorder.promote_window()
        if path is not None and line is not None:
            key = normalize_path(path)
            if self.recorder.tracked(key) is not None:
                self.store.mark_line_covered(key, line)
                promoted += 1
        return promoted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def was_line_executed(self, path: str | os.PathLike[str], line: int) -> bool:
        return self.store.was_line_executed(path, line)

    def was_line_covered(self, path: str | os.PathLike[str], line: int) -> bool:
        return self.store.was_line_covered(path, line)

    def mark_line_covered(self, path: str | os.PathLike[str], line: int) -> None:
        self.store.mark_line_covered(path, line)

    def get_line_status(self, path: str | os.PathLike[str], line: int) -> LineStatus:
        return self.store.get_line_status(path, line)

    def code_maps(self) -> dict[str, CodeMap]:
        """Code maps of the active files."""
        maps = {}
        for key in self.store.get_active_files():
            code_map = self.store.get_code_map(key)
            if code_map is not None:
                maps[key] = code_map
        return maps

    def get_report_data(self) -> ReportData:
        return assemble(self.store)

    def validate(self, report: ReportData | None = None) -> ValidationResult:
        report = report if report is not None else self.get_report_data()
        return validate_report(report, self.code_maps(), config=self._config)

    def meets_threshold(self, threshold: float | None = None) -> bool:
        """Overall line coverage is at least ``threshold`` percent."""
        limit = self._config.threshold if threshold is None else threshold
        return self.get_report_data().overall_pct >= limit
