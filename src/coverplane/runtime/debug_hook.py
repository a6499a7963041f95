"""Debug hook tracker: coverage from ``sys.settrace`` line events.

The global trace function sees a ``call`` event for every new frame. The
frame's filename is resolved once (tracked key or not tracked) and cached in
a plain dict, so the per-frame cost is one dict lookup. Untracked frames get
no local trace function and run at full speed.

Tracked frames get a ``_FrameTracer``. Line events are attributed to the
statement they belong to through ``CodeMap.line_map``; repeated events
inside one multi-line statement count once. Guard outcomes of ``if``/``elif``
/``while`` are inferred from the next statement that runs in the same frame:
inside the guard's body means true, anywhere else (or returning) means false.

Functions whose entry can't be seen as a line (lambdas, one-line bodies,
docstring-only bodies) are counted from ``call`` events, matched on
``co_firstlineno`` and ``co_name``.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from types import CodeType, FrameType
from typing import TYPE_CHECKING, Any

from coverplane.analysis.models import CodeMap, FunctionInfo, GuardInfo
from coverplane.core.logging import get_logger
from coverplane.runtime.recorder import LineRecorder

if TYPE_CHECKING:
    import structlog

TraceFunction = Callable[[FrameType, str, Any], Any]
FileResolver = Callable[[str], "str | None"]


class TrackerState(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(slots=True)
class _FileEntry:
    key: str
    code_map: CodeMap
    # (co_firstlineno, co_name) -> functions only visible through call events
    call_functions: dict[tuple[int, str], list[FunctionInfo]] = field(default_factory=dict)


def _call_table(code_map: CodeMap) -> dict[tuple[int, str], list[FunctionInfo]]:
    table: dict[tuple[int, str], list[FunctionInfo]] = {}
    for function in code_map.functions:
        if function.entry_line is not None:
            continue
        name = "<lambda>" if function.is_lambda else function.name
        table.setdefault((function.start_line, name), []).append(function)
    return table


def _pick_lambda(candidates: list[FunctionInfo], code: CodeType) -> FunctionInfo:
    """Tell apart several lambdas that start on one line by instruction columns."""
    for line, _end_line, col, _end_col in code.co_positions():
        if line is None or col is None:
            continue
        for function in candidates:
            span = function.body_span
            if span is None:
                continue
            start = (span[0], span[1])
            end = (span[2], span[3])
            if start <= (line, col) < end:
                return function
    return candidates[0]


class _FrameTracer:
    """Local trace function state for one tracked frame."""

    __slots__ = ("_recorder", "_key", "_line_map", "_guards", "_last", "_pending")

    def __init__(self, recorder: LineRecorder, entry: _FileEntry) -> None:
        self._recorder = recorder
        self._key = entry.key
        self._line_map = entry.code_map.line_map
        self._guards = entry.code_map.guards
        self._last: int | None = None
        self._pending: GuardInfo | None = None

    def trace(self, frame: FrameType, event: str, arg: Any) -> TraceFunction | None:
        if event == "line":
            statement = self._line_map.get(frame.f_lineno)
            if statement is None or statement == self._last:
                return self.trace
            pending = self._pending
            if pending is not None:
                self._recorder.hit_condition(
                    self._key, pending.condition_id, pending.contains(statement)
                )
            self._last = statement
            self._recorder.hit_line(self._key, statement)
            self._pending = self._guards.get(statement)
        elif event == "return":
            pending = self._pending
            if pending is not None:
                self._recorder.hit_condition(self._key, pending.condition_id, False)
                self._pending = None
        elif event == "exception":
            # The guard raised, so it produced no outcome
            self._pending = None
        return self.trace


class DebugHookTracker:
    """Installs and removes the ``sys.settrace`` hook.

    ``resolver`` maps a raw ``co_filename`` to the tracked key, or None when
    the file must not be traced (excluded, unanalyzable, coverplane itself).
    It is called once per distinct filename.
    """

    def __init__(
        self,
        recorder: LineRecorder,
        resolver: FileResolver,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._recorder = recorder
        self._resolver = resolver
        self._log = logger or get_logger("runtime.debug_hook")
        self._files: dict[str, _FileEntry | None] = {}
        self._previous: TraceFunction | None = None
        self._state = TrackerState.INACTIVE

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is TrackerState.ACTIVE

    def start(self) -> None:
        """Install the hook. Starting an active tracker is a no-op."""
        if self._state is TrackerState.ACTIVE:
            return
        self._previous = sys.gettrace()
        sys.settrace(self._trace_call)
        self._state = TrackerState.ACTIVE
        self._log.debug("debug_hook_started")

    def stop(self) -> None:
        """Remove the hook and restore whatever was installed before.

        Never raises. Stopping a tracker that never started changes nothing.
        """
        if self._state is not TrackerState.ACTIVE:
            return
        try:
            sys.settrace(self._previous)
        except Exception as e:  # noqa: BLE001
            self._log.error("debug_hook_restore_failed", error=str(e))
            try:
                sys.settrace(None)
            except Exception:  # noqa: BLE001
                self._log.error("debug_hook_clear_failed")
        finally:
            self._previous = None
            self._state = TrackerState.INACTIVE
            self._log.debug("debug_hook_stopped")

    def forget(self) -> None:
        """Drop the filename cache (after a reset)."""
        self._files.clear()

    def _entry(self, filename: str) -> _FileEntry | None:
        try:
            return self._files[filename]
        except KeyError:
            pass
        entry: _FileEntry | None = None
        key = self._resolver(filename)
        if key is not None:
            tracked = self._recorder.tracked(key)
            if tracked is not None:
                entry = _FileEntry(key, tracked.code_map, _call_table(tracked.code_map))
        self._files[filename] = entry
        return entry

    def _trace_call(self, frame: FrameType, event: str, arg: Any) -> TraceFunction | None:
        if event != "call":
            return None
        code = frame.f_code
        entry = self._entry(code.co_filename)
        if entry is None:
            return None
        candidates = entry.call_functions.get((code.co_firstlineno, code.co_name))
        if candidates:
            function = candidates[0] if len(candidates) == 1 else _pick_lambda(candidates, code)
            self._recorder.hit_function(entry.key, function.id)
        return _FrameTracer(self._recorder, entry).trace
