"""Line-hit recorder shared by both runtime observers.

The debug hook and the instrumented code report the same primitive events
(a statement line ran, a function or block was entered, a condition produced
an outcome). The recorder turns those into store updates and derives the
rest from the code map, so the two observers can't drift apart:

- a line hit on a block's entry line enters the block
- a line hit on a function's entry line enters the function
- entering a block opened by a bare keyword (``else:``, ``try:``) marks the
  keyword line executed when such lines count as executable
- a line hit can settle deferred definition headers (instrumentation only)

The recorder also keeps the current test window: what ran since the last
passing assertion, so an assertion can promote it to covered.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from coverplane.analysis.models import CodeMap
from coverplane.config.constants import MODULE_DONE_LINE
from coverplane.config.models import CoverageConfig
from coverplane.core.logging import get_logger
from coverplane.store.store import CoverageStore

if TYPE_CHECKING:
    import structlog


@dataclass(slots=True)
class TrackedFile:
    key: str
    code_map: CodeMap
    deferred: Mapping[int, tuple[int, ...]] = field(default_factory=dict)


@dataclass(slots=True)
class AssertionWindow:
    """What ran since the window opened or since the last promotion."""

    lines: set[tuple[str, int]] = field(default_factory=set)
    functions: set[tuple[str, int]] = field(default_factory=set)
    blocks: set[tuple[str, int]] = field(default_factory=set)

    def clear(self) -> None:
        self.lines.clear()
        self.functions.clear()
        self.blocks.clear()

    def __len__(self) -> int:
        return len(self.lines) + len(self.functions) + len(self.blocks)


class LineRecorder:
    """Routes observed execution into a CoverageStore."""

    def __init__(
        self,
        store: CoverageStore,
        config: CoverageConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._log = logger or get_logger("runtime.recorder")
        self._files: dict[str, TrackedFile] = {}
        self._window: AssertionWindow | None = None
        self._keywords_executable = config.control_flow_keywords_executable
        self._track_blocks = config.track_blocks
        self._track_conditions = config.track_conditions

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        key: str,
        code_map: CodeMap,
        deferred: Mapping[int, tuple[int, ...]] | None = None,
    ) -> TrackedFile:
        tracked = TrackedFile(key, code_map, deferred or {})
        self._files[key] = tracked
        return tracked

    def tracked(self, key: str) -> TrackedFile | None:
        return self._files.get(key)

    def clear(self) -> None:
        self._files.clear()
        if self._window is not None:
            self._window.clear()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def hit_line(self, key: str, line: int) -> None:
        tracked = self._files.get(key)
        if tracked is None:
            return
        self._store.track_line_fast(key, line)
        if self._window is not None:
            self._window.lines.add((key, line))
        code_map = tracked.code_map
        if self._track_blocks:
            for block_id in code_map.block_entries.get(line, ()):
                self.hit_block(key, block_id)
        for function_id in code_map.function_entries.get(line, ()):
            self.hit_function(key, function_id)
        headers = tracked.deferred.get(line)
        if headers:
            self._settle(key, headers)

    def hit_block(self, key: str, block_id: int) -> None:
        tracked = self._files.get(key)
        if tracked is None or not self._track_blocks:
            return
        self._store.track_block(key, block_id)
        if self._window is not None:
            self._window.blocks.add((key, block_id))
        if self._keywords_executable:
            start = tracked.code_map.block(block_id).start_line
            if start in tracked.code_map.keyword_lines:
                self._settle(key, (start,), in_window=True)

    def hit_function(self, key: str, function_id: int) -> None:
        if key not in self._files:
            return
        self._store.track_function(key, function_id)
        if self._window is not None:
            self._window.functions.add((key, function_id))

    def enter_function(self, key: str, function_id: int) -> None:
        """A function body started running, which also proves its header ran."""
        tracked = self._files.get(key)
        if tracked is None:
            return
        self.hit_function(key, function_id)
        self._settle(key, (tracked.code_map.function(function_id).start_line,))

    def hit_condition(self, key: str, condition_id: int, outcome: bool) -> None:
        if not self._track_conditions or key not in self._files:
            return
        self._store.track_condition(key, condition_id, bool(outcome))

    def module_done(self, key: str) -> None:
        """The body of an instrumented module ran to its end."""
        tracked = self._files.get(key)
        if tracked is None:
            return
        headers = tracked.deferred.get(MODULE_DONE_LINE)
        if headers:
            self._settle(key, headers)

    def _settle(self, key: str, lines: tuple[int, ...], *, in_window: bool = False) -> None:
        """Mark lines whose execution is inferred rather than observed.

        A definition header runs once, when the definition does, so it joins
        the test window only if it is newly executed. Keyword lines of an
        entered block (``in_window``) always join.
        """
        for line in lines:
            fresh = self._store.ensure_line_executed(key, line)
            if self._window is not None and (fresh or in_window):
                self._window.lines.add((key, line))

    # ------------------------------------------------------------------
    # Test window
    # ------------------------------------------------------------------

    @property
    def window_open(self) -> bool:
        return self._window is not None

    def open_window(self) -> None:
        self._window = AssertionWindow()

    def close_window(self) -> None:
        self._window = None

    def promote_window(self) -> int:
        """Mark everything in the open window covered; return how many items."""
        window = self._window
        if window is None:
            return 0
        promoted = len(window)
        for key, line in window.lines:
            self._store.mark_line_covered(key, line)
        for key, function_id in window.functions:
            self._store.mark_function_covered(key, function_id)
        for key, block_id in window.blocks:
            self._store.mark_block_covered(key, block_id)
        window.clear()
        self._log.debug("window_promoted", items=promoted)
        return promoted
