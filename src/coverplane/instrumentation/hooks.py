"""Tracking callables bound into instrumented module namespaces.

Every instrumented module gets its own ``ModuleHooks`` carrying the module's
normalized path, so a rewritten line only passes small integers. The
callables are bound once, before the module body runs, and are plain
attribute lookups from then on: nothing goes back through the import system
while instrumented code executes.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any, TypeVar

from coverplane.config.constants import (
    BASE_HOOK,
    BLOCK_HOOK,
    COND_HOOK,
    DONE_HOOK,
    ENTER_HOOK,
    FUNC_HOOK,
    LINE_HOOK,
    PASS_HOOK,
    TEST_HOOK,
)
from coverplane.runtime.recorder import LineRecorder

T = TypeVar("T")


class ModuleHooks:
    """Hook callables for one instrumented file."""

    __slots__ = ("_recorder", "_key")

    def __init__(self, recorder: LineRecorder, key: str) -> None:
        self._recorder = recorder
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def line(self, line: int) -> None:
        self._recorder.hit_line(self._key, line)

    def test(self, line: int, condition_id: int, value: T) -> T:
        self._recorder.hit_line(self._key, line)
        self._recorder.hit_condition(self._key, condition_id, bool(value))
        return value

    def cond(self, condition_id: int, value: T) -> T:
        self._recorder.hit_condition(self._key, condition_id, bool(value))
        return value

    def passthrough(self, line: int, value: T) -> T:
        self._recorder.hit_line(self._key, line)
        return value

    def function(self, function_id: int) -> None:
        # Returns None so ``hook(F) or (body)`` evaluates to the lambda body
        self._recorder.hit_function(self._key, function_id)

    def enter(self, function_id: int) -> None:
        self._recorder.enter_function(self._key, function_id)

    def block(self, block_id: int) -> None:
        self._recorder.hit_block(self._key, block_id)

    def base(self, line: int) -> type:
        self._recorder.hit_line(self._key, line)
        return object

    def done(self) -> None:
        self._recorder.module_done(self._key)


def prepare_namespace(namespace: MutableMapping[str, Any], hooks: ModuleHooks) -> None:
    """Bind the tracking callables into a module's globals."""
    namespace[LINE_HOOK] = hooks.line
    namespace[TEST_HOOK] = hooks.test
    namespace[COND_HOOK] = hooks.cond
    namespace[PASS_HOOK] = hooks.passthrough
    namespace[FUNC_HOOK] = hooks.function
    namespace[ENTER_HOOK] = hooks.enter
    namespace[BLOCK_HOOK] = hooks.block
    namespace[BASE_HOOK] = hooks.base
    namespace[DONE_HOOK] = hooks.done
