"""Runtime observation: the shared line recorder and the debug hook tracker."""

from coverplane.runtime.debug_hook import DebugHookTracker, TrackerState
from coverplane.runtime.recorder import AssertionWindow, LineRecorder, TrackedFile

__all__ = [
    "AssertionWindow",
    "DebugHookTracker",
    "LineRecorder",
    "TrackedFile",
    "TrackerState",
]
