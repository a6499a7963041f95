"""Coverage data store."""

from coverplane.store.models import (
    ConditionState,
    ElementState,
    FileCoverageState,
    LineStatus,
    TrackOptions,
)
from coverplane.store.store import CoverageStore

__all__ = [
    "CoverageStore",
    "ConditionState",
    "ElementState",
    "FileCoverageState",
    "LineStatus",
    "TrackOptions",
]
