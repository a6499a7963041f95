"""Module-level convenience API over a default CoverageSession.

For scripts and REPL use::

    from coverplane import api

    api.start({"source_dirs": ["src"]})
    import mypkg
    mypkg.main()
    api.stop()
    print(api.get_report_data().overall_pct)

Code that needs more than one session constructs ``CoverageSession``
directly; nothing here is used by the session itself.
"""

from __future__ import annotations

import os
from typing import Any

from coverplane.config.models import CoverageConfig
from coverplane.report.models import ReportData
from coverplane.session import CoverageSession
from coverplane.store.models import FileCoverageState

_session: CoverageSession | None = None


def get_session(config: CoverageConfig | dict[str, Any] | None = None) -> CoverageSession:
    """Return the default session, creating it on first use."""
    global _session
    if _session is None:
        _session = CoverageSession(config)
    return _session


def start(config: CoverageConfig | dict[str, Any] | None = None) -> CoverageSession:
    session = get_session()
    session.start(config)
    return session


def stop() -> None:
    """Stop the default session. A no-op when none was created."""
    if _session is not None:
        _session.stop()


def reset() -> None:
    if _session is not None:
        _session.reset()


def full_reset() -> None:
    if _session is not None:
        _session.full_reset()


def track_file(path: str | os.PathLike[str]) -> FileCoverageState:
    return get_session().track_file(path)


def was_line_executed(path: str | os.PathLike[str], line: int) -> bool:
    return get_session().was_line_executed(path, line)


def was_line_covered(path: str | os.PathLike[str], line: int) -> bool:
    return get_session().was_line_covered(path, line)


def mark_line_covered(path: str | os.PathLike[str], line: int) -> None:
    get_session().mark_line_covered(path, line)


def get_report_data() -> ReportData:
    return get_session().get_report_data()


def meets_threshold(threshold: float | None = None) -> bool:
    return get_session().meets_threshold(threshold)
