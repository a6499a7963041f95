"""pytest integration.

Enabled with ``--coverplane``. Each test call opens an assertion window; a
passing assertion promotes everything executed in the window to covered.
With ``enable_assertion_pass_hook = true`` in the pytest ini every passing
``assert`` promotes; without it the whole window is promoted once when the
test call passes.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from coverplane.config.loader import load_config
from coverplane.config.models import CoverageConfig
from coverplane.core.errors import CoverPlaneError
from coverplane.core.logging import get_logger
from coverplane.report.text import build_text_summary
from coverplane.session import CoverageSession

log = get_logger("pytest_plugin")

# Test modules are rewritten by pytest itself; measuring them is noise.
DEFAULT_TEST_EXCLUDES: tuple[str, ...] = (
    "*/test_*.py",
    "*/*_test.py",
    "*/conftest.py",
)

PLUGIN_NAME = "coverplane-session"


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("coverplane", "assertion-validated coverage")
    group.addoption(
        "--coverplane",
        action="store_true",
        default=False,
        help="Measure coverage of the code under test.",
    )
    group.addoption(
        "--coverplane-instrument",
        action="store_true",
        default=False,
        help="Rewrite imported modules instead of using sys.settrace.",
    )
    group.addoption(
        "--coverplane-source",
        action="append",
        default=[],
        metavar="DIR",
        help="Directory to measure (repeatable). Defaults to the rootdir.",
    )
    group.addoption(
        "--coverplane-fail-under",
        type=float,
        default=None,
        metavar="PCT",
        help="Fail the run when overall line coverage is below PCT.",
    )


def build_config(config: pytest.Config) -> CoverageConfig:
    """CoverageConfig for a pytest run: repo config plus command-line options."""
    root = Path(config.rootpath)
    base = load_config(root).coverage
    sources = [str(Path(s).resolve()) for s in config.getoption("coverplane_source")]
    return base.model_copy(
        update={
            "test_mode": True,
            "use_instrumentation": config.getoption("coverplane_instrument")
            or base.use_instrumentation,
            "source_dirs": sources or [str(root)],
            "exclude_patterns": [*base.exclude_patterns, *DEFAULT_TEST_EXCLUDES],
        }
    )


def pytest_configure(config: pytest.Config) -> None:
    if not config.getoption("coverplane"):
        return
    try:
        options = build_config(config)
    except CoverPlaneError as e:
        raise pytest.UsageError(f"coverplane: {e.message}") from e
    plugin = CoverPlanePlugin(
        options,
        fail_under=config.getoption("coverplane_fail_under"),
        assertion_hook=bool(config.getini("enable_assertion_pass_hook")),
    )
    config.pluginmanager.register(plugin, PLUGIN_NAME)


class CoverPlanePlugin:
    """Drives one CoverageSession across a pytest run."""

    def __init__(
        self,
        options: CoverageConfig | dict[str, Any] | None = None,
        *,
        fail_under: float | None = None,
        assertion_hook: bool = False,
        session: CoverageSession | None = None,
    ) -> None:
        self.session = session or CoverageSession(options)
        self.fail_under = fail_under
        self.assertion_hook = assertion_hook
        self.below_threshold = False

    def pytest_sessionstart(self, session: pytest.Session) -> None:
        self.session.start()

    @pytest.hookimpl(wrapper=True)
    def pytest_runtest_call(self, item: pytest.Item) -> Generator[None, Any, Any]:
        self.session.begin_test()
        try:
            result = yield
            if not self.assertion_hook:
                self.session.on_assertion_passed()
            return result
        finally:
            self.session.end_test()

    def pytest_assertion_pass(self, item: pytest.Item, lineno: int, orig: str, expl: str) -> None:
        self.session.on_assertion_passed()

    def pytest_sessionfinish(self, session: pytest.Session, exitstatus: int) -> None:
        self.session.stop()
        if self.fail_under is None:
            return
        if not self.session.meets_threshold(self.fail_under):
            self.below_threshold = True
            if session.exitstatus == pytest.ExitCode.OK:
                session.exitstatus = pytest.ExitCode.TESTS_FAILED
            log.info("coverage_below_threshold", fail_under=self.fail_under)

    def pytest_terminal_summary(self, terminalreporter: Any, exitstatus: int, config: pytest.Config) -> None:
        report = self.session.get_report_data()
        root = str(config.rootpath)
        terminalreporter.write_sep("-", "coverplane")
        for line in build_text_summary(report, root=root).splitlines():
            terminalreporter.write_line(line)
        if self.below_threshold:
            terminalreporter.write_line(
                f"FAIL: coverage {report.overall_pct:.1f}% is below {self.fail_under:.1f}%",
                red=True,
            )
