"""Tests for pytest_plugin.py module.

Covers:
- build_config from pytest options
- plugin registration in pytest_configure
- the per-test assertion window around pytest_runtest_call
- threshold handling and the terminal summary
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from coverplane.pytest_plugin import (
    DEFAULT_TEST_EXCLUDES,
    PLUGIN_NAME,
    CoverPlanePlugin,
    build_config,
    pytest_configure,
)
from coverplane.report.models import ReportData


def make_config(tmp_path: Path, **options: object) -> MagicMock:
    values = {
        "coverplane": True,
        "coverplane_instrument": False,
        "coverplane_source": [],
        "coverplane_fail_under": None,
        **options,
    }
    config = MagicMock()
    config.rootpath = tmp_path
    config.getoption.side_effect = values.__getitem__
    config.getini.return_value = False
    return config


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path) -> Iterator[None]:
    with patch("coverplane.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "missing.yaml"):
        yield


@pytest.fixture
def session() -> MagicMock:
    session = MagicMock()
    session.get_report_data.return_value = ReportData()
    return session


class TestBuildConfig:
    """Tests for build_config."""

    def test_defaults(self, tmp_path: Path) -> None:
        options = build_config(make_config(tmp_path))
        assert options.test_mode
        assert not options.use_instrumentation
        assert options.source_dirs == [str(tmp_path)]
        for pattern in DEFAULT_TEST_EXCLUDES:
            assert pattern in options.exclude_patterns

    def test_options(self, tmp_path: Path) -> None:
        src = tmp_path / "src"
        src.mkdir()
        options = build_config(
            make_config(tmp_path, coverplane_instrument=True, coverplane_source=[str(src)])
        )
        assert options.use_instrumentation
        assert options.source_dirs == [str(src.resolve())]


class TestConfigure:
    """Tests for pytest_configure."""

    def test_disabled(self, tmp_path: Path) -> None:
        config = make_config(tmp_path, coverplane=False)
        pytest_configure(config)
        config.pluginmanager.register.assert_not_called()

    def test_registers_plugin(self, tmp_path: Path) -> None:
        config = make_config(tmp_path, coverplane_fail_under=75.0)
        pytest_configure(config)
        plugin, name = config.pluginmanager.register.call_args.args
        assert name == PLUGIN_NAME
        assert isinstance(plugin, CoverPlanePlugin)
        assert plugin.fail_under == 75.0
        assert plugin.session.config.test_mode

    def test_invalid_config_is_usage_error(self, tmp_path: Path) -> None:
        config_dir = tmp_path / ".coverplane"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("coverage:\n  max_file_size: -1\n")
        with pytest.raises(pytest.UsageError):
            pytest_configure(make_config(tmp_path))


class TestRuntestCall:
    """Tests for the window opened around each test call."""

    def test_passing_test_promotes(self, session: MagicMock) -> None:
        plugin = CoverPlanePlugin(session=session)
        hook = plugin.pytest_runtest_call(MagicMock())
        next(hook)
        session.begin_test.assert_called_once()
        with pytest.raises(StopIteration):
            hook.send(None)
        session.on_assertion_passed.assert_called_once()
        session.end_test.assert_called_once()

    def test_failing_test_does_not_promote(self, session: MagicMock) -> None:
        plugin = CoverPlanePlugin(session=session)
        hook = plugin.pytest_runtest_call(MagicMock())
        next(hook)
        with pytest.raises(AssertionError):
            hook.throw(AssertionError("boom"))
        session.on_assertion_passed.assert_not_called()
        session.end_test.assert_called_once()

    def test_assertion_hook_promotes_per_assert(self, session: MagicMock) -> None:
        plugin = CoverPlanePlugin(session=session, assertion_hook=True)
        hook = plugin.pytest_runtest_call(MagicMock())
        next(hook)
        plugin.pytest_assertion_pass(MagicMock(), 3, "x", "x")
        with pytest.raises(StopIteration):
            hook.send(None)
        session.on_assertion_passed.assert_called_once()


class TestSession:
    """Tests for session start, finish and summary."""

    def test_sessionstart(self, session: MagicMock) -> None:
        CoverPlanePlugin(session=session).pytest_sessionstart(MagicMock())
        session.start.assert_called_once()

    def test_below_threshold_fails_run(self, session: MagicMock) -> None:
        session.meets_threshold.return_value = False
        plugin = CoverPlanePlugin(session=session, fail_under=80.0)
        pytest_session = SimpleNamespace(exitstatus=pytest.ExitCode.OK)
        plugin.pytest_sessionfinish(pytest_session, 0)
        session.stop.assert_called_once()
        session.meets_threshold.assert_called_once_with(80.0)
        assert plugin.below_threshold
        assert pytest_session.exitstatus == pytest.ExitCode.TESTS_FAILED

    def test_failed_run_keeps_status(self, session: MagicMock) -> None:
        session.meets_threshold.return_value = False
        plugin = CoverPlanePlugin(session=session, fail_under=80.0)
        pytest_session = SimpleNamespace(exitstatus=pytest.ExitCode.INTERRUPTED)
        plugin.pytest_sessionfinish(pytest_session, 2)
        assert pytest_session.exitstatus == pytest.ExitCode.INTERRUPTED

    def test_no_threshold(self, session: MagicMock) -> None:
        plugin = CoverPlanePlugin(session=session)
        plugin.pytest_sessionfinish(SimpleNamespace(exitstatus=pytest.ExitCode.OK), 0)
        session.meets_threshold.assert_not_called()
        assert not plugin.below_threshold

    def test_terminal_summary(self, session: MagicMock, tmp_path: Path) -> None:
        plugin = CoverPlanePlugin(session=session, fail_under=80.0)
        plugin.below_threshold = True
        reporter = MagicMock()
        plugin.pytest_terminal_summary(reporter, 0, make_config(tmp_path))
        reporter.write_sep.assert_called_once_with("-", "coverplane")
        lines = [c.args[0] for c in reporter.write_line.call_args_list]
        assert lines[0].startswith("TOTAL: 0/0 lines covered")
        assert lines[-1] == "FAIL: coverage 0.0% is below 80.0%"
        assert reporter.write_line.call_args_list[-1].kwargs == {"red": True}
