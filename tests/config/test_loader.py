"""Tests for config/loader.py module.

Covers:
- _load_yaml() and _deep_merge()
- load_config() precedence: kwargs > env > repo yaml > global yaml
- coverage_config_from()
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from coverplane.config.loader import (
    _deep_merge,
    _load_yaml,
    coverage_config_from,
    load_config,
)
from coverplane.config.models import CoverageConfig
from coverplane.core.errors import ConfigError


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path) -> Iterator[None]:
    """Point the global config at a file that does not exist."""
    with patch("coverplane.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "absent.yaml"):
        yield


def _write_repo_config(root: Path, text: str) -> None:
    config_dir = root / ".coverplane"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.yaml").write_text(text)


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert _load_yaml(tmp_path / "nope.yaml") == {}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert _load_yaml(path) == {}

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("coverage: [unclosed\n")
        with pytest.raises(ConfigError):
            _load_yaml(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            _load_yaml(path)


class TestDeepMerge:
    def test_nested(self) -> None:
        base = {"coverage": {"enabled": True, "threshold": 10}}
        override = {"coverage": {"threshold": 50}}
        assert _deep_merge(base, override) == {"coverage": {"enabled": True, "threshold": 50}}

    def test_does_not_mutate(self) -> None:
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config.coverage.enabled is True

    def test_repo_yaml(self, tmp_path: Path) -> None:
        _write_repo_config(tmp_path, "coverage:\n  track_blocks: false\n  threshold: 75\n")
        config = load_config(tmp_path)
        assert config.coverage.track_blocks is False
        assert config.coverage.threshold == 75.0

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_repo_config(tmp_path, "coverage:\n  threshold: 75\n")
        monkeypatch.setenv("COVERPLANE__COVERAGE__THRESHOLD", "40")
        config = load_config(tmp_path)
        assert config.coverage.threshold == 40.0

    def test_kwargs_override_everything(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("COVERPLANE__COVERAGE__THRESHOLD", "40")
        config = load_config(tmp_path, coverage={"threshold": 90})
        assert config.coverage.threshold == 90.0

    def test_invalid_value(self, tmp_path: Path) -> None:
        _write_repo_config(tmp_path, "coverage:\n  max_load_depth: -3\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestCoverageConfigFrom:
    def test_none(self) -> None:
        assert coverage_config_from(None) == CoverageConfig()

    def test_model_passthrough(self) -> None:
        config = CoverageConfig(track_blocks=False)
        assert coverage_config_from(config) is config

    def test_dict(self) -> None:
        config = coverage_config_from({"use_instrumentation": True, "unknown": 1})
        assert config.use_instrumentation is True

    def test_invalid_dict(self) -> None:
        with pytest.raises(ConfigError):
            coverage_config_from({"threshold": 500})
