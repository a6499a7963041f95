"""Tests for core/paths.py module.

Covers:
- normalize_path() canonical keys
- is_pseudo_filename()
- is_within() and display_path()
"""

from __future__ import annotations

from pathlib import Path

import pytest

from coverplane.core.errors import ValidationError
from coverplane.core.paths import display_path, is_pseudo_filename, is_within, normalize_path


class TestNormalizePath:
    """Tests for normalize_path function."""

    def test_backslashes_become_forward_slashes(self) -> None:
        """Windows separators are converted."""
        assert normalize_path("C:\\proj\\src\\mod.py") == "C:/proj/src/mod.py"

    def test_collapses_dot_segments(self) -> None:
        """. and .. segments are collapsed."""
        assert normalize_path("/a/b/../c/./d.py") == "/a/c/d.py"

    def test_collapses_duplicate_separators(self) -> None:
        """Repeated slashes collapse to one."""
        assert normalize_path("/a//b///c.py") == "/a/b/c.py"

    def test_relative_path_is_made_absolute(self) -> None:
        """Relative paths resolve against the given cwd."""
        assert normalize_path("pkg/mod.py", cwd="/work") == "/work/pkg/mod.py"

    def test_accepts_pathlike(self, tmp_path: Path) -> None:
        """os.PathLike inputs are accepted."""
        assert normalize_path(tmp_path / "x.py") == normalize_path(str(tmp_path / "x.py"))

    def test_same_basename_in_different_dirs_stays_distinct(self) -> None:
        """Files sharing a basename never collide."""
        assert normalize_path("/a/utils.py") != normalize_path("/b/utils.py")

    def test_idempotent(self) -> None:
        """Normalizing a key returns the key."""
        key = normalize_path("/x/../y/z.py")
        assert normalize_path(key) == key

    @pytest.mark.parametrize("bad", [None, "", 42])
    def test_rejects_invalid_input(self, bad: object) -> None:
        """Non-path values raise ValidationError."""
        with pytest.raises(ValidationError):
            normalize_path(bad)  # type: ignore[arg-type]


class TestPseudoFilenames:
    """Tests for is_pseudo_filename."""

    @pytest.mark.parametrize("name", ["<string>", "<stdin>", "<frozen importlib._bootstrap>"])
    def test_pseudo(self, name: str) -> None:
        assert is_pseudo_filename(name)

    def test_real_file(self) -> None:
        assert not is_pseudo_filename("/src/mod.py")


class TestIsWithin:
    """Tests for is_within and display_path."""

    def test_inside(self) -> None:
        assert is_within("/a/b/c.py", "/a/b")

    def test_prefix_is_not_containment(self) -> None:
        """/a/bc is not inside /a/b."""
        assert not is_within("/a/bc/d.py", "/a/b")

    def test_display_path_relative_to_root(self) -> None:
        assert display_path("/proj/src/m.py", "/proj") == "src/m.py"

    def test_display_path_outside_root_unchanged(self) -> None:
        assert display_path("/other/m.py", "/proj") == "/other/m.py"
