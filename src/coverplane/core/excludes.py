"""Canonical exclude patterns with tiered architecture.

Tier 0 (HARDCODED): Never tracked, not user-configurable.
    - coverplane's own package (tracking the tracker recurses without bound)
    - the test framework driving the run (pytest, pluggy)

Tier 1 (DEFAULT_PRUNABLE_DIRS): Excluded by default, user can override with !pattern.
    - Virtualenvs, installed packages, caches, build outputs, vendored code

Tier 2: User-configured glob patterns (``exclude_patterns``), with ``!pattern``
negation to opt a path back in.
"""

from __future__ import annotations

import fnmatch
import os
import sysconfig
from pathlib import Path

from coverplane.core.paths import is_pseudo_filename, is_within, normalize_path

# =============================================================================
# Tier 0: HARDCODED - Never tracked, not user-configurable
# =============================================================================

PACKAGE_ROOT: str = normalize_path(Path(__file__).resolve().parent.parent)
"""Directory of the coverplane package itself."""

HARDCODED_MODULE_PREFIXES: tuple[str, ...] = (
    "coverplane",
    "_pytest",
    "pytest",
    "pluggy",
)

# =============================================================================
# Tier 1: DEFAULT_PRUNABLE - Excluded by default, user can override
# =============================================================================

DEFAULT_PRUNABLE_DIRS: frozenset[str] = frozenset(
    (
        # -------------------------------------------------------------------------
        # Installed third-party code
        # -------------------------------------------------------------------------
        "site-packages",
        "dist-packages",
        "vendor",
        "_vendor",
        "third_party",
        "node_modules",
        # -------------------------------------------------------------------------
        # Virtual environments
        # -------------------------------------------------------------------------
        "venv",
        ".venv",
        ".virtualenv",
        "virtualenv",
        ".tox",
        ".nox",
        # -------------------------------------------------------------------------
        # Caches and build outputs
        # -------------------------------------------------------------------------
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".ruff_cache",
        ".hypothesis",
        ".eggs",
        "build",
        "dist",
        "htmlcov",
        # -------------------------------------------------------------------------
        # VCS internals and coverplane data
        # -------------------------------------------------------------------------
        ".git",
        ".hg",
        ".svn",
        ".coverplane",
    )
)


def _stdlib_dirs() -> frozenset[str]:
    dirs = set()
    for key in ("stdlib", "platstdlib"):
        value = sysconfig.get_paths().get(key)
        if value:
            dirs.add(normalize_path(value))
    return frozenset(dirs)


STDLIB_DIRS: frozenset[str] = _stdlib_dirs()


def is_self_path(path: str) -> bool:
    """True if normalized ``path`` belongs to the coverplane package."""
    return is_within(path, PACKAGE_ROOT)


def is_hardcoded_module(module_name: str) -> bool:
    """True for modules that must never be instrumented."""
    return any(
        module_name == prefix or module_name.startswith(prefix + ".")
        for prefix in HARDCODED_MODULE_PREFIXES
    )


class ExclusionMatcher:
    """Decides whether a file takes part in coverage.

    Tiered Architecture:
    - Tier 0: coverplane itself, pseudo files (``<string>``), and the stdlib
    - Tier 1 (DEFAULT_PRUNABLE_DIRS): excluded unless negated via ``!dirname``
    - Tier 2: user glob patterns, evaluated in order with ``!`` negation

    ``include_patterns`` (when given) restricts tracking to matching paths, and
    ``source_dirs`` (when given) restricts tracking to files below them.

    Patterns are matched against the normalized absolute path and against the
    path relative to each source dir, so both ``"*/generated/*"`` and
    ``"generated/*"`` work.
    """

    def __init__(
        self,
        exclude_patterns: list[str] | None = None,
        include_patterns: list[str] | None = None,
        source_dirs: list[str] | None = None,
    ) -> None:
        self._patterns: list[str] = []
        self._negated_dirs: set[str] = set()
        for raw in exclude_patterns or []:
            self._add_pattern(raw)
        self._include = list(include_patterns or [])
        self._source_dirs = [normalize_path(d) for d in source_dirs or []]
        self._cache: dict[str, bool] = {}

    @property
    def negated_dirs(self) -> frozenset[str]:
        return frozenset(self._negated_dirs)

    @property
    def source_dirs(self) -> list[str]:
        return list(self._source_dirs)

    def _add_pattern(self, raw: str) -> None:
        line = raw.strip()
        if not line or line.startswith("#"):
            return
        is_negation = line.startswith("!")
        if is_negation:
            line = line[1:]
            dir_name = line.rstrip("/")
            if dir_name and "/" not in dir_name and "*" not in dir_name:
                self._negated_dirs.add(dir_name)
        # Directory patterns (ending in /) match all contents
        pattern = f"{line}**" if line.endswith("/") else line
        self._patterns.append(f"!{pattern}" if is_negation else pattern)

    def should_prune_dir(self, dirname: str) -> bool:
        """Check if a directory should be skipped during discovery walks."""
        if dirname in DEFAULT_PRUNABLE_DIRS:
            return dirname not in self._negated_dirs
        return False

    def is_excluded(self, path: str) -> bool:
        """Check whether normalized ``path`` must not be tracked. Cached."""
        cached = self._cache.get(path)
        if cached is None:
            cached = self._compute_excluded(path)
            self._cache[path] = cached
        return cached

    def is_third_party(self, path: str) -> bool:
        """Tier 1 check alone: installed, vendored or virtualenv code."""
        parts = path.split("/")
        return any(self.should_prune_dir(part) for part in parts[:-1])

    def _candidates(self, path: str) -> list[str]:
        names = [path]
        for root in self._source_dirs:
            if is_within(path, root) and path != root:
                names.append(path[len(root.rstrip("/")) + 1 :])
        return names

    def _matches(self, path: str, pattern: str) -> bool:
        for name in self._candidates(path):
            if fnmatch.fnmatch(name, pattern):
                return True
            if pattern.startswith("**/") and fnmatch.fnmatch(name, pattern[3:]):
                return True
        return False

    def _compute_excluded(self, path: str) -> bool:
        # Tier 0
        if is_pseudo_filename(path) or is_self_path(path):
            return True
        if any(is_within(path, d) for d in STDLIB_DIRS) and not any(
            is_within(path, s) for s in self._source_dirs
        ):
            return True

        if self._source_dirs and not any(is_within(path, d) for d in self._source_dirs):
            return True
        if self._include and not any(self._matches(path, p) for p in self._include):
            return True

        # Tier 2 runs first so an explicit !pattern can opt a path back in
        for pattern in self._patterns:
            if pattern.startswith("!"):
                if self._matches(path, pattern[1:]):
                    return False
                continue
            if self._matches(path, pattern):
                return True

        # Tier 1
        return self.is_third_party(path)


def is_python_source(path: str | os.PathLike[str]) -> bool:
    return os.fspath(path).endswith(".py")


__all__ = [
    "DEFAULT_PRUNABLE_DIRS",
    "HARDCODED_MODULE_PREFIXES",
    "PACKAGE_ROOT",
    "STDLIB_DIRS",
    "ExclusionMatcher",
    "is_hardcoded_module",
    "is_python_source",
    "is_self_path",
]
