"""Path normalization.

Every component keys files by the string returned from ``normalize_path`` so
the same file is never tracked twice under different spellings:

- separators are forward slashes on every platform
- duplicate separators and ``.``/``..`` segments are collapsed
- relative paths are made absolute against the current working directory

Symlinks are deliberately not resolved: two directories that contain a file
with the same basename always produce two distinct keys.
"""

from __future__ import annotations

import os
import posixpath
import re

from coverplane.core.errors import ValidationError

_DUPLICATE_SEPARATORS = re.compile(r"/{2,}")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:/")


def is_pseudo_filename(filename: str) -> bool:
    """True for code that has no file behind it (``<string>``, ``<frozen ...>``)."""
    name = _to_posix(filename).rsplit("/", 1)[-1]
    return name.startswith("<") and name.endswith(">")


def _to_posix(path: str) -> str:
    return path.replace("\\", "/")


def _is_absolute(posix_path: str) -> bool:
    return posix_path.startswith("/") or bool(_DRIVE_PREFIX.match(posix_path))


def normalize_path(path: str | os.PathLike[str], *, cwd: str | None = None) -> str:
    """Return the canonical tracking key for ``path``.

    Args:
        path: File path in any platform spelling.
        cwd: Directory relative paths are resolved against (default: os.getcwd()).

    Raises:
        ValidationError: If ``path`` is not a non-empty string or path-like.
    """
    try:
        raw = os.fspath(path)
    except TypeError as e:
        raise ValidationError.invalid_argument(
            "normalize_path", "path", path, "expected str or os.PathLike"
        ) from e
    if not isinstance(raw, str) or not raw:
        raise ValidationError.invalid_argument(
            "normalize_path", "path", path, "expected a non-empty string"
        )

    unc = raw.startswith("\\\\") or raw.startswith("//")
    posix = _to_posix(raw)
    if not _is_absolute(posix):
        base = _to_posix(cwd if cwd is not None else os.getcwd())
        posix = f"{base}/{posix}"

    posix = _DUPLICATE_SEPARATORS.sub("/", posix)
    if unc:
        posix = "/" + posix
    drive = ""
    if _DRIVE_PREFIX.match(posix):
        drive, posix = posix[:2], posix[2:]
    normalized = posixpath.normpath(posix)
    # normpath keeps a leading "//" on POSIX; only UNC inputs are allowed to keep it
    if normalized.startswith("//"):
        normalized = normalized.lstrip("/")
        normalized = ("//" if unc else "/") + normalized
    return drive + normalized


def is_within(path: str, directory: str) -> bool:
    """Check whether normalized ``path`` is inside normalized ``directory``."""
    directory = directory.rstrip("/")
    return path == directory or path.startswith(directory + "/")


def display_path(path: str, root: str | None = None) -> str:
    """Path relative to ``root`` (default: cwd) when inside it, else unchanged."""
    root = normalize_path(root) if root else normalize_path(os.getcwd())
    if is_within(path, root) and path != root:
        return path[len(root.rstrip("/")) + 1 :]
    return path
