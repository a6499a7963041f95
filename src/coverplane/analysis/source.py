"""Reading source files."""

from __future__ import annotations

import os
import tokenize

from coverplane.core.errors import SizeLimitExceeded, SourceIOError


def read_source(path: str | os.PathLike[str], max_size: int | None = None) -> str:
    """Read a Python source file, honoring its coding cookie.

    The size is checked with ``os.stat`` before any byte is read so that a
    huge generated file never stalls the run.

    Raises:
        SizeLimitExceeded: If the file is larger than ``max_size`` bytes.
        SourceIOError: If the file cannot be read or decoded.
    """
    name = os.fspath(path)
    try:
        size = os.stat(name).st_size
    except OSError as e:
        raise SourceIOError.read_failed(name, e.strerror or str(e)) from e
    if max_size is not None and size > max_size:
        raise SizeLimitExceeded.for_file(name, size, max_size)
    try:
        with tokenize.open(name) as f:
            return f.read()
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        # tokenize.open raises SyntaxError for an invalid coding cookie
        raise SourceIOError.read_failed(name, str(e)) from e
