"""Line tables and the heuristic line classifier.

Two pieces live here:

- ``LineIndex``: the offset <-> line table built once per file. AST columns
  are UTF-8 byte offsets, so the index also converts them to character
  columns for text rewriting.
- The text scanner: a single forward pass that tracks open triple-quoted
  strings, bracket depth and backslash continuations across lines. It backs
  both ``classify_line_simple`` (used when a file does not parse) and the
  multi-line string detection (used for every file).
"""

from __future__ import annotations

import bisect
import os
import re
from dataclasses import dataclass

from coverplane.analysis.models import LineKind
from coverplane.analysis.source import read_source
from coverplane.core.errors import ValidationError

_STRUCTURAL = re.compile(r"^(?:else|try|finally|except)\s*:|^case\s+.+:\s*(?:#.*)?$")
_TRIPLE_START = re.compile(r"^[rRuUbBfF]{0,2}(\"\"\"|''')")
_STRING_START = re.compile(r"^[rRuUbBfF]{0,2}[\"']")


class LineIndex:
    """Offset <-> line table over one source string.

    Lines are 1-based, matching ``ast`` and tracebacks. Line text never
    includes the line terminator.
    """

    def __init__(self, content: str) -> None:
        self._content = content
        self._starts = [0]
        self._starts.extend(m.end() for m in re.finditer("\n", content))
        raw = content.split("\n")
        if content.endswith("\n"):
            raw.pop()
        self._lines = [text[:-1] if text.endswith("\r") else text for text in raw]
        if not content:
            self._lines = []

    @property
    def line_count(self) -> int:
        return len(self._lines)

    @property
    def lines(self) -> list[str]:
        return self._lines

    def text(self, line: int) -> str:
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return ""

    def line_of(self, offset: int) -> int:
        """Line containing absolute character ``offset``."""
        if offset < 0:
            return 1
        return bisect.bisect_right(self._starts, offset)

    def offset_of(self, line: int, col: int = 0) -> int:
        """Absolute character offset of (line, char column)."""
        return self._starts[line - 1] + col

    def char_col(self, line: int, byte_col: int) -> int:
        """Convert an ``ast`` byte column to a character column."""
        text = self.text(line)
        if text.isascii():
            return byte_col
        return len(text.encode("utf-8")[:byte_col].decode("utf-8", errors="ignore"))

    def indent_of(self, line: int) -> int:
        text = self.text(line)
        return len(text) - len(text.lstrip(" \t"))


@dataclass(slots=True)
class MultilineState:
    """Scanner state carried from one physical line to the next."""

    quote: str | None = None  # open triple-quote delimiter
    depth: int = 0  # open brackets
    backslash: bool = False  # previous line ended with a continuation backslash

    @property
    def in_string(self) -> bool:
        return self.quote is not None

    @property
    def continues(self) -> bool:
        return self.depth > 0 or self.backslash


def _find_close(text: str, start: int, quote: str) -> int:
    i = start
    while True:
        j = text.find(quote, i)
        if j < 0:
            return -1
        k = j - 1
        slashes = 0
        while k >= start and text[k] == "\\":
            slashes += 1
            k -= 1
        if slashes % 2 == 0:
            return j
        i = j + 1


def _scan_line(text: str, state: MultilineState) -> None:
    """Advance ``state`` across one physical line."""
    state.backslash = False
    i = 0
    n = len(text)
    while i < n:
        if state.quote is not None:
            end = _find_close(text, i, state.quote)
            if end < 0:
                return
            i = end + len(state.quote)
            state.quote = None
            continue
        ch = text[i]
        if ch == "#":
            return
        if ch == '"' or ch == "'":
            if text.startswith(ch * 3, i):
                state.quote = ch * 3
                i += 3
                continue
            end = _find_close(text, i + 1, ch)
            if end < 0:
                return
            i = end + 1
            continue
        if ch in "([{":
            state.depth += 1
        elif ch in ")]}":
            state.depth = max(0, state.depth - 1)
        elif ch == "\\" and i == n - 1:
            state.backslash = True
        i += 1


def _classify(text: str, state: MultilineState) -> tuple[LineKind, bool]:
    was_in_string = state.quote is not None
    was_continuation = state.continues
    stripped = text.strip()
    _scan_line(text, state)

    if was_in_string:
        return LineKind.MULTILINE, True
    if not stripped:
        return LineKind.BLANK, False
    if stripped.startswith("#"):
        return LineKind.COMMENT, False
    opens_string = bool(_STRING_START.match(stripped)) and state.quote is not None
    if was_continuation:
        return LineKind.CONTINUATION, opens_string
    triple = _TRIPLE_START.match(stripped)
    if triple and (state.quote is not None or stripped.endswith(triple.group(1))):
        return LineKind.DOCSTRING, state.quote is not None
    if _STRUCTURAL.match(stripped):
        return LineKind.STRUCTURAL, False
    return LineKind.CODE, opens_string


def classify_line_simple(text: str, state: MultilineState) -> LineKind:
    """Classify one line from its text alone, updating ``state``.

    Call once per line in order, sharing one ``MultilineState``.
    """
    kind, _ = _classify(text, state)
    return kind


def scan_lines(lines: list[str]) -> list[tuple[LineKind, bool]]:
    """Heuristic (kind, in_multiline) for every line in one forward scan."""
    state = MultilineState()
    return [_classify(text, state) for text in lines]


def scan_multiline(content: str) -> dict[int, bool]:
    """Map every line number to whether it lies in a multi-line string.

    The opening line counts only when the string is the first thing on it.
    """
    return {
        number: in_multiline
        for number, (_, in_multiline) in enumerate(scan_lines(LineIndex(content).lines), 1)
    }


def is_in_multiline(
    *,
    line: int,
    path: str | os.PathLike[str] | None = None,
    content: str | None = None,
) -> bool:
    """Check whether ``line`` lies inside a multi-line string.

    Pass exactly one of ``path`` (the file is read) or ``content`` (text
    already in memory, so the caller avoids a second read).
    """
    if (path is None) == (content is None):
        raise ValidationError.invalid_argument(
            "is_in_multiline", "path/content", None, "pass exactly one of path or content"
        )
    if not isinstance(line, int) or line < 1:
        raise ValidationError.invalid_argument(
            "is_in_multiline", "line", line, "expected a positive int"
        )
    if content is None:
        content = read_source(path)  # type: ignore[arg-type]
    return scan_multiline(content).get(line, False)


def heuristic_statement_lines(kinds: list[LineKind]) -> dict[int, int]:
    """Attribute continuation lines to the code line above them."""
    mapping: dict[int, int] = {}
    current: int | None = None
    for number, kind in enumerate(kinds, 1):
        if kind is LineKind.CODE:
            current = number
            mapping[number] = number
        elif kind is LineKind.CONTINUATION and current is not None:
            mapping[number] = current
        elif kind not in (LineKind.BLANK, LineKind.COMMENT, LineKind.MULTILINE):
            current = None
    return mapping
