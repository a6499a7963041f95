"""Line-preserving text insertion.

The rewritten module must keep every original line at its original number,
so tracebacks and line events stay meaningful. All rewriting is therefore
done by inserting text at positions inside existing lines, never by
re-rendering the AST.

Wraps nest like the expressions they wrap. When several insertions land on
the same offset, closers go before openers, inner closers before outer ones,
and outer openers before inner ones.
"""

from __future__ import annotations

from dataclasses import dataclass

from coverplane.analysis.lines import LineIndex

_OUTERMOST = 1 << 62


@dataclass(frozen=True, slots=True, order=True)
class Insertion:
    offset: int
    closing: int  # 0 = closer, 1 = opener
    rank: int
    text: str


class SourceRewriter:
    """Collects insertions against one source text and applies them."""

    def __init__(self, content: str, index: LineIndex | None = None) -> None:
        self._content = content
        self._index = index or LineIndex(content)
        self._insertions: list[Insertion] = []

    @property
    def index(self) -> LineIndex:
        return self._index

    def offset(self, line: int, byte_col: int) -> int:
        return self._index.offset_of(line, self._index.char_col(line, byte_col))

    def prefix(self, line: int, byte_col: int, text: str) -> None:
        """Insert ``text`` in front of whatever starts at (line, col)."""
        self._insertions.append(Insertion(self.offset(line, byte_col), 1, -_OUTERMOST, text))

    def suffix(self, line: int, byte_col: int, text: str) -> None:
        """Insert ``text`` right after whatever ends at (line, col)."""
        self._insertions.append(Insertion(self.offset(line, byte_col), 0, -_OUTERMOST, text))

    def wrap(
        self,
        span: tuple[int, int, int, int],
        opener: str,
        closer: str,
    ) -> None:
        """Surround the expression at ``span`` (line, col, end_line, end_col)."""
        start = self.offset(span[0], span[1])
        end = self.offset(span[2], span[3])
        width = end - start
        self._insertions.append(Insertion(start, 1, -width, opener))
        self._insertions.append(Insertion(end, 0, width, closer))

    def __len__(self) -> int:
        return len(self._insertions)

    def apply(self) -> str:
        content = self._content
        parts: list[str] = []
        position = 0
        for insertion in sorted(self._insertions):
            parts.append(content[position : insertion.offset])
            parts.append(insertion.text)
            position = insertion.offset
        parts.append(content[position:])
        return "".join(parts)
