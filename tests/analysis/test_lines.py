"""Tests for analysis/lines.py module.

Covers:
- LineIndex offsets and byte/char columns
- classify_line_simple() heuristic classifier
- scan_multiline() / is_in_multiline()
"""

from __future__ import annotations

from pathlib import Path

import pytest

from coverplane.analysis.lines import (
    LineIndex,
    MultilineState,
    classify_line_simple,
    heuristic_statement_lines,
    is_in_multiline,
    scan_multiline,
)
from coverplane.analysis.models import LineKind
from coverplane.core.errors import ValidationError


class TestLineIndex:
    """Tests for LineIndex."""

    def test_lines_strip_terminators(self) -> None:
        index = LineIndex("a = 1\r\nb = 2\n")
        assert index.lines == ["a = 1", "b = 2"]
        assert index.line_count == 2

    def test_no_trailing_newline(self) -> None:
        assert LineIndex("a\nb").line_count == 2

    def test_offsets(self) -> None:
        index = LineIndex("ab\ncd\n")
        assert index.offset_of(2, 1) == 4
        assert index.line_of(4) == 2
        assert index.line_of(0) == 1

    def test_char_col_for_non_ascii(self) -> None:
        index = LineIndex("s = 'é'; x = 1\n")
        # 'é' is two bytes in UTF-8
        assert index.char_col(1, 11) == 10

    def test_indent(self) -> None:
        assert LineIndex("if x:\n    y\n").indent_of(2) == 4

    def test_text_out_of_range(self) -> None:
        assert LineIndex("a\n").text(5) == ""


class TestClassifyLineSimple:
    """Tests for the heuristic classifier."""

    def _classify(self, *lines: str) -> list[LineKind]:
        state = MultilineState()
        return [classify_line_simple(line, state) for line in lines]

    def test_basic_kinds(self) -> None:
        kinds = self._classify("x = 1", "", "# note", "else:", "try:")
        assert kinds == [
            LineKind.CODE,
            LineKind.BLANK,
            LineKind.COMMENT,
            LineKind.STRUCTURAL,
            LineKind.STRUCTURAL,
        ]

    def test_docstring_and_multiline(self) -> None:
        kinds = self._classify('"""Start', "middle", 'end"""', "y = 2")
        assert kinds == [LineKind.DOCSTRING, LineKind.MULTILINE, LineKind.MULTILINE, LineKind.CODE]

    def test_one_line_docstring(self) -> None:
        assert self._classify('"""Doc."""') == [LineKind.DOCSTRING]

    def test_bracket_continuation(self) -> None:
        kinds = self._classify("x = [", "    1,", "]")
        assert kinds == [LineKind.CODE, LineKind.CONTINUATION, LineKind.CONTINUATION]

    def test_backslash_continuation(self) -> None:
        kinds = self._classify("x = 1 + \\", "    2")
        assert kinds == [LineKind.CODE, LineKind.CONTINUATION]

    def test_hash_inside_string_is_not_comment(self) -> None:
        kinds = self._classify("s = '# not a comment ('", "y = 1")
        assert kinds == [LineKind.CODE, LineKind.CODE]

    def test_case_clause(self) -> None:
        assert self._classify("case Point(x=0):") == [LineKind.STRUCTURAL]

    def test_heuristic_statement_lines(self) -> None:
        kinds = self._classify("x = [", "    1,", "]", "", "y = 2")
        assert heuristic_statement_lines(kinds) == {1: 1, 2: 1, 3: 1, 5: 5}


class TestMultiline:
    """Tests for multi-line string detection."""

    def test_scan(self) -> None:
        content = 'x = 1\n"""\ninside\n"""\ny = 2\n'
        result = scan_multiline(content)
        assert result == {1: False, 2: True, 3: True, 4: True, 5: False}

    def test_string_opened_mid_line_starts_on_next_line(self) -> None:
        content = 'x = """\nbody\n"""\n'
        result = scan_multiline(content)
        assert result[1] is False
        assert result[2] is True

    def test_is_in_multiline_with_content(self) -> None:
        assert is_in_multiline(line=3, content='"""\na\nb\n"""\n')

    def test_is_in_multiline_with_path(self, tmp_path: Path) -> None:
        path = tmp_path / "m.py"
        path.write_text("'''\ntext\n'''\nz = 1\n")
        assert is_in_multiline(line=2, path=path)
        assert not is_in_multiline(line=4, path=path)

    def test_requires_exactly_one_source(self) -> None:
        with pytest.raises(ValidationError):
            is_in_multiline(line=1)
        with pytest.raises(ValidationError):
            is_in_multiline(line=1, path="x.py", content="x")

    def test_rejects_bad_line(self) -> None:
        with pytest.raises(ValidationError):
            is_in_multiline(line=0, content="x = 1\n")
