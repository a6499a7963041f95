"""Tests for instrumentation/rewriter.py module.

Covers:
- prefix, suffix and wrap insertions
- ordering of insertions that share an offset
- byte columns on non-ASCII lines
"""

from __future__ import annotations

from coverplane.instrumentation.rewriter import SourceRewriter


class TestInsertions:
    """Tests for single insertions."""

    def test_no_insertions(self) -> None:
        assert SourceRewriter("x = 1\n").apply() == "x = 1\n"

    def test_prefix(self) -> None:
        rewriter = SourceRewriter("if a:\n    x = 1\n")
        rewriter.prefix(2, 4, "hit(); ")
        assert rewriter.apply() == "if a:\n    hit(); x = 1\n"

    def test_suffix(self) -> None:
        rewriter = SourceRewriter('def f():\n    """Doc."""\n')
        rewriter.suffix(2, 14, "; done()")
        assert rewriter.apply() == 'def f():\n    """Doc."""; done()\n'

    def test_wrap(self) -> None:
        rewriter = SourceRewriter("x = a + b\n")
        rewriter.wrap((1, 4, 1, 9), "f(", ")")
        assert rewriter.apply() == "x = f(a + b)\n"
        assert len(rewriter) == 2

    def test_wrap_across_lines(self) -> None:
        rewriter = SourceRewriter("x = (a +\n     b)\n")
        rewriter.wrap((1, 4, 2, 7), "f(", ")")
        assert rewriter.apply() == "x = f((a +\n     b))\n"


class TestOrdering:
    """Tests for insertions at the same offset."""

    def test_nested_wraps(self) -> None:
        rewriter = SourceRewriter("x = a + b\n")
        rewriter.wrap((1, 4, 1, 5), "g(", ")")
        rewriter.wrap((1, 4, 1, 9), "f(", ")")
        assert rewriter.apply() == "x = f(g(a) + b)\n"

    def test_closer_before_opener(self) -> None:
        rewriter = SourceRewriter("ab\n")
        rewriter.wrap((1, 1, 1, 2), "<", ">")
        rewriter.wrap((1, 0, 1, 1), "[", "]")
        assert rewriter.apply() == "[a]<b>\n"

    def test_prefix_goes_outside_wrap(self) -> None:
        rewriter = SourceRewriter("call(x)\n")
        rewriter.wrap((1, 0, 1, 7), "f(", ")")
        rewriter.prefix(1, 0, "hit(); ")
        assert rewriter.apply() == "hit(); f(call(x))\n"


class TestColumns:
    """Tests for byte-to-character column conversion."""

    def test_non_ascii_line(self) -> None:
        source = "s = 'é' + x\n"
        byte_col = len("s = 'é' + ".encode())
        rewriter = SourceRewriter(source)
        rewriter.wrap((1, byte_col, 1, byte_col + 1), "f(", ")")
        assert rewriter.apply() == "s = 'é' + f(x)\n"

    def test_lines_preserved(self) -> None:
        source = "a = 1\nb = 2\nc = 3\n"
        rewriter = SourceRewriter(source)
        rewriter.prefix(2, 0, "hit(); ")
        assert rewriter.apply().splitlines()[1] == "hit(); b = 2"
        assert rewriter.apply().count("\n") == 3
