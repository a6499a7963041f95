"""Tests for analysis/functions.py module."""

from __future__ import annotations

import ast
import textwrap

from coverplane.analysis.functions import collect_functions
from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import FunctionInfo, FunctionType


def _functions(source: str) -> list[FunctionInfo]:
    source = textwrap.dedent(source)
    return collect_functions(ast.parse(source), LineIndex(source))


class TestFunctionKinds:
    """Tests for function type classification."""

    def test_global_method_local(self) -> None:
        functions = _functions(
            """\
            def top():
                def inner():
                    return 1
                return inner

            class C:
                def method(self):
                    return 2
            """
        )
        kinds = {f.qualname: f.type for f in functions}
        assert kinds == {
            "top": FunctionType.GLOBAL,
            "top.<locals>.inner": FunctionType.LOCAL,
            "C.method": FunctionType.METHOD,
        }

    def test_def_inside_module_level_if_is_global(self) -> None:
        functions = _functions(
            """\
            import sys
            if sys.platform:
                def f():
                    pass
            """
        )
        assert functions[0].type is FunctionType.GLOBAL

    def test_lambda_kinds(self) -> None:
        functions = _functions(
            """\
            square = lambda x: x * x
            handlers = {}
            handlers["k"] = lambda: None
            sorted([], key=lambda v: v)
            """
        )
        assert [(f.name, f.type) for f in functions] == [
            ("square", FunctionType.GLOBAL),
            ("handlers['k']", FunctionType.MODULE),
            ("<lambda>", FunctionType.ANONYMOUS),
        ]
        assert all(f.is_lambda for f in functions)

    def test_lambda_in_class_is_method(self) -> None:
        functions = _functions(
            """\
            class C:
                key = lambda self: 1
            """
        )
        assert functions[0].type is FunctionType.METHOD


class TestFunctionDetails:
    """Tests for lines, params and entry lines."""

    def test_params(self) -> None:
        (f,) = _functions("def f(a, /, b, *args, c, **kw):\n    pass\n")
        assert f.params == ("a", "b", "*args", "c", "**kw")
        assert f.is_vararg

    def test_entry_skips_docstring(self) -> None:
        (f,) = _functions('def f():\n    """Doc."""\n    return 1\n')
        assert f.entry_line == 3

    def test_docstring_only_body_has_no_entry(self) -> None:
        (f,) = _functions('def f():\n    """Doc."""\n')
        assert f.entry_line is None

    def test_one_line_body_has_no_entry(self) -> None:
        (f,) = _functions("def f(): return 1\n")
        assert f.entry_line is None

    def test_decorated_start_line(self) -> None:
        functions = _functions("@staticmethod\n@other\ndef f():\n    pass\n")
        assert (functions[0].start_line, functions[0].end_line) == (1, 4)

    def test_ids_follow_source_order(self) -> None:
        functions = _functions(
            """\
            def a():
                return lambda: 1

            def b():
                pass
            """
        )
        assert [(f.id, f.name) for f in functions] == [(1, "a"), (2, "<lambda>"), (3, "b")]

    def test_lambda_body_span(self) -> None:
        (f,) = _functions("g = lambda x: x + 1\n")
        assert f.body_span == (1, 14, 1, 19)
