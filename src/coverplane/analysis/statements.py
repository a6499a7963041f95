"""Statement-level helpers shared by the analyzer passes.

A statement is *tracked* when running it produces a line event in CPython.
``global``/``nonlocal`` declarations and bare annotations inside functions
compile to nothing, docstrings are stored rather than executed, and ``try:``
is a structural keyword whose body does the work.
"""

from __future__ import annotations

import ast
from collections.abc import Iterator

from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import LineKind

FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)
DEFINITION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)
TRY_NODES: tuple[type[ast.stmt], ...] = (ast.Try, ast.TryStar)


def is_docstring(node: ast.AST) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def first_line(node: ast.stmt) -> int:
    """First physical line of a statement, decorators included."""
    decorators = getattr(node, "decorator_list", None)
    if decorators:
        return min(d.lineno for d in decorators)
    return node.lineno


def last_line(body: list[ast.stmt]) -> int:
    node = body[-1]
    return node.end_lineno or node.lineno


def body_start(node: ast.AST) -> int | None:
    """First line of the nested suite of a compound statement."""
    if isinstance(node, ast.Match):
        return node.cases[0].pattern.lineno if node.cases else None
    body = getattr(node, "body", None)
    if isinstance(body, list) and body:
        return first_line(body[0])
    return None


def header_end(node: ast.AST, kinds: list[LineKind]) -> int:
    """Last line of a statement's header (the whole statement if simple).

    Blank and comment lines between a header and its suite are not part of
    the header.
    """
    lineno: int = node.lineno  # type: ignore[attr-defined]
    start = body_start(node)
    if start is None:
        return getattr(node, "end_lineno", None) or lineno
    if start <= lineno:
        return lineno
    end = start - 1
    while end > lineno and kinds[end - 1] in (LineKind.BLANK, LineKind.COMMENT):
        end -= 1
    return end


def is_untracked(node: ast.stmt, *, in_function: bool) -> bool:
    if isinstance(node, (ast.Global, ast.Nonlocal)):
        return True
    return isinstance(node, ast.AnnAssign) and node.value is None and in_function


def entry_line(
    body: list[ast.stmt], *, in_function: bool, skip_docstring: bool = False
) -> int | None:
    """First line of ``body`` whose line event proves the suite was entered."""
    for i, node in enumerate(body):
        if i == 0 and skip_docstring and is_docstring(node):
            continue
        if is_untracked(node, in_function=in_function):
            continue
        if isinstance(node, TRY_NODES):
            inner = entry_line(node.body, in_function=in_function)
            if inner is not None:
                return inner
            continue
        return first_line(node)
    return None


def child_suites(
    node: ast.stmt, in_function: bool
) -> Iterator[tuple[list[ast.stmt], bool, bool]]:
    """Yield (suite, in_function, may_have_docstring) for each nested suite."""
    if isinstance(node, FUNCTION_NODES):
        yield node.body, True, True
        return
    if isinstance(node, ast.ClassDef):
        yield node.body, False, True
        return
    for name in ("body", "orelse", "finalbody"):
        suite = getattr(node, name, None)
        if isinstance(suite, list) and suite:
            yield suite, in_function, False
    for handler in getattr(node, "handlers", ()):
        yield handler.body, in_function, False
    for case in getattr(node, "cases", ()):
        yield case.body, in_function, False


def walk_statements(
    body: list[ast.stmt], *, in_function: bool = False, docstring_allowed: bool = True
) -> Iterator[tuple[ast.stmt, bool, bool]]:
    """Yield (statement, in_function, is_docstring) in source order."""
    for i, node in enumerate(body):
        yield node, in_function, i == 0 and docstring_allowed and is_docstring(node)
        for suite, suite_in_function, may_have_doc in child_suites(node, in_function):
            yield from walk_statements(
                suite, in_function=suite_in_function, docstring_allowed=may_have_doc
            )


def find_keyword_line(index: LineIndex, keyword: str, lo: int, hi: int, indent: int) -> int:
    """Locate a clause keyword (``else``/``finally``) between two suites.

    Searches lines ``lo``..``hi`` for the keyword at the owning statement's
    indentation. Falls back to ``hi``, the first line of the clause's suite,
    which is right for one-line clauses such as ``else: pass``.
    """
    for line in range(max(lo, 1), hi + 1):
        text = index.text(line)
        stripped = text.lstrip(" \t")
        if len(text) - len(stripped) != indent:
            continue
        if stripped.startswith(keyword) and stripped[len(keyword) :].lstrip().startswith(":"):
            return line
    return hi


def indentation_end(index: LineIndex, start: int) -> int:
    """Last line of the indented suite opened at ``start`` (textual fallback)."""
    indent = index.indent_of(start)
    end = start
    for line in range(start + 1, index.line_count + 1):
        text = index.text(line)
        stripped = text.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if index.indent_of(line) <= indent:
            break
        end = line
    return end
