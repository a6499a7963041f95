"""Function detection.

Kinds follow how a function is bound:

- ``def`` at module level (including inside module-level if/try) is global
- ``def`` directly in a class body is a method
- ``def`` inside another function is local
- a lambda assigned to a plain name takes the kind of the scope it is bound in
- a lambda assigned into an attribute or subscript is module
- any other lambda (argument, return value, default) is anonymous
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, replace

from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import FunctionInfo, FunctionType
from coverplane.analysis.statements import (
    FUNCTION_NODES,
    entry_line,
    first_line,
    indentation_end,
)

_SCOPE_KIND = {
    "module": FunctionType.GLOBAL,
    "class": FunctionType.METHOD,
    "function": FunctionType.LOCAL,
}


@dataclass(slots=True)
class _Scope:
    kind: str  # module, class, function
    qualname: str


def _params(args: ast.arguments) -> tuple[str, ...]:
    names = [a.arg for a in args.posonlyargs]
    names.extend(a.arg for a in args.args)
    if args.vararg:
        names.append("*" + args.vararg.arg)
    names.extend(a.arg for a in args.kwonlyargs)
    if args.kwarg:
        names.append("**" + args.kwarg.arg)
    return tuple(names)


def _child_qualname(scope: _Scope, name: str) -> str:
    if scope.kind == "module":
        return name
    if scope.kind == "function":
        return f"{scope.qualname}.<locals>.{name}"
    return f"{scope.qualname}.{name}"


def collect_functions(tree: ast.Module, index: LineIndex) -> list[FunctionInfo]:
    """Return every def/async def/lambda in ``tree`` in source order."""
    functions: list[FunctionInfo] = []
    bindings: dict[int, ast.expr] = {}  # id(lambda) -> assignment target

    def end_of(node: ast.AST) -> int:
        end = getattr(node, "end_lineno", None)
        if end is not None:
            return end
        return indentation_end(index, node.lineno)  # type: ignore[attr-defined]

    def add_def(node: ast.FunctionDef | ast.AsyncFunctionDef, scope: _Scope) -> _Scope:
        start = first_line(node)
        entry = entry_line(node.body, in_function=True, skip_docstring=True)
        if entry is not None and entry <= node.lineno:
            entry = None
        functions.append(
            FunctionInfo(
                id=len(functions) + 1,
                name=node.name,
                qualname=_child_qualname(scope, node.name),
                type=_SCOPE_KIND[scope.kind],
                start_line=start,
                end_line=end_of(node),
                params=_params(node.args),
                is_vararg=node.args.vararg is not None,
                entry_line=entry,
            )
        )
        return _Scope("function", _child_qualname(scope, node.name))

    def add_lambda(node: ast.Lambda, scope: _Scope) -> None:
        target = bindings.get(id(node))
        if isinstance(target, ast.Name):
            kind = _SCOPE_KIND[scope.kind]
            name = target.id
        elif isinstance(target, (ast.Attribute, ast.Subscript)):
            kind = FunctionType.MODULE
            name = ast.unparse(target)
        else:
            kind = FunctionType.ANONYMOUS
            name = "<lambda>"
        body = node.body
        functions.append(
            FunctionInfo(
                id=len(functions) + 1,
                name=name,
                qualname=_child_qualname(scope, "<lambda>"),
                type=kind,
                start_line=node.lineno,
                end_line=end_of(node),
                params=_params(node.args),
                is_vararg=node.args.vararg is not None,
                is_lambda=True,
                body_span=(
                    body.lineno,
                    body.col_offset,
                    body.end_lineno or body.lineno,
                    body.end_col_offset or body.col_offset,
                ),
            )
        )

    def bind(node: ast.AST) -> None:
        if isinstance(node, ast.Assign) and len(node.targets) == 1:
            target: ast.expr | None = node.targets[0]
        elif isinstance(node, ast.AnnAssign):
            target = node.target
        elif isinstance(node, ast.NamedExpr):
            target = node.target
        else:
            return
        value = getattr(node, "value", None)
        if isinstance(value, ast.Lambda) and target is not None:
            bindings[id(value)] = target

    def visit(node: ast.AST, scope: _Scope) -> None:
        bind(node)
        if isinstance(node, FUNCTION_NODES):
            # Decorators and defaults are evaluated in the enclosing scope
            for child in (*node.decorator_list, *node.args.defaults, *node.args.kw_defaults):
                if child is not None:
                    visit(child, scope)
            inner = add_def(node, scope)
            for stmt in node.body:
                visit(stmt, inner)
            return
        if isinstance(node, ast.ClassDef):
            for child in (*node.decorator_list, *node.bases, *node.keywords):
                visit(child, scope)
            inner = _Scope("class", _child_qualname(scope, node.name))
            for stmt in node.body:
                visit(stmt, inner)
            return
        if isinstance(node, ast.Lambda):
            for child in (*node.args.defaults, *node.args.kw_defaults):
                if child is not None:
                    visit(child, scope)
            add_lambda(node, scope)
            visit(node.body, _Scope("function", _child_qualname(scope, "<lambda>")))
            return
        for child in ast.iter_child_nodes(node):
            visit(child, scope)

    visit(tree, _Scope("module", ""))
    functions.sort(key=lambda f: (f.start_line, f.id))
    return [replace(f, id=i) for i, f in enumerate(functions, 1)]
