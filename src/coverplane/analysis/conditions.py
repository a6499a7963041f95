"""Guard condition decomposition.

``a and (b or not c)`` becomes a tree: an ``and`` compound over ``a`` and an
``or`` compound, which in turn holds ``b`` and a ``not`` compound over ``c``.
Every node gets an id, leaves included, because a leaf is still evaluated
(or skipped by short-circuiting) and has outcomes of its own.
"""

from __future__ import annotations

import ast

from coverplane.analysis.models import ConditionInfo, ConditionType

_COMPARE_OPS: dict[type[ast.cmpop], str] = {
    ast.Eq: "==",
    ast.NotEq: "!=",
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.Is: "is",
    ast.IsNot: "is not",
    ast.In: "in",
    ast.NotIn: "not in",
}


class ConditionBuilder:
    """Assigns condition ids across all guards of one file."""

    def __init__(self) -> None:
        self._conditions: list[ConditionInfo] = []

    @property
    def conditions(self) -> list[ConditionInfo]:
        return self._conditions

    def build(self, expr: ast.expr, block_id: int | None) -> tuple[int, ...]:
        """Decompose ``expr``; return all ids of the tree, root first."""
        ids: list[int] = []
        self._add(expr, None, block_id, ids)
        return tuple(ids)

    def _add(
        self, expr: ast.expr, parent_id: int | None, block_id: int | None, ids: list[int]
    ) -> int:
        cid = len(self._conditions) + 1
        # Reserve the slot so children get larger ids than their parent
        self._conditions.append(None)  # type: ignore[arg-type]
        ids.append(cid)

        operator: str | None = None
        children: list[ast.expr] = []
        if isinstance(expr, ast.BoolOp):
            ctype = ConditionType.AND if isinstance(expr.op, ast.And) else ConditionType.OR
            operator = ctype.value
            children = list(expr.values)
        elif isinstance(expr, ast.UnaryOp) and isinstance(expr.op, ast.Not):
            ctype = ConditionType.NOT
            operator = "not"
            children = [expr.operand]
        elif isinstance(expr, ast.Compare):
            ctype = ConditionType.COMPARISON
            operator = " ".join(_COMPARE_OPS.get(type(op), "?") for op in expr.ops)
        elif isinstance(expr, ast.Constant):
            ctype = ConditionType.LITERAL
        elif isinstance(expr, (ast.Name, ast.Attribute)):
            ctype = ConditionType.IDENTIFIER
        elif isinstance(expr, ast.Call):
            ctype = ConditionType.CALL
        else:
            ctype = ConditionType.EXPRESSION

        component_ids = tuple(self._add(child, cid, block_id, ids) for child in children)
        self._conditions[cid - 1] = ConditionInfo(
            id=cid,
            type=ctype,
            is_compound=bool(children),
            operator=operator,
            parent_id=parent_id,
            component_ids=component_ids,
            start_line=expr.lineno,
            end_line=expr.end_lineno or expr.lineno,
            block_id=block_id,
            start_col=expr.col_offset,
            end_col=expr.end_col_offset or expr.col_offset,
        )
        return cid
