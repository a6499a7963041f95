"""Control-flow block detection.

Blocks are collected with an explicit stack of open block ids: a block's
parent is whatever block is on top of the stack when it opens. Clauses that
extend a statement (``elif``, ``else``, ``except``, ``finally``) open while the
statement's own block is already closed, so they become its siblings. Only
``case`` blocks nest inside their ``match``.

Each block records the line whose execution proves the block was entered:
the first tracked line of its suite. ``match`` is entered when its subject
is evaluated, so its entry is its own header line.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field

from coverplane.analysis.conditions import ConditionBuilder
from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import BlockInfo, BlockType, ConditionInfo, GuardInfo
from coverplane.analysis.statements import (
    FUNCTION_NODES,
    TRY_NODES,
    entry_line,
    find_keyword_line,
    first_line,
    last_line,
)


@dataclass(slots=True)
class BlockScan:
    blocks: list[BlockInfo] = field(default_factory=list)
    conditions: list[ConditionInfo] = field(default_factory=list)
    guards: dict[int, GuardInfo] = field(default_factory=dict)
    keyword_candidates: dict[int, int] = field(default_factory=dict)  # line -> block id


class _BlockCollector:
    def __init__(self, index: LineIndex) -> None:
        self._index = index
        self._conditions = ConditionBuilder()
        self._blocks: list[BlockInfo] = []
        self._stack: list[int] = []
        self._guards: dict[int, GuardInfo] = {}
        self._keywords: dict[int, int] = {}

    def collect(self, tree: ast.Module) -> BlockScan:
        self._suite(tree.body, in_function=False)
        return BlockScan(
            blocks=self._blocks,
            conditions=self._conditions.conditions,
            guards=self._guards,
            keyword_candidates=self._keywords,
        )

    # ------------------------------------------------------------------
    # Block bookkeeping
    # ------------------------------------------------------------------

    def _open(
        self,
        btype: BlockType,
        start: int,
        end: int,
        suite: list[ast.stmt],
        *,
        in_function: bool,
        guard: ast.expr | None = None,
        entry: int | None = None,
        keyword: bool = False,
    ) -> int:
        bid = len(self._blocks) + 1
        if entry is None and suite:
            entry = entry_line(suite, in_function=in_function)
            # A suite sharing the header line proves entry only when the header
            # is a bare keyword with no code of its own
            if entry is not None and entry <= start and (not keyword or btype is BlockType.CASE):
                entry = None
        condition_ids: tuple[int, ...] = ()
        if guard is not None:
            condition_ids = self._conditions.build(guard, bid)
            body_first = first_line(suite[0]) if suite else start
            if body_first > (guard.end_lineno or start):
                self._guards[start] = GuardInfo(condition_ids[0], body_first, last_line(suite))
        self._blocks.append(
            BlockInfo(
                id=bid,
                type=btype,
                start_line=start,
                end_line=end,
                parent_id=self._stack[-1] if self._stack else None,
                condition_ids=condition_ids,
                entry_line=entry,
            )
        )
        if keyword:
            self._keywords.setdefault(start, bid)
        return bid

    def _within(self, bid: int, suite: list[ast.stmt], in_function: bool) -> None:
        self._stack.append(bid)
        try:
            self._suite(suite, in_function=in_function)
        finally:
            self._stack.pop()

    def _clause(
        self,
        btype: BlockType,
        keyword: str,
        after: int,
        suite: list[ast.stmt],
        indent: int,
        in_function: bool,
    ) -> int:
        """Open an else/finally clause whose keyword line must be searched for."""
        line = find_keyword_line(self._index, keyword, after + 1, first_line(suite[0]), indent)
        bid = self._open(
            btype, line, last_line(suite), suite, in_function=in_function, keyword=True
        )
        self._within(bid, suite, in_function)
        return last_line(suite)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _suite(self, suite: list[ast.stmt], *, in_function: bool) -> None:
        for node in suite:
            self._statement(node, in_function)

    def _statement(self, node: ast.stmt, in_function: bool) -> None:
        if isinstance(node, FUNCTION_NODES):
            self._suite(node.body, in_function=True)
        elif isinstance(node, ast.ClassDef):
            self._suite(node.body, in_function=False)
        elif isinstance(node, ast.If):
            self._if(node, BlockType.IF, in_function)
        elif isinstance(node, (ast.For, ast.AsyncFor, ast.While)):
            self._loop(node, in_function)
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            bid = self._open(
                BlockType.WITH, node.lineno, last_line(node.body), node.body,
                in_function=in_function,
            )
            self._within(bid, node.body, in_function)
        elif isinstance(node, TRY_NODES):
            self._try(node, in_function)
        elif isinstance(node, ast.Match):
            self._match(node, in_function)

    def _is_elif(self, node: ast.If) -> bool:
        text = self._index.text(node.lineno)
        col = self._index.char_col(node.lineno, node.col_offset)
        return text[col : col + 4] == "elif"

    def _if(self, node: ast.If, btype: BlockType, in_function: bool) -> None:
        indent = self._index.indent_of(node.lineno)
        current = node
        kind = btype
        while True:
            end = last_line(current.body)
            bid = self._open(
                kind, current.lineno, end, current.body,
                in_function=in_function, guard=current.test,
            )
            self._within(bid, current.body, in_function)
            orelse = current.orelse
            if not orelse:
                return
            if len(orelse) == 1 and isinstance(orelse[0], ast.If) and self._is_elif(orelse[0]):
                current = orelse[0]
                kind = BlockType.ELIF
                continue
            self._clause(BlockType.ELSE, "else", end, orelse, indent, in_function)
            return

    def _loop(self, node: ast.For | ast.AsyncFor | ast.While, in_function: bool) -> None:
        btype = BlockType.WHILE if isinstance(node, ast.While) else BlockType.FOR
        guard = node.test if isinstance(node, ast.While) else None
        end = last_line(node.body)
        bid = self._open(
            btype, node.lineno, end, node.body, in_function=in_function, guard=guard
        )
        self._within(bid, node.body, in_function)
        if node.orelse:
            indent = self._index.indent_of(node.lineno)
            self._clause(BlockType.ELSE, "else", end, node.orelse, indent, in_function)

    def _try(self, node: ast.Try | ast.TryStar, in_function: bool) -> None:
        indent = self._index.indent_of(node.lineno)
        end = last_line(node.body)
        bid = self._open(
            BlockType.TRY, node.lineno, end, node.body, in_function=in_function, keyword=True
        )
        self._within(bid, node.body, in_function)
        for handler in node.handlers:
            hid = self._open(
                BlockType.EXCEPT, handler.lineno, last_line(handler.body), handler.body,
                in_function=in_function, keyword=handler.type is None,
            )
            self._within(hid, handler.body, in_function)
            end = last_line(handler.body)
        if node.orelse:
            end = self._clause(BlockType.ELSE, "else", end, node.orelse, indent, in_function)
        if node.finalbody:
            self._clause(BlockType.FINALLY, "finally", end, node.finalbody, indent, in_function)

    def _match(self, node: ast.Match, in_function: bool) -> None:
        end = node.end_lineno or (last_line(node.cases[-1].body) if node.cases else node.lineno)
        mid = self._open(
            BlockType.MATCH, node.lineno, end, [], in_function=in_function, entry=node.lineno
        )
        self._stack.append(mid)
        try:
            for case in node.cases:
                start = case.pattern.lineno
                cid = self._open(
                    BlockType.CASE, start, last_line(case.body), case.body,
                    in_function=in_function, keyword=True,
                )
                self._within(cid, case.body, in_function)
        finally:
            self._stack.pop()


def collect_blocks(tree: ast.Module, index: LineIndex) -> BlockScan:
    """Collect blocks, their guard conditions and structural keyword lines."""
    return _BlockCollector(index).collect(tree)
