"""Tests for analysis/blocks.py and analysis/conditions.py."""

from __future__ import annotations

import ast
import textwrap

from coverplane.analysis.blocks import BlockScan, collect_blocks
from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import BlockType, ConditionType


def _scan(source: str) -> BlockScan:
    source = textwrap.dedent(source)
    return collect_blocks(ast.parse(source), LineIndex(source))


class TestBlocks:
    """Tests for block collection."""

    def test_if_elif_else_are_siblings(self) -> None:
        scan = _scan(
            """\
            if a:
                x = 1
            elif b:
                x = 2
            else:
                x = 3
            """
        )
        types = [(b.type, b.start_line, b.entry_line, b.parent_id) for b in scan.blocks]
        assert types == [
            (BlockType.IF, 1, 2, None),
            (BlockType.ELIF, 3, 4, None),
            (BlockType.ELSE, 5, 6, None),
        ]

    def test_nested_block_parent(self) -> None:
        scan = _scan(
            """\
            for i in items:
                while i:
                    i -= 1
            """
        )
        loop, inner = scan.blocks
        assert loop.type is BlockType.FOR
        assert inner.type is BlockType.WHILE
        assert inner.parent_id == loop.id

    def test_try_clauses(self) -> None:
        scan = _scan(
            """\
            try:
                x = 1
            except ValueError:
                x = 2
            except:
                x = 3
            else:
                x = 4
            finally:
                x = 5
            """
        )
        types = [(b.type, b.start_line, b.entry_line) for b in scan.blocks]
        assert types == [
            (BlockType.TRY, 1, 2),
            (BlockType.EXCEPT, 3, 4),
            (BlockType.EXCEPT, 5, 6),
            (BlockType.ELSE, 7, 8),
            (BlockType.FINALLY, 9, 10),
        ]
        # keyword lines: try, bare except, else, finally
        assert set(scan.keyword_candidates) == {1, 5, 7, 9}

    def test_match_cases_nest_in_match(self) -> None:
        scan = _scan(
            """\
            match command:
                case "go":
                    move()
                case _:
                    stop()
            """
        )
        match_block, first, second = scan.blocks
        assert match_block.type is BlockType.MATCH
        assert match_block.entry_line == 1
        assert first.parent_id == match_block.id
        assert (second.type, second.start_line, second.entry_line) == (BlockType.CASE, 4, 5)

    def test_same_line_suite_has_no_entry(self) -> None:
        scan = _scan("if a: x = 1\n")
        assert scan.blocks[0].entry_line is None
        assert scan.guards == {}

    def test_one_line_else_keeps_entry(self) -> None:
        scan = _scan("if a:\n    x = 1\nelse: x = 2\n")
        assert scan.blocks[1].entry_line == 3

    def test_with_block(self) -> None:
        scan = _scan("with open(p) as f:\n    data = f.read()\n")
        assert (scan.blocks[0].type, scan.blocks[0].entry_line) == (BlockType.WITH, 2)

    def test_loop_else(self) -> None:
        scan = _scan("for x in y:\n    pass\nelse:\n    done = True\n")
        assert [b.type for b in scan.blocks] == [BlockType.FOR, BlockType.ELSE]


class TestConditions:
    """Tests for guard decomposition."""

    def test_compound_tree(self) -> None:
        scan = _scan("if a and (b or not c):\n    pass\n")
        types = [(c.id, c.type, c.parent_id) for c in scan.conditions]
        assert types == [
            (1, ConditionType.AND, None),
            (2, ConditionType.IDENTIFIER, 1),
            (3, ConditionType.OR, 1),
            (4, ConditionType.IDENTIFIER, 3),
            (5, ConditionType.NOT, 3),
            (6, ConditionType.IDENTIFIER, 5),
        ]
        assert scan.conditions[0].is_compound
        assert not scan.conditions[1].is_compound

    def test_leaf_types(self) -> None:
        scan = _scan(
            """\
            if x.ready:
                pass
            if check():
                pass
            if True:
                pass
            if a is not None:
                pass
            if n + 1:
                pass
            """
        )
        assert [c.type for c in scan.conditions] == [
            ConditionType.IDENTIFIER,
            ConditionType.CALL,
            ConditionType.LITERAL,
            ConditionType.COMPARISON,
            ConditionType.EXPRESSION,
        ]
        assert scan.conditions[3].operator == "is not"

    def test_while_guard(self) -> None:
        scan = _scan("while n > 0:\n    n -= 1\n")
        assert scan.guards[1].condition_id == 1
        assert scan.blocks[0].condition_ids == (1,)

    def test_condition_columns(self) -> None:
        scan = _scan("if ok and done:\n    pass\n")
        root = scan.conditions[0]
        assert (root.start_col, root.end_col) == (3, 14)
