"""Code map data model.

A CodeMap is the static picture of one source file: which lines can execute,
where functions and control blocks begin and end, and how guard conditions
decompose. It is immutable once built and shared between the runtime
observers, the store and the report assembler.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from coverplane.core.errors import CoverPlaneError


class LineKind(str, Enum):
    """What a physical line holds."""

    CODE = "code"
    BLANK = "blank"
    COMMENT = "comment"
    MULTILINE = "multiline"  # inside a triple-quoted string
    DOCSTRING = "docstring"
    CONTINUATION = "continuation"  # later line of a multi-line statement
    STRUCTURAL = "structural"  # else: / try: / finally: / bare except: / case


class FunctionType(str, Enum):
    GLOBAL = "global"
    LOCAL = "local"
    METHOD = "method"
    MODULE = "module"
    ANONYMOUS = "anonymous"


class BlockType(str, Enum):
    IF = "if"
    ELIF = "elif"
    ELSE = "else"
    FOR = "for"
    WHILE = "while"
    WITH = "with"
    TRY = "try"
    EXCEPT = "except"
    FINALLY = "finally"
    MATCH = "match"
    CASE = "case"


class ConditionType(str, Enum):
    AND = "and"
    OR = "or"
    NOT = "not"
    COMPARISON = "comparison"
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    CALL = "call"
    EXPRESSION = "expression"


@dataclass(frozen=True, slots=True)
class LineInfo:
    """Classification of a single physical line."""

    number: int
    executable: bool
    in_multiline_string_or_comment: bool
    kind: LineKind
    statement_line: int | None = None  # first line of the owning statement


@dataclass(frozen=True, slots=True)
class FunctionInfo:
    """A def, async def or lambda.

    ``entry_line`` is the first body line whose execution proves the function
    was entered. It is None when the body shares the header line or has no
    observable line (docstring-only bodies, lambdas); such functions are
    tracked through call events or explicit entry calls instead.
    """

    id: int
    name: str
    qualname: str
    type: FunctionType
    start_line: int
    end_line: int
    params: tuple[str, ...] = ()
    is_vararg: bool = False
    entry_line: int | None = None
    is_lambda: bool = False
    # (line, col, end_line, end_col) of a lambda body, UTF-8 byte columns
    body_span: tuple[int, int, int, int] | None = None


@dataclass(frozen=True, slots=True)
class BlockInfo:
    """A control-flow block.

    ``elif``/``else``/``except``/``finally`` clauses are siblings of the
    statement they extend, so a block's range always sits inside its
    parent's range.
    """

    id: int
    type: BlockType
    start_line: int
    end_line: int
    parent_id: int | None = None
    condition_ids: tuple[int, ...] = ()
    entry_line: int | None = None


@dataclass(frozen=True, slots=True)
class ConditionInfo:
    """One node of a decomposed guard expression."""

    id: int
    type: ConditionType
    is_compound: bool
    operator: str | None
    parent_id: int | None
    component_ids: tuple[int, ...]
    start_line: int
    end_line: int
    block_id: int | None = None
    start_col: int = 0  # UTF-8 byte columns, as reported by ast
    end_col: int = 0


@dataclass(frozen=True, slots=True)
class GuardInfo:
    """Where a guard's body lives, for outcome inference from line events."""

    condition_id: int
    body_start: int
    body_end: int

    def contains(self, line: int) -> bool:
        return self.body_start <= line <= self.body_end


@dataclass(frozen=True, slots=True)
class CodeMap:
    """Static analysis result for one file."""

    path: str
    content: str
    lines: tuple[LineInfo, ...]
    functions: tuple[FunctionInfo, ...] = ()
    blocks: tuple[BlockInfo, ...] = ()
    conditions: tuple[ConditionInfo, ...] = ()
    line_map: Mapping[int, int] = field(default_factory=dict)
    block_entries: Mapping[int, tuple[int, ...]] = field(default_factory=dict)
    function_entries: Mapping[int, tuple[int, ...]] = field(default_factory=dict)
    guards: Mapping[int, GuardInfo] = field(default_factory=dict)
    keyword_lines: Mapping[int, int] = field(default_factory=dict)
    parsed: bool = True
    parse_error: str | None = None
    content_hash: str = ""

    @property
    def total_lines(self) -> int:
        return len(self.lines)

    @property
    def executable_line_count(self) -> int:
        return sum(1 for info in self.lines if info.executable)

    @property
    def executable_lines(self) -> frozenset[int]:
        return frozenset(info.number for info in self.lines if info.executable)

    def line(self, number: int) -> LineInfo | None:
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1]
        return None

    def is_executable(self, number: int) -> bool:
        info = self.line(number)
        return info is not None and info.executable

    def statement_line(self, number: int) -> int | None:
        """Executable line that a line event on ``number`` is attributed to."""
        return self.line_map.get(number)

    def function(self, function_id: int) -> FunctionInfo:
        return self.functions[function_id - 1]

    def block(self, block_id: int) -> BlockInfo:
        return self.blocks[block_id - 1]

    def condition(self, condition_id: int) -> ConditionInfo:
        return self.conditions[condition_id - 1]


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    """Result-or-error form of an analysis.

    A ParseError still carries a heuristic code map so the file can be
    tracked; fatal errors (size, I/O, rejected path) carry none.
    """

    code_map: CodeMap | None
    error: CoverPlaneError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
