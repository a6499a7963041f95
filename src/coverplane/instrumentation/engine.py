"""Instrumentation engine: source -> source with tracking calls.

Insertion rules by construct (N is the statement line, C a condition id):

- simple statement: ``__cov_line__(N); stmt`` at the statement's column.
  Only the first tracked statement of a physical line gets a line hook.
- ``if``/``elif``/``while``: the keyword stays first and the guard is
  wrapped, ``if __cov_test__(N, C, (guard)):``; inner conditions of the
  guard are wrapped with ``__cov_cond__(C, (expr))``, which keeps
  short-circuiting intact.
- ``for`` iterable, first ``with`` item, ``match`` subject, ``except``
  type, first decorator, first default, first class base:
  ``__cov_pass__(N, (expr))``. A class with no bases gets
  ``(__cov_base__(N))``.
- ``else:``/``try:``/``finally:``/bare ``except:``/``case`` lines hold no
  expression and are never touched. Their blocks are entered through the
  first line of their suite.
- a suite sharing its header's line gets explicit ``__cov_block__(B)`` or
  ``__cov_enter__(F)`` calls in front of its first statement.
- lambda bodies become ``__cov_fn__(F) or (body)``.

Definition headers with nothing to wrap and ``from __future__`` imports
can't carry a hook. Their execution is inferred from the next statement
of the same suite that does carry one (``deferred``), or inside a compound
statement from the nearest hooked statement before them. A header in a
branch, loop or handler body never defers past its own suite. At module
level the fallback is a ``__cov_done__()`` call appended as a new last line.
"""

from __future__ import annotations

import ast
import os
import re
from collections import defaultdict
from dataclasses import dataclass, field
from types import CodeType
from typing import TYPE_CHECKING

from coverplane.analysis.analyzer import StaticAnalyzer
from coverplane.analysis.lines import LineIndex
from coverplane.analysis.models import BlockInfo, BlockType, CodeMap, FunctionInfo
from coverplane.analysis.source import read_source
from coverplane.analysis.statements import (
    FUNCTION_NODES,
    TRY_NODES,
    first_line,
    is_docstring,
    is_untracked,
)
from coverplane.config.constants import (
    BASE_HOOK,
    BLOCK_HOOK,
    COND_HOOK,
    DONE_HOOK,
    ENTER_HOOK,
    FUNC_HOOK,
    LINE_HOOK,
    MODULE_DONE_LINE,
    PASS_HOOK,
    TEST_HOOK,
)
from coverplane.config.models import CoverageConfig
from coverplane.core.errors import SyntaxValidationFailed
from coverplane.core.logging import get_logger
from coverplane.core.paths import normalize_path
from coverplane.instrumentation.rewriter import SourceRewriter

if TYPE_CHECKING:
    import structlog

_CLASS_NAME = re.compile(r"class\s+(\w+)\s*(\()?")

_COMPOUND_NODES = (
    ast.If,
    ast.While,
    ast.For,
    ast.AsyncFor,
    ast.With,
    ast.AsyncWith,
    ast.Try,
    ast.TryStar,
    ast.Match,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
)

_JUMP_NODES = (ast.Return, ast.Raise, ast.Break, ast.Continue)


@dataclass(frozen=True, slots=True)
class InstrumentedModule:
    """Rewritten source of one file, compiled and ready to execute."""

    path: str
    source: str
    code_map: CodeMap
    code: CodeType
    # trigger line -> header lines whose execution it proves
    deferred: dict[int, tuple[int, ...]] = field(default_factory=dict)


def _span(node: ast.expr) -> tuple[int, int, int, int]:
    return (
        node.lineno,
        node.col_offset,
        node.end_lineno or node.lineno,
        node.end_col_offset if node.end_col_offset is not None else node.col_offset,
    )


def _is_future_import(node: ast.stmt) -> bool:
    return isinstance(node, ast.ImportFrom) and node.module == "__future__"


def _first_position(nodes: list[ast.expr]) -> ast.expr | None:
    present = [n for n in nodes if n is not None]
    if not present:
        return None
    return min(present, key=lambda n: (n.lineno, n.col_offset))


def _fstring_lambdas(tree: ast.Module) -> set[tuple[int, int]]:
    """Body positions of lambdas inside f-strings, which are left unwrapped."""
    inside: set[tuple[int, int]] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.JoinedStr):
            for child in ast.walk(node):
                if isinstance(child, ast.Lambda):
                    inside.add((child.body.lineno, child.body.col_offset))
    return inside


class _ModuleRewrite:
    """One pass over a parsed module, collecting insertions."""

    def __init__(
        self, code_map: CodeMap, tree: ast.Module, config: CoverageConfig
    ) -> None:
        self._map = code_map
        self._tree = tree
        self._track_blocks = config.track_blocks
        self._track_conditions = config.track_conditions
        self._rewriter = SourceRewriter(code_map.content, LineIndex(code_map.content))
        self._hit: set[int] = set()
        self._extras: dict[int, list[str]] = defaultdict(list)  # id(stmt) -> hook calls
        self._deferred: dict[int, list[int]] = defaultdict(list)
        self._blocks: dict[tuple[BlockType, int], BlockInfo] = {
            (block.type, block.start_line): block for block in code_map.blocks
        }
        self._defs: dict[tuple[int, str], FunctionInfo] = {
            (f.start_line, f.name): f for f in code_map.functions if not f.is_lambda
        }

    def run(self) -> tuple[str, dict[int, tuple[int, ...]]]:
        self._suite(
            self._tree.body, fallback=MODULE_DONE_LINE, in_function=False, docstring=True
        )
        self._lambdas()
        source = self._rewriter.apply()
        if MODULE_DONE_LINE in self._deferred:
            if source and not source.endswith("\n"):
                source += "\n"
            source += f"{DONE_HOOK}()\n"
        deferred = {line: tuple(headers) for line, headers in self._deferred.items()}
        return source, deferred

    # ------------------------------------------------------------------
    # Suites
    # ------------------------------------------------------------------

    def _suite(
        self,
        body: list[ast.stmt],
        *,
        fallback: int | None,
        in_function: bool,
        docstring: bool = False,
        nested: bool = False,
    ) -> None:
        """Instrument ``body``; headers without a hook defer to a later trigger.

        The trigger is the next hooked statement of the suite. Inside a
        compound statement the nearest hooked statement before the header
        comes next, then ``fallback``, which is None for conditional and
        loop suites: a statement after the compound runs whether the suite
        did or not.
        """
        for i, node in enumerate(body):
            if i == 0 and docstring and is_docstring(node):
                continue
            successor = self._first_observable(body[i + 1 :], in_function)
            if successor is None and nested:
                successor = self._predecessor(body[:i], in_function)
            if successor is None:
                successor = fallback
            if not self._instrument(node, in_function) and self._defers(node):
                if successor is not None:
                    self._deferred[successor].append(first_line(node))
            self._children(node, successor, in_function)

    def _observable(self, node: ast.stmt, in_function: bool) -> bool:
        """True when ``node`` gets a hook that reports its own line."""
        if isinstance(node, (ast.If, ast.While, ast.For, ast.AsyncFor, ast.Match)):
            return True
        if isinstance(node, (ast.With, ast.AsyncWith)):
            return True
        if isinstance(node, FUNCTION_NODES):
            return bool(node.decorator_list) or self._first_default(node) is not None
        if isinstance(node, ast.ClassDef):
            return bool(node.decorator_list or node.bases or node.keywords) or (
                self._class_base_slot(node) is not None
            )
        if isinstance(node, TRY_NODES):
            return False
        return not _is_future_import(node) and not is_untracked(node, in_function=in_function)

    def _first_observable(self, body: list[ast.stmt], in_function: bool) -> int | None:
        for node in body:
            if self._observable(node, in_function):
                return first_line(node)
            if isinstance(node, TRY_NODES):
                inner = self._first_observable(node.body, in_function)
                if inner is not None:
                    return inner
        return None

    def _predecessor(self, body: list[ast.stmt], in_function: bool) -> int | None:
        """Line of the nearest hooked statement before a header, if it falls through."""
        for node in reversed(body):
            if isinstance(node, _JUMP_NODES) or isinstance(node, TRY_NODES):
                return None
            if self._observable(node, in_function):
                return first_line(node)
        return None

    @staticmethod
    def _defers(node: ast.stmt) -> bool:
        return isinstance(node, (*FUNCTION_NODES, ast.ClassDef)) or _is_future_import(node)

    def _children(self, node: ast.stmt, successor: int | None, in_function: bool) -> None:
        if isinstance(node, FUNCTION_NODES):
            self._function_body(node)
            self._suite(node.body, fallback=None, in_function=True, docstring=True, nested=True)
            return
        if isinstance(node, ast.ClassDef):
            self._suite(node.body, fallback=successor, in_function=False, docstring=True)
            return

        def suite(body: list[ast.stmt], *, conditional: bool = True) -> None:
            self._suite(
                body,
                fallback=None if conditional else successor,
                in_function=in_function,
                nested=True,
            )

        def block(btype: BlockType, start: int, body: list[ast.stmt], **kwargs: bool) -> None:
            self._enter_hook(btype, start, body)
            suite(body, **kwargs)

        if isinstance(node, (ast.If, ast.While)):
            btype = BlockType.WHILE if isinstance(node, ast.While) else self._if_type(node)
            block(btype, node.lineno, node.body)
            suite(node.orelse)
        elif isinstance(node, (ast.For, ast.AsyncFor)):
            block(BlockType.FOR, node.lineno, node.body)
            suite(node.orelse)
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            block(BlockType.WITH, node.lineno, node.body, conditional=False)
        elif isinstance(node, TRY_NODES):
            suite(node.body, conditional=False)
            for handler in node.handlers:
                block(BlockType.EXCEPT, handler.lineno, handler.body)
            suite(node.orelse)
            suite(node.finalbody, conditional=False)
        elif isinstance(node, ast.Match):
            for case in node.cases:
                block(BlockType.CASE, case.pattern.lineno, case.body)

    def _enter_hook(self, btype: BlockType, start: int, body: list[ast.stmt]) -> None:
        """Explicit block entry for a block whose entry no line hook can prove."""
        found = self._blocks.get((btype, start))
        if (
            self._track_blocks
            and found is not None
            and found.entry_line is None
            and body
            and not isinstance(body[0], _COMPOUND_NODES)
        ):
            self._extras[id(body[0])].append(f"{BLOCK_HOOK}({found.id}); ")

    def _function_body(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        header = first_line(node)
        function = self._defs.get((header, node.name))
        if function is None:
            return
        if function.entry_line is not None:
            if not self._observable(node, in_function=False):
                self._deferred[function.entry_line].append(header)
            return
        body = node.body
        rest = body[1:] if is_docstring(body[0]) else body
        if not rest:
            doc = body[0]
            self._rewriter.suffix(
                doc.end_lineno or doc.lineno,
                doc.end_col_offset or 0,
                f"; {ENTER_HOOK}({function.id})",
            )
        elif not isinstance(rest[0], _COMPOUND_NODES):
            self._extras[id(rest[0])].append(f"{ENTER_HOOK}({function.id}); ")

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _instrument(self, node: ast.stmt, in_function: bool) -> bool:
        """Add the hooks of one statement. False when it got no line hook."""
        line = first_line(node)
        if isinstance(node, (ast.If, ast.While)):
            self._guard(node)
        elif isinstance(node, (ast.For, ast.AsyncFor)):
            self._pass(line, node.iter)
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            self._pass(line, node.items[0].context_expr)
        elif isinstance(node, ast.Match):
            self._pass(line, node.subject)
        elif isinstance(node, TRY_NODES):
            for handler in node.handlers:
                if handler.type is not None:
                    self._pass(handler.lineno, handler.type)
            return True
        elif isinstance(node, FUNCTION_NODES):
            target = node.decorator_list[0] if node.decorator_list else self._first_default(node)
            if target is None:
                return False
            self._pass(line, target)
        elif isinstance(node, ast.ClassDef):
            return self._class_header(node, line)
        else:
            return self._simple(node, line, in_function)
        return True

    def _simple(self, node: ast.stmt, line: int, in_function: bool) -> bool:
        hooked = line in self._hit
        parts: list[str] = []
        if not hooked and self._observable(node, in_function):
            parts.append(f"{LINE_HOOK}({line}); ")
            self._hit.add(line)
            hooked = True
        parts.extend(self._extras.pop(id(node), ()))
        if parts:
            self._rewriter.prefix(node.lineno, node.col_offset, "".join(parts))
        return hooked

    def _pass(self, line: int, expr: ast.expr) -> None:
        if isinstance(expr, ast.Starred):
            expr = expr.value
        self._hit.add(line)
        self._rewriter.wrap(_span(expr), f"{PASS_HOOK}({line}, (", "))")

    def _guard(self, node: ast.If | ast.While) -> None:
        line = node.lineno
        btype = BlockType.WHILE if isinstance(node, ast.While) else self._if_type(node)
        block = self._blocks.get((btype, line))
        if not self._track_conditions or block is None or not block.condition_ids:
            self._pass(line, node.test)
            return
        self._hit.add(line)
        root, *inner = block.condition_ids
        condition = self._map.condition(root)
        span = (condition.start_line, condition.start_col, condition.end_line, condition.end_col)
        self._rewriter.wrap(span, f"{TEST_HOOK}({line}, {root}, (", "))")
        for cid in inner:
            condition = self._map.condition(cid)
            span = (
                condition.start_line, condition.start_col, condition.end_line, condition.end_col,
            )
            self._rewriter.wrap(span, f"{COND_HOOK}({cid}, (", "))")

    def _if_type(self, node: ast.If) -> BlockType:
        if (BlockType.ELIF, node.lineno) in self._blocks:
            return BlockType.ELIF
        return BlockType.IF

    @staticmethod
    def _first_default(node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.expr | None:
        return _first_position([*node.args.defaults, *node.args.kw_defaults])

    def _class_header(self, node: ast.ClassDef, line: int) -> bool:
        if node.decorator_list:
            self._pass(line, node.decorator_list[0])
            return True
        values = [*node.bases, *(keyword.value for keyword in node.keywords)]
        target = _first_position(values)
        if target is not None:
            self._pass(line, target)
            return True
        slot = self._class_base_slot(node)
        if slot is None:
            return False
        slot_line, slot_col, parenthesized = slot
        call = f"{BASE_HOOK}({line})"
        text = call if parenthesized else f"({call})"
        self._rewriter.prefix(slot_line, slot_col, text)
        self._hit.add(line)
        return True

    def _class_base_slot(self, node: ast.ClassDef) -> tuple[int, int, bool] | None:
        """Where ``(__cov_base__(N))`` can go: after the name, or inside ``()``."""
        if node.bases or node.keywords or getattr(node, "type_params", None):
            return None
        index = self._rewriter.index
        text = index.text(node.lineno)
        col = index.char_col(node.lineno, node.col_offset)
        match = _CLASS_NAME.match(text, col)
        if match is None or match.group(1) != node.name:
            return None
        end = match.end() if match.group(2) else match.end(1)
        byte_col = len(text[:end].encode("utf-8"))
        return node.lineno, byte_col, bool(match.group(2))

    # ------------------------------------------------------------------
    # Lambdas
    # ------------------------------------------------------------------

    def _lambdas(self) -> None:
        skipped = _fstring_lambdas(self._tree)
        for function in self._map.functions:
            if not function.is_lambda or function.body_span is None:
                continue
            if function.body_span[:2] in skipped:
                continue
            self._rewriter.wrap(function.body_span, f"{FUNC_HOOK}({function.id}) or (", ")")


class InstrumentationEngine:
    """Rewrites source so that running it reports its own coverage.

    Analysis comes from a shared ``StaticAnalyzer`` so both the debug hook
    and instrumented modules agree on line, function and block ids.
    """

    def __init__(
        self,
        analyzer: StaticAnalyzer,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._config = analyzer.config
        self._log = logger or get_logger("instrumentation.engine")

    def instrument_file(self, path: str | os.PathLike[str]) -> InstrumentedModule:
        """Read and instrument ``path``.

        Raises:
            SizeLimitExceeded, SourceIOError: reading failed.
            ParseError: the file is not valid Python.
            SyntaxValidationFailed: the rewritten text does not compile.
        """
        key = normalize_path(path)
        content = read_source(key, self._config.max_file_size)
        return self.instrument_source(key, content)

    def instrument_source(
        self, path: str | os.PathLike[str], content: str
    ) -> InstrumentedModule:
        """Instrument ``content`` as the text of ``path``."""
        code_map = self._analyzer.analyze(path, content)
        key = code_map.path
        tree = ast.parse(content, filename=key)
        source, deferred = _ModuleRewrite(code_map, tree, self._config).run()
        code = self._validate(key, source)
        self._log.debug(
            "file_instrumented",
            path=key,
            deferred=sum(len(headers) for headers in deferred.values()),
        )
        return InstrumentedModule(
            path=key, source=source, code_map=code_map, code=code, deferred=deferred
        )

    def _validate(self, path: str, source: str) -> CodeType:
        try:
            return compile(source, path, "exec", dont_inherit=True)
        except SyntaxError as e:
            line = e.lineno or 0
            lines = source.splitlines()
            content = lines[line - 1] if 0 < line <= len(lines) else ""
            self._log.error(
                "instrumentation_invalid", path=path, line=line, content=content, reason=e.msg
            )
            raise SyntaxValidationFailed.for_output(path, line, content, e.msg) from e
