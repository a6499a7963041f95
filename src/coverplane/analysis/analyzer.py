"""Static analyzer: source text -> CodeMap.

Two tiers classify lines. The AST tier knows every statement's extent, so
line events from any physical line of a multi-line statement are attributed
to its first line. The heuristic tier (``classify_line_simple``) is used for
files that do not parse; the resulting map has ``parsed=False`` and no
functions, blocks or conditions.
"""

from __future__ import annotations

import ast
import hashlib
import os
from collections import defaultdict
from typing import TYPE_CHECKING

from coverplane.analysis.blocks import collect_blocks
from coverplane.analysis.functions import collect_functions
from coverplane.analysis.lines import LineIndex, heuristic_statement_lines, scan_lines
from coverplane.analysis.models import AnalysisOutcome, CodeMap, LineInfo, LineKind
from coverplane.analysis.source import read_source
from coverplane.analysis.statements import (
    TRY_NODES,
    first_line,
    header_end,
    is_untracked,
    walk_statements,
)
from coverplane.config.models import CoverageConfig
from coverplane.core.errors import (
    CoverPlaneError,
    ParseError,
    SizeLimitExceeded,
    ValidationError,
)
from coverplane.core.excludes import ExclusionMatcher
from coverplane.core.logging import get_logger
from coverplane.core.paths import normalize_path

if TYPE_CHECKING:
    import structlog


def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8", errors="surrogatepass")).hexdigest()


class StaticAnalyzer:
    """Builds and caches code maps.

    Maps are cached per normalized path and content hash, so a file is parsed
    once per session unless its text changes.
    """

    def __init__(
        self,
        config: CoverageConfig | None = None,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config or CoverageConfig()
        self._log = logger or get_logger("analysis")
        self._third_party = ExclusionMatcher(exclude_patterns=self._config.exclude_patterns)
        self._cache: dict[str, CodeMap] = {}

    @property
    def config(self) -> CoverageConfig:
        return self._config

    def clear_cache(self) -> None:
        self._cache.clear()

    def cached(self, path: str) -> CodeMap | None:
        return self._cache.get(normalize_path(path))

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def analyze(self, path: str | os.PathLike[str], content: str) -> CodeMap:
        """Analyze ``content`` as the text of ``path``.

        Raises:
            ValidationError: Bad arguments, or a third-party path when
                ``reject_third_party`` is set.
            SizeLimitExceeded: Content is larger than ``max_file_size``.
            ParseError: Content is not valid Python.
        """
        key = self._validate(path, content)
        digest = content_digest(content)
        cached = self._cache.get(key)
        if cached is not None and cached.content_hash == digest:
            return cached

        try:
            tree = ast.parse(content, filename=key)
        except SyntaxError as e:
            raise ParseError.from_syntax_error(key, e) from e
        except (ValueError, RecursionError, MemoryError) as e:
            # null bytes, or nesting too deep for the parser
            raise ParseError.from_syntax_error(key, SyntaxError(str(e))) from e

        code_map = build_code_map(key, content, tree, self._config, digest)
        self._cache[key] = code_map
        self._log.debug(
            "file_analyzed",
            path=key,
            executable=code_map.executable_line_count,
            functions=len(code_map.functions),
            blocks=len(code_map.blocks),
        )
        return code_map

    def analyze_file(self, path: str | os.PathLike[str]) -> CodeMap:
        """Read ``path`` (size checked before reading) and analyze it."""
        key = normalize_path(path)
        self._check_path(key)
        content = read_source(key, self._config.max_file_size)
        return self.analyze(key, content)

    def try_analyze(
        self, path: str | os.PathLike[str], content: str | None = None
    ) -> AnalysisOutcome:
        """Result-or-error form of ``analyze``/``analyze_file``.

        A ParseError still yields a heuristic code map so the file can be
        tracked; every other error yields no map.
        """
        try:
            if content is None:
                key = normalize_path(path)
                self._check_path(key)
                content = read_source(key, self._config.max_file_size)
            return AnalysisOutcome(self.analyze(path, content))
        except ParseError as e:
            key = normalize_path(path)
            self._log.warning("parse_failed", path=key, line=e.line, reason=e.message)
            return AnalysisOutcome(heuristic_code_map(key, content, self._config, e), e)
        except CoverPlaneError as e:
            self._log.warning("analysis_failed", path=str(path), error=e.error_name, reason=e.message)
            return AnalysisOutcome(None, e)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, path: str | os.PathLike[str], content: str) -> str:
        if content is None or not isinstance(content, str):
            raise ValidationError.invalid_argument(
                "analyze", "content", content, "expected source text"
            )
        key = normalize_path(path)
        self._check_path(key)
        size = len(content.encode("utf-8", errors="surrogatepass"))
        if size > self._config.max_file_size:
            raise SizeLimitExceeded.for_file(key, size, self._config.max_file_size)
        return key

    def _check_path(self, key: str) -> None:
        if self._config.reject_third_party and self._third_party.is_third_party(key):
            raise ValidationError.rejected_path(key, "third-party or vendored code")


# ----------------------------------------------------------------------
# Code map construction
# ----------------------------------------------------------------------


def _statement_lines(
    tree: ast.Module, kinds: list[LineKind]
) -> tuple[set[int], dict[int, int], set[int]]:
    """Executable lines, physical line -> statement line, docstring lines."""
    executable: set[int] = set()
    line_map: dict[int, int] = {}
    docstrings: set[int] = set()

    for node, in_function, is_doc in walk_statements(tree.body):
        if is_doc:
            docstrings.update(range(node.lineno, (node.end_lineno or node.lineno) + 1))
            continue
        if isinstance(node, TRY_NODES) or is_untracked(node, in_function=in_function):
            continue
        start = first_line(node)
        executable.add(start)
        for line in range(start, header_end(node, kinds) + 1):
            line_map.setdefault(line, start)
        line_map[start] = start

    for node in ast.walk(tree):
        if isinstance(node, ast.ExceptHandler) and node.type is not None:
            executable.add(node.lineno)
            for line in range(node.lineno, header_end(node, kinds) + 1):
                line_map.setdefault(line, node.lineno)
            line_map[node.lineno] = node.lineno
    return executable, line_map, docstrings


def build_code_map(
    path: str, content: str, tree: ast.Module, config: CoverageConfig, digest: str = ""
) -> CodeMap:
    index = LineIndex(content)
    scanned = scan_lines(index.lines)
    kinds = [kind for kind, _ in scanned]

    executable, line_map, docstrings = _statement_lines(tree, kinds)
    functions = collect_functions(tree, index)
    scan = collect_blocks(tree, index)

    keyword_lines = {
        line: bid for line, bid in scan.keyword_candidates.items() if line not in executable
    }
    if config.control_flow_keywords_executable:
        executable.update(keyword_lines)

    lines: list[LineInfo] = []
    for number, (heuristic_kind, in_multiline) in enumerate(scanned, 1):
        statement = line_map.get(number)
        if number in docstrings:
            kind = LineKind.DOCSTRING
        elif number in keyword_lines:
            kind = LineKind.STRUCTURAL
        elif statement == number:
            kind = LineKind.CODE
        elif statement is not None:
            kind = LineKind.MULTILINE if in_multiline else LineKind.CONTINUATION
        else:
            kind = heuristic_kind
        lines.append(
            LineInfo(
                number=number,
                executable=number in executable,
                in_multiline_string_or_comment=in_multiline,
                kind=kind,
                statement_line=statement,
            )
        )

    block_entries: dict[int, list[int]] = defaultdict(list)
    for block in scan.blocks:
        if block.entry_line is not None:
            block_entries[block.entry_line].append(block.id)
    function_entries: dict[int, list[int]] = defaultdict(list)
    for function in functions:
        if function.entry_line is not None:
            function_entries[function.entry_line].append(function.id)

    return CodeMap(
        path=path,
        content=content,
        lines=tuple(lines),
        functions=tuple(functions),
        blocks=tuple(scan.blocks),
        conditions=tuple(scan.conditions),
        line_map=line_map,
        block_entries={line: tuple(ids) for line, ids in block_entries.items()},
        function_entries={line: tuple(ids) for line, ids in function_entries.items()},
        guards=dict(scan.guards),
        keyword_lines=keyword_lines,
        parsed=True,
        content_hash=digest or content_digest(content),
    )


def heuristic_code_map(
    path: str, content: str, config: CoverageConfig, error: ParseError | None = None
) -> CodeMap:
    """Text-only code map for a file that does not parse."""
    index = LineIndex(content)
    scanned = scan_lines(index.lines)
    kinds = [kind for kind, _ in scanned]
    line_map = heuristic_statement_lines(kinds)
    executable_kinds = {LineKind.CODE}
    if config.control_flow_keywords_executable:
        executable_kinds.add(LineKind.STRUCTURAL)
        for number, kind in enumerate(kinds, 1):
            if kind is LineKind.STRUCTURAL:
                line_map[number] = number
    lines = tuple(
        LineInfo(
            number=number,
            executable=kind in executable_kinds,
            in_multiline_string_or_comment=in_multiline,
            kind=kind,
            statement_line=line_map.get(number),
        )
        for number, (kind, in_multiline) in enumerate(scanned, 1)
    )
    return CodeMap(
        path=path,
        content=content,
        lines=lines,
        line_map=line_map,
        parsed=False,
        parse_error=error.message if error else None,
        content_hash=content_digest(content),
    )
