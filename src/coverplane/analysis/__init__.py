"""Static analysis: source text -> CodeMap."""

from coverplane.analysis.analyzer import StaticAnalyzer, build_code_map, heuristic_code_map
from coverplane.analysis.lines import (
    LineIndex,
    MultilineState,
    classify_line_simple,
    is_in_multiline,
    scan_multiline,
)
from coverplane.analysis.models import (
    AnalysisOutcome,
    BlockInfo,
    BlockType,
    CodeMap,
    ConditionInfo,
    ConditionType,
    FunctionInfo,
    FunctionType,
    GuardInfo,
    LineInfo,
    LineKind,
)
from coverplane.analysis.source import read_source

__all__ = [
    "StaticAnalyzer",
    "build_code_map",
    "heuristic_code_map",
    "read_source",
    "LineIndex",
    "MultilineState",
    "classify_line_simple",
    "is_in_multiline",
    "scan_multiline",
    "AnalysisOutcome",
    "BlockInfo",
    "BlockType",
    "CodeMap",
    "ConditionInfo",
    "ConditionType",
    "FunctionInfo",
    "FunctionType",
    "GuardInfo",
    "LineInfo",
    "LineKind",
]
