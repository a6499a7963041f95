"""Configuration constants.

This module contains defaults and truly constant values. Constants in the
second half are implementation details that are NOT user-configurable.

For configurable values, see models.py (CoverageConfig).
"""

# =============================================================================
# Configurable defaults
# =============================================================================

DEFAULT_MAX_FILE_SIZE = 1024 * 1024
"""Analysis size ceiling in bytes (1 MiB)."""

DEFAULT_MAX_LOAD_DEPTH = 64
"""Maximum nesting of instrumented imports in progress at once."""

DEFAULT_VALIDATION_THRESHOLD = 0.5
"""Tolerance in percentage points for recomputed percentages."""

DEFAULT_OUTLIER_STD_DEVS = 2.0
"""Standard deviations from the mean that make a file an outlier."""

# =============================================================================
# Internal Implementation Constants
# =============================================================================

LARGE_FILE_LINES = 100
"""Files above this many lines with low coverage are flagged as anomalies."""

LOW_COVERAGE_PCT = 20.0
"""Coverage percent below which a large file is flagged."""

COVERAGE_DISCREPANCY_PCT = 50.0
"""Line vs function coverage gap (percentage points) flagged as an anomaly."""

MODULE_DONE_LINE = 0
"""Pseudo line number reported when an instrumented module body finishes."""

# Names bound into every instrumented module namespace. They follow the
# __dunder__ form so that references inside class bodies are not name-mangled.
LINE_HOOK = "__cov_line__"
TEST_HOOK = "__cov_test__"
COND_HOOK = "__cov_cond__"
PASS_HOOK = "__cov_pass__"
FUNC_HOOK = "__cov_fn__"
ENTER_HOOK = "__cov_enter__"
BLOCK_HOOK = "__cov_block__"
BASE_HOOK = "__cov_base__"
DONE_HOOK = "__cov_done__"
