"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (COVERPLANE__SECTION__KEY)
3. Repo YAML (.coverplane/config.yaml)
4. Global YAML (~/.config/coverplane/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    COVERPLANE__<SECTION>__<KEY>=<VALUE>

Examples:
    COVERPLANE__LOGGING__LEVEL=DEBUG
    COVERPLANE__COVERAGE__USE_INSTRUMENTATION=true
    COVERPLANE__COVERAGE__MAX_FILE_SIZE=2097152

Unknown keys are ignored everywhere, so a config file written for a newer
release still loads.
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coverplane.config.constants import (
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_LOAD_DEPTH,
    DEFAULT_OUTLIER_STD_DEVS,
    DEFAULT_VALIDATION_THRESHOLD,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVERPLANE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs every file analyzed and instrumented.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class CoverageConfig(BaseModel):
    """Coverage engine configuration.

    Env vars:
        COVERPLANE__COVERAGE__ENABLED: Master switch
        COVERPLANE__COVERAGE__USE_INSTRUMENTATION: Instrumentation instead of sys.settrace
        COVERPLANE__COVERAGE__TRACK_BLOCKS: Record block entry
        COVERPLANE__COVERAGE__TRACK_CONDITIONS: Record condition outcomes
        COVERPLANE__COVERAGE__MAX_FILE_SIZE: Analysis size ceiling in bytes
    """

    model_config = ConfigDict(extra="ignore")

    enabled: bool = Field(
        default=True,
        description="Master switch. start() is a no-op when disabled.",
    )
    use_instrumentation: bool = Field(
        default=False,
        description="Rewrite imported modules with tracking calls instead of using "
        "sys.settrace. Faster for hot loops, but only modules imported after start() "
        "are tracked.",
    )
    track_blocks: bool = Field(
        default=True,
        description="Record entry into if/elif/else/for/while/with/try/match blocks.",
    )
    track_conditions: bool = Field(
        default=True,
        description="Record true/false outcomes of guard conditions. "
        "Sub-condition outcomes need use_instrumentation.",
    )
    exclude_patterns: list[str] = Field(
        default_factory=list,
        description="Glob patterns for files to leave out. Prefix with ! to opt a "
        "default-excluded directory back in (e.g. !vendor/).",
    )
    include_patterns: list[str] = Field(
        default_factory=list,
        description="When set, only files matching one of these globs are tracked.",
    )
    source_dirs: list[str] = Field(
        default_factory=lambda: ["."],
        description="Directories whose files take part in coverage. Also the roots "
        "walked when discover_uncovered is set.",
    )
    max_file_size: int = Field(
        default=DEFAULT_MAX_FILE_SIZE,
        description="Files larger than this (bytes) are not analyzed. "
        "RISK: Setting too high lets generated files stall the test run.",
    )
    control_flow_keywords_executable: bool = Field(
        default=False,
        description="Count lines holding only else:/try:/finally:/except:/case as "
        "executable. They are marked executed when the block they open runs.",
    )
    max_load_depth: int = Field(
        default=DEFAULT_MAX_LOAD_DEPTH,
        description="Nested instrumented imports beyond this depth load uninstrumented.",
    )
    discover_uncovered: bool = Field(
        default=False,
        description="Walk source_dirs at report time and add never-imported files "
        "with 0% coverage.",
    )
    threshold: float = Field(
        default=0.0,
        description="Minimum overall line coverage percent for meets_threshold().",
    )
    test_mode: bool = Field(
        default=False,
        description="Set by the test runner integration. Enables assertion "
        "promotion of executed lines to covered.",
    )
    reject_third_party: bool = Field(
        default=True,
        description="Refuse to analyze files below site-packages, virtualenvs and "
        "vendor directories.",
    )
    validation_threshold: float = Field(
        default=DEFAULT_VALIDATION_THRESHOLD,
        description="Tolerance (percentage points) for percentage recomputation checks.",
    )
    outlier_std_devs: float = Field(
        default=DEFAULT_OUTLIER_STD_DEVS,
        description="Files further than this many standard deviations from the mean "
        "coverage are reported as outliers.",
    )

    @field_validator("max_file_size", "max_load_depth")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v

    @field_validator("threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not (0.0 <= v <= 100.0):
            raise ValueError(f"Threshold must be 0-100, got {v}")
        return v


class CoverPlaneConfig(BaseModel):
    """Root configuration for coverplane.

    All settings can be configured via:
    1. Environment variables: COVERPLANE__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    model_config = ConfigDict(extra="ignore")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
