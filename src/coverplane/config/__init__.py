"""Config module exports."""

from coverplane.config.loader import coverage_config_from, load_config
from coverplane.config.models import (
    CoverageConfig,
    CoverPlaneConfig,
    LoggingConfig,
    LogOutputConfig,
)

__all__ = [
    "load_config",
    "coverage_config_from",
    "CoverPlaneConfig",
    "CoverageConfig",
    "LoggingConfig",
    "LogOutputConfig",
]
