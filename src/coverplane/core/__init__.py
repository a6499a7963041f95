"""Core module exports."""

from coverplane.core.errors import (
    ConfigError,
    CoverPlaneError,
    ErrorCode,
    InternalError,
    ParseError,
    SizeLimitExceeded,
    SourceIOError,
    SyntaxValidationFailed,
    ValidationError,
)
from coverplane.core.logging import (
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
    set_session_id,
)
from coverplane.core.paths import normalize_path

__all__ = [
    # Errors
    "ConfigError",
    "CoverPlaneError",
    "ErrorCode",
    "InternalError",
    "ParseError",
    "SizeLimitExceeded",
    "SourceIOError",
    "SyntaxValidationFailed",
    "ValidationError",
    # Logging
    "clear_session_id",
    "configure_logging",
    "get_logger",
    "get_session_id",
    "set_session_id",
    # Paths
    "normalize_path",
]
