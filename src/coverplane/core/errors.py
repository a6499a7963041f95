"""coverplane error types with typed error codes.

Error code ranges:
- 1xxx: Validation (bad arguments from the caller)
- 2xxx: Config
- 3xxx: Analysis (parse, size limit, file access)
- 4xxx: Instrumentation
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Validation (1xxx)
    VALIDATION_ERROR = 1001

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Analysis (3xxx)
    PARSE_ERROR = 3001
    SIZE_LIMIT_EXCEEDED = 3002
    IO_ERROR = 3003

    # Instrumentation (4xxx)
    SYNTAX_VALIDATION_FAILED = 4001

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class CoverPlaneError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON reports."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ValidationError(CoverPlaneError):
    """Bad input parameters (a caller bug)."""

    @classmethod
    def invalid_argument(
        cls, operation: str, name: str, value: Any, reason: str
    ) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_ERROR,
            message=f"{operation}: invalid '{name}': {reason}",
            details={"operation": operation, "argument": name, "value": repr(value)},
        )

    @classmethod
    def rejected_path(cls, path: str, reason: str) -> "ValidationError":
        return cls(
            code=ErrorCode.VALIDATION_ERROR,
            message=f"Path rejected: {path} ({reason})",
            details={"path": path, "reason": reason},
        )


class ConfigError(CoverPlaneError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class ParseError(CoverPlaneError):
    """Source could not be parsed."""

    @property
    def line(self) -> int | None:
        return self.details.get("line")

    @property
    def column(self) -> int | None:
        return self.details.get("column")

    @classmethod
    def from_syntax_error(cls, path: str, exc: SyntaxError) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_ERROR,
            message=f"Syntax error in {path} at line {exc.lineno}: {exc.msg}",
            details={"path": path, "line": exc.lineno, "column": exc.offset, "reason": exc.msg},
        )


class SizeLimitExceeded(CoverPlaneError):
    """File is larger than the configured ceiling."""

    @classmethod
    def for_file(cls, path: str, size: int, limit: int) -> "SizeLimitExceeded":
        return cls(
            code=ErrorCode.SIZE_LIMIT_EXCEEDED,
            message=f"{path} is {size} bytes, limit is {limit}",
            details={"path": path, "size": size, "limit": limit},
        )


class SourceIOError(CoverPlaneError):
    """File could not be read."""

    @classmethod
    def read_failed(cls, path: str, reason: str) -> "SourceIOError":
        return cls(
            code=ErrorCode.IO_ERROR,
            message=f"Failed to read {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class SyntaxValidationFailed(CoverPlaneError):
    """Instrumentation produced output that does not compile.

    This is an engine bug, never a property of the target file.
    """

    @property
    def line(self) -> int | None:
        return self.details.get("line")

    @classmethod
    def for_output(
        cls, path: str, line: int | None, line_content: str, reason: str
    ) -> "SyntaxValidationFailed":
        return cls(
            code=ErrorCode.SYNTAX_VALIDATION_FAILED,
            message=f"Instrumented output for {path} does not compile at line {line}: {reason}",
            details={
                "path": path,
                "line": line,
                "line_content": line_content,
                "reason": reason,
            },
        )


class InternalError(CoverPlaneError):
    """Internal/unexpected errors in hook or loader internals."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
