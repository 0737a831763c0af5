# =============================================================================
# Error Handling Types (Result + ErrorReport + fatal exceptions)
# =============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class ErrorType(Enum):
    FILE_NOT_FOUND = "file_not_found"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    PERMISSION_ERROR = "permission_error"
    IO_ERROR = "io_error"


@dataclass
class Error:
    error_type: ErrorType
    message: str
    context: dict = field(default_factory=dict)
    original_exception: Exception | None = None


@dataclass
class Result(Generic[T]):
    success: bool
    value: T | None = None
    error: Error | None = None

    @staticmethod
    def ok(value: T) -> "Result[T]":
        return Result(success=True, value=value)

    @staticmethod
    def err(error: Error) -> "Result[T]":
        return Result(success=False, error=error)

    def is_ok(self) -> bool:
        return self.success

    def is_err(self) -> bool:
        return not self.success


@dataclass
class ErrorReport:
    warnings: list[Error] = field(default_factory=list)

    def add_warning(self, error: Error):
        self.warnings.append(error)
        logger.warning(
            error.message,
            operation="error_report",
            status="warning",
            error_type=error.error_type.value,
            **error.context
        )

    def collect_result(self, result: Result) -> bool:
        """Record a failed Result as a warning; fatal failures raise instead."""
        if result.is_ok():
            return True
        self.add_warning(result.error)
        return False

    def log_summary(self, op_trace_id: str):
        """Log final summary for the run."""
        logger.info(
            "Operation complete",
            operation="error_report",
            status="complete",
            trace_id=op_trace_id,
            metrics={
                "total_warnings": len(self.warnings)
            }
        )


# =============================================================================
# Fatal Errors (terminate the run with a message and non-zero status)
# =============================================================================


class ListProjectsError(Exception):
    """Base class for errors reported to the user before exiting."""


class ConfigError(ListProjectsError):
    """Configuration is missing, unparseable or names no root directories."""


class CacheCorrupt(ListProjectsError):
    """The cache file exists but could not be read or parsed."""

    def __init__(self, path, reason: str):
        super().__init__(f"cache file {path} is unreadable: {reason} (run with --clear to reset it)")
        self.path = path
        self.reason = reason


class SelectorError(ListProjectsError):
    """The interactive selector could not be started or failed."""


class SessionError(ListProjectsError):
    """A tmux command failed for a reason other than a missing session."""
