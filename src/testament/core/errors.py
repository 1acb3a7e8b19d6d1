"""Testament error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Discovery (solution/project location)
- 4xxx: External tool (dotnet)
- 5xxx: Result report
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Discovery (3xxx)
    SOLUTION_NOT_FOUND = 3001
    FILE_READ_ERROR = 3002

    # External tool (4xxx)
    TOOL_NOT_FOUND = 4001
    ENUMERATION_FAILED = 4002
    EXECUTION_FAILED = 4003
    EXECUTION_BUSY = 4004

    # Report (5xxx)
    REPORT_UNREADABLE = 5001
    REPORT_MALFORMED = 5002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class TestamentError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'SOLUTION_NOT_FOUND')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(TestamentError):
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


class DiscoveryError(TestamentError):
    """Solution/project location errors. Always fatal for the operation."""

    @classmethod
    def solution_not_found(cls, start: str) -> "DiscoveryError":
        return cls(
            code=ErrorCode.SOLUTION_NOT_FOUND,
            message=f"No solution or project file found from {start}",
            details={"start": start},
        )

    @classmethod
    def file_read(cls, path: str, reason: str) -> "DiscoveryError":
        return cls(
            code=ErrorCode.FILE_READ_ERROR,
            message=f"Failed to read {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class ToolError(TestamentError):
    """Failures of the external dotnet tool."""

    @classmethod
    def not_found(cls, executable: str) -> "ToolError":
        return cls(
            code=ErrorCode.TOOL_NOT_FOUND,
            message=f"'{executable}' was not found on PATH",
            details={"executable": executable},
        )

    @classmethod
    def enumeration_failed(
        cls, project: str, detail: str, exit_code: int | None = None
    ) -> "ToolError":
        return cls(
            code=ErrorCode.ENUMERATION_FAILED,
            message=detail,
            retryable=True,
            details={"project": project, "exit_code": exit_code},
        )

    @classmethod
    def execution_failed(cls, detail: str, exit_code: int | None = None) -> "ToolError":
        return cls(
            code=ErrorCode.EXECUTION_FAILED,
            message=detail,
            retryable=True,
            details={"exit_code": exit_code},
        )

    @classmethod
    def busy(cls) -> "ToolError":
        return cls(
            code=ErrorCode.EXECUTION_BUSY,
            message="A run or build is already in progress",
            retryable=True,
        )


class ReportError(TestamentError):
    """Result report could not be read or parsed. Fatal for one run only."""

    @classmethod
    def unreadable(cls, path: str, reason: str, exit_code: int | None = None) -> "ReportError":
        suffix = f" (exit code {exit_code})" if exit_code is not None else ""
        return cls(
            code=ErrorCode.REPORT_UNREADABLE,
            message=f"Failed to read test report {path}: {reason}{suffix}",
            details={"path": path, "reason": reason, "exit_code": exit_code},
        )

    @classmethod
    def malformed(cls, reason: str) -> "ReportError":
        return cls(
            code=ErrorCode.REPORT_MALFORMED,
            message=f"Malformed test report: {reason}",
            details={"reason": reason},
        )


class InternalError(TestamentError):
    """A worker crashed on something no other error type describes."""

    @classmethod
    def unexpected(cls, operation: str, error: BaseException) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Unexpected error during {operation}: {error}",
            details={"operation": operation, "exception": type(error).__name__},
        )
