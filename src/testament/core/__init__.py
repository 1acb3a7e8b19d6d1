"""Core module exports."""

from testament.core.errors import (
    ConfigError,
    DiscoveryError,
    ErrorCode,
    InternalError,
    ReportError,
    TestamentError,
    ToolError,
)
from testament.core.logging import (
    bind_run,
    configure_logging,
    current_run,
    end_run,
    get_logger,
)

__all__ = [
    # Errors
    "TestamentError",
    "ConfigError",
    "DiscoveryError",
    "ErrorCode",
    "InternalError",
    "ReportError",
    "ToolError",
    # Logging
    "bind_run",
    "configure_logging",
    "current_run",
    "end_run",
    "get_logger",
]
