"""Config module exports."""

from testament.config.loader import load_config
from testament.config.models import (
    DiscoveryConfig,
    LoggingConfig,
    LogOutputConfig,
    RunnerConfig,
    TestamentConfig,
)

__all__ = [
    "load_config",
    "TestamentConfig",
    "DiscoveryConfig",
    "LoggingConfig",
    "LogOutputConfig",
    "RunnerConfig",
]
