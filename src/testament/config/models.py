"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (TESTAMENT__SECTION__KEY)
3. Repo YAML (<root>/.testament/config.yaml)
4. Global YAML (~/.config/testament/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    TESTAMENT__<SECTION>__<KEY>=<VALUE>

Examples:
    TESTAMENT__LOGGING__LEVEL=DEBUG
    TESTAMENT__RUNNER__DOTNET_PATH=/usr/share/dotnet/dotnet
    TESTAMENT__DISCOVERY__CACHE_ENABLED=false
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
Verbosity = Literal["quiet", "minimal", "normal", "detailed", "diagnostic"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

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
        TESTAMENT__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. The command line front end raises it to DEBUG with -v.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class RunnerConfig(BaseModel):
    """External tool configuration.

    Env vars:
        TESTAMENT__RUNNER__DOTNET_PATH: dotnet executable
        TESTAMENT__RUNNER__PARALLEL: Max test host processes (0 = dotnet default)
        TESTAMENT__RUNNER__VERBOSITY: dotnet test verbosity for runs
    """

    dotnet_path: str = Field(
        default="dotnet",
        description="dotnet executable name or absolute path.",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Extra arguments appended to every 'dotnet test' run.",
    )
    parallel: int = Field(
        default=0,
        description="RunConfiguration.MaxCpuCount for runs. 0 leaves the dotnet default.",
    )
    verbosity: Verbosity = Field(
        default="normal",
        description="Run verbosity. Per-test progress markers need 'normal' or higher.",
    )

    @field_validator("parallel")
    @classmethod
    def validate_parallel(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"parallel must be >= 0, got {v}")
        return v


class DiscoveryConfig(BaseModel):
    """Test discovery configuration.

    Env vars:
        TESTAMENT__DISCOVERY__CACHE_ENABLED: Persist enumerations across runs
        TESTAMENT__DISCOVERY__CACHE_DIR: Override the cache directory
        TESTAMENT__DISCOVERY__FINGERPRINT_DEPTH: Output dir depth scanned for staleness
    """

    cache_enabled: bool = Field(
        default=True,
        description="Reuse the last enumeration while the project and its build output "
        "are unchanged.",
    )
    cache_dir: str | None = Field(
        default=None,
        description="Cache directory. Default: $XDG_CACHE_HOME/testament/discovery.",
    )
    fingerprint_depth: int = Field(
        default=5,
        description="How deep to scan bin/ for the newest build artifact. "
        "RISK: Too shallow misses rebuilds under bin/<Configuration>/<TFM>/.",
    )
    project_suffixes: list[str] = Field(
        default_factory=lambda: ["Tests", "Test"],
        description="Solution entries whose name ends with one of these are test projects.",
    )
    fully_qualified_listing: bool = Field(
        default=True,
        description="After listing, ask vstest for fully qualified names of the built "
        "assembly. Avoids source parsing when it succeeds.",
    )

    @field_validator("cache_dir")
    @classmethod
    def validate_cache_dir(cls, v: str | None) -> str | None:
        if v is None:
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"cache_dir must be an absolute path: {v}")
        return str(path)

    @field_validator("fingerprint_depth")
    @classmethod
    def validate_depth(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"fingerprint_depth must be >= 2, got {v}")
        return v


class TestamentConfig(BaseModel):
    """Root configuration for Testament.

    All settings can be configured via:
    1. Environment variables: TESTAMENT__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
