"""Structured logging for testament.

structlog renders through stdlib handlers, so each configured output gets its
own format, destination and level. Runs and builds bind a run context (id,
operation, project) on their worker thread; every event logged on that
thread carries it, which keeps interleaved discovery and run logs apart.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from testament.config.models import LoggingConfig, LogOutputConfig

_RUN_KEYS = ("run_id", "operation", "project")

_CONSOLE_DESTINATIONS = ("stderr", "stdout")


# =============================================================================
# Run context
# =============================================================================


def bind_run(operation: str, project: Path | str) -> str:
    """Bind a fresh run context to the current thread. Returns the run id."""
    run_id = uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(
        run_id=run_id,
        operation=operation,
        project=str(project),
    )
    return run_id


def current_run() -> dict[str, Any]:
    """The run context bound to the current thread, empty outside a run."""
    bound = structlog.contextvars.get_contextvars()
    return {key: bound[key] for key in _RUN_KEYS if key in bound}


def end_run() -> None:
    structlog.contextvars.unbind_contextvars(*_RUN_KEYS)


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(config: LoggingConfig | None = None, *, verbose: bool = False) -> None:
    """Install handlers for every configured output.

    ``verbose`` lowers the root level and every console output to DEBUG;
    file outputs keep an explicitly configured level.
    """
    from testament.config.models import LoggingConfig

    if config is None:
        config = LoggingConfig()
    root_level = logging.DEBUG if verbose else logging.getLevelName(config.level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfigured by the CLI once the repo config is known.
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(root_level)

    for output in config.outputs:
        handler = _create_handler(output.destination)
        handler.setLevel(_output_level(output, config.level, verbose))
        handler.setFormatter(_formatter(output, shared_processors))
        root_logger.addHandler(handler)


def _output_level(output: LogOutputConfig, default: str, verbose: bool) -> int:
    if verbose and (output.destination in _CONSOLE_DESTINATIONS or output.level is None):
        return logging.DEBUG
    return int(logging.getLevelName(output.level or default))


def _formatter(
    output: LogOutputConfig, shared_processors: list[structlog.types.Processor]
) -> logging.Formatter:
    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        stream = sys.stdout if output.destination == "stdout" else sys.stderr
        renderer = structlog.dev.ConsoleRenderer(
            colors=output.destination in _CONSOLE_DESTINATIONS and stream.isatty(),
            pad_event_to=0,
            pad_level=False,
        )
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )


def _create_handler(destination: str) -> logging.Handler:
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
