"""Background execution of ``dotnet test`` and ``dotnet build``.

One operation runs on one daemon thread and reports through its own
``EventStream``. Results come from the TRX report, never from parsing
console output; console output only drives progress and the output pane.
"""

from __future__ import annotations

import contextlib
import subprocess
import tempfile
import threading
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from testament.core.errors import InternalError, ReportError, TestamentError, ToolError
from testament.core.logging import bind_run, end_run
from testament.dotnet import (
    DotnetCli,
    build_filter_expression,
    is_diagnostic_line,
    is_noise_line,
    is_test_marker,
)
from testament.events import (
    EventStream,
    ExecutionCompleted,
    ExecutionFailed,
    OutputLine,
    ProgressIncrement,
)
from testament.execution.report import read_report

logger = structlog.get_logger()

REPORT_SUFFIX = ".trx"


def unique_report_path() -> Path:
    return Path(tempfile.gettempdir()) / f"testament-{uuid.uuid4().hex}{REPORT_SUFFIX}"


def classify_line(line: str) -> OutputLine | ProgressIncrement | None:
    """Event for one console line, or None when the line is dropped."""
    if is_test_marker(line):
        return ProgressIncrement()
    if is_noise_line(line) or is_diagnostic_line(line):
        return None
    return OutputLine(text=line)


def _pump(proc: subprocess.Popen[str], stream: EventStream) -> int:
    """Forward classified output until the process exits; returns its exit code."""
    if proc.stdout is not None:
        for raw in proc.stdout:
            event = classify_line(raw.rstrip("\r\n"))
            if event is not None:
                stream.send(event)
    return proc.wait()


@dataclass
class ExecutionDriver:
    """Starts runs and builds for one project at a time.

    Usage::

        driver = ExecutionDriver(DotnetCli())
        stream = driver.run(Path("tests/App.Tests/App.Tests.csproj"), ["NS.A.T1"])
        while not stream.closed:
            for event in stream.wait(0.1):
                ...
    """

    cli: DotnetCli = field(default_factory=DotnetCli)

    def run(self, project_path: Path, test_names: Sequence[str] | None = None) -> EventStream:
        """Run a project's tests, optionally only the named ones."""
        filter_expression = build_filter_expression(list(test_names)) if test_names else None
        return self._start(self._run, project_path, filter_expression)

    def build(self, project_path: Path) -> EventStream:
        return self._start(self._build, project_path)

    def _start(
        self, target: Callable[..., None], project_path: Path, *args: object
    ) -> EventStream:
        stream = EventStream()
        thread = threading.Thread(
            target=target,
            args=(project_path, stream, *args),
            name="testament-execution",
            daemon=True,
        )
        thread.start()
        return stream

    def _run(
        self, project_path: Path, stream: EventStream, filter_expression: str | None
    ) -> None:
        bind_run("test", project_path)
        report_path = unique_report_path()
        exit_code: int | None = None
        try:
            logger.info("test_run_started", filtered=filter_expression is not None)
            cmd = self.cli.run_command(
                project_path, report_path=report_path, filter_expression=filter_expression
            )
            proc = self.cli.stream(cmd, cwd=project_path.parent)
            exit_code = _pump(proc, stream)
            records = read_report(report_path, exit_code)
        except ReportError as e:
            logger.warning("test_report_failed", error=e.message)
            stream.send(ExecutionFailed(message=e.message, exit_code=exit_code))
        except TestamentError as e:
            logger.warning("test_run_failed", error=e.message)
            stream.send(ExecutionFailed(message=e.message, exit_code=exit_code))
        except Exception as e:
            logger.exception("test_run_crashed")
            error = InternalError.unexpected("test run", e)
            stream.send(ExecutionFailed(message=error.message, exit_code=exit_code))
        else:
            logger.info("test_run_finished", exit_code=exit_code, records=len(records))
            stream.send(ExecutionCompleted(records=records, exit_code=exit_code))
        finally:
            with contextlib.suppress(OSError):
                report_path.unlink()
            end_run()

    def _build(self, project_path: Path, stream: EventStream) -> None:
        bind_run("build", project_path)
        try:
            logger.info("build_started")
            proc = self.cli.stream(self.cli.build_command(project_path), cwd=project_path.parent)
            exit_code = _pump(proc, stream)
            if exit_code != 0:
                raise ToolError.execution_failed(f"Build failed (exit code {exit_code})", exit_code)
        except TestamentError as e:
            logger.warning("build_failed", error=e.message)
            stream.send(ExecutionFailed(message=e.message, exit_code=e.details.get("exit_code")))
        except Exception as e:
            logger.exception("build_crashed")
            stream.send(ExecutionFailed(message=InternalError.unexpected("build", e).message))
        else:
            logger.info("build_finished")
            stream.send(ExecutionCompleted(records=[], exit_code=0))
        finally:
            end_run()
