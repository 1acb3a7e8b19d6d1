"""Tests for structured logging and run context."""

import json
import logging
import threading
from pathlib import Path

import structlog

from testament.config.models import LoggingConfig, LogOutputConfig
from testament.core.logging import bind_run, configure_logging, current_run, end_run, get_logger


def _json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestRunContext:
    """Run context bound per worker thread."""

    def setup_method(self) -> None:
        end_run()

    def test_bind_run_sets_context(self) -> None:
        run_id = bind_run("test", Path("/repo/App.Tests.csproj"))

        assert len(run_id) == 12
        assert current_run() == {
            "run_id": run_id,
            "operation": "test",
            "project": "/repo/App.Tests.csproj",
        }

    def test_end_run_clears_context(self) -> None:
        bind_run("build", "App.Tests.csproj")

        end_run()

        assert current_run() == {}

    def test_each_bind_gets_new_id(self) -> None:
        first = bind_run("test", "A.csproj")
        second = bind_run("test", "A.csproj")

        assert first != second

    def test_worker_context_does_not_leak(self) -> None:
        """A run bound on a worker thread is invisible to the caller."""
        seen: list[dict[str, object]] = []

        def worker() -> None:
            bind_run("test", "A.csproj")
            seen.append(current_run())

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen[0]["operation"] == "test"
        assert current_run() == {}


class TestConfigureLogging:
    """Handler installation from LoggingConfig."""

    def setup_method(self) -> None:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
        end_run()

    def test_run_context_in_records(self, tmp_path: Path) -> None:
        log_file = tmp_path / "run.log"
        configure_logging(
            LoggingConfig(
                level="INFO",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )
        run_id = bind_run("test", "App.Tests.csproj")

        get_logger().info("test_run_started", filtered=False)
        end_run()
        get_logger().info("after_run")

        during, after = _json_lines(log_file)
        assert during["event"] == "test_run_started"
        assert during["run_id"] == run_id
        assert during["operation"] == "test"
        assert during["project"] == "App.Tests.csproj"
        assert during["level"] == "info"
        assert "timestamp" in during
        assert "run_id" not in after

    def test_output_levels(self, tmp_path: Path) -> None:
        """Each output filters at its own level, else the root level."""
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        configure_logging(
            LoggingConfig(
                level="DEBUG",
                outputs=[
                    LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                    LogOutputConfig(format="json", destination=str(debug_file)),
                ],
            )
        )

        get_logger().debug("discovery_cache_hit")
        get_logger().info("tests_enumerated")

        assert [r["event"] for r in _json_lines(info_file)] == ["tests_enumerated"]
        assert [r["event"] for r in _json_lines(debug_file)] == [
            "discovery_cache_hit",
            "tests_enumerated",
        ]

    def test_default_level_drops_info(self, tmp_path: Path) -> None:
        log_file = tmp_path / "app.log"
        configure_logging(
            LoggingConfig(outputs=[LogOutputConfig(format="json", destination=str(log_file))])
        )

        get_logger().info("tests_enumerated")
        get_logger().warning("discovery_cache_write_failed")

        assert [r["event"] for r in _json_lines(log_file)] == ["discovery_cache_write_failed"]

    def test_verbose_keeps_file_outputs(self, tmp_path: Path) -> None:
        """Verbose mode still writes to configured files, at debug unless pinned."""
        inherited = tmp_path / "inherited.log"
        pinned = tmp_path / "pinned.log"
        configure_logging(
            LoggingConfig(
                level="WARNING",
                outputs=[
                    LogOutputConfig(format="json", destination=str(inherited)),
                    LogOutputConfig(format="json", destination=str(pinned), level="ERROR"),
                ],
            ),
            verbose=True,
        )

        get_logger().debug("source_index_built")
        get_logger().error("test_run_crashed")

        assert [r["event"] for r in _json_lines(inherited)] == [
            "source_index_built",
            "test_run_crashed",
        ]
        assert [r["event"] for r in _json_lines(pinned)] == ["test_run_crashed"]

    def test_default_config(self) -> None:
        configure_logging()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert handlers[0].level == logging.WARNING

    def test_named_logger(self, tmp_path: Path) -> None:
        log_file = tmp_path / "named.log"
        configure_logging(
            LoggingConfig(
                level="INFO",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )

        get_logger("testament.cli").info("session_created")

        assert _json_lines(log_file)[0]["logger"] == "testament.cli"
