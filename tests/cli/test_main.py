"""Tests for the testament CLI."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from testament import __version__
from testament.cli.main import cli
from testament.events import (
    DiscoveryComplete,
    EventStream,
    ExecutionCompleted,
    ExecutionFailed,
    OutputLine,
    ProgressIncrement,
    ProjectDiscovered,
    ProjectDiscoveryFailed,
)
from testament.models import Outcome, OutcomeRecord, TestCase, TestClass, TestProject
from testament.session import Session


def _stream(*events: object) -> EventStream:
    stream = EventStream()
    for event in events:
        stream.send(event)  # type: ignore[arg-type]
    return stream


def _session(paths: list[Path], run_events: list[object] | None = None) -> Session:
    """Session whose discovery and runs replay canned events."""
    classes = [
        TestClass(
            name="MathTests",
            namespace="App.Tests",
            tests=[
                TestCase("MathTests.Adds", "App.Tests.MathTests.Adds"),
                TestCase("MathTests.Divides", "App.Tests.MathTests.Divides"),
            ],
        )
    ]
    coordinator = MagicMock()
    coordinator.discover.side_effect = lambda project_paths: (
        [TestProject.from_path(p) for p in project_paths],
        _stream(ProjectDiscovered(index=0, classes=classes), DiscoveryComplete()),
    )
    driver = MagicMock()
    driver.run.side_effect = lambda *_: _stream(*(run_events or []))
    driver.build.side_effect = lambda *_: _stream(ExecutionCompleted(records=[], exit_code=0))
    return Session(cli=MagicMock(), coordinator=coordinator, driver=driver, project_paths=paths)


@pytest.fixture
def runner() -> CliRunner:
    # Wide enough that rich never wraps test names or messages.
    return CliRunner(env={"COLUMNS": "200"})


@pytest.fixture
def project_path(solution_dir: Path) -> Path:
    return solution_dir / "tests" / "App.Tests" / "App.Tests.csproj"


class TestGroup:
    """Top-level options."""

    def test_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("list", "run", "build", "cache"):
            assert command in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestListCommand:
    """testament list."""

    def test_prints_tree(self, runner: CliRunner, solution_dir: Path, project_path: Path) -> None:
        session = _session([project_path])

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["list", str(solution_dir)])

        assert result.exit_code == 0, result.output
        assert "App.Tests" in result.output
        assert "(2 tests)" in result.output
        assert "MathTests.Divides" in result.output

    def test_discovery_error_shown(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session([project_path])
        session.coordinator.discover.side_effect = lambda paths: (
            [TestProject.from_path(p) for p in paths],
            _stream(ProjectDiscoveryFailed(index=0, message="restore failed"), DiscoveryComplete()),
        )

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["list", str(solution_dir)])

        assert result.exit_code == 0
        assert "discovery failed" in result.output
        assert "restore failed" in result.output

    def test_verbose_applies_repo_logging(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        (solution_dir / ".testament").mkdir()
        (solution_dir / ".testament" / "config.yaml").write_text(
            "logging:\n  level: ERROR\n  outputs:\n"
            f"    - format: json\n      destination: {solution_dir / 'run.log'}\n"
        )
        session = _session([project_path])

        with (
            patch("testament.cli.utils.Session.from_config", return_value=session),
            patch("testament.cli.utils.configure_logging") as mock_configure,
        ):
            result = runner.invoke(cli, ["-v", "list", str(solution_dir)])

        assert result.exit_code == 0, result.output
        logging_config = mock_configure.call_args.args[0]
        assert logging_config.level == "ERROR"
        assert logging_config.outputs[0].destination == str(solution_dir / "run.log")
        assert mock_configure.call_args.kwargs == {"verbose": True}

    def test_nothing_to_open(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["list", str(tmp_path)])

        assert result.exit_code != 0
        assert "No solution or project file found" in result.output


class TestRunCommand:
    """testament run."""

    def test_passing_run(self, runner: CliRunner, solution_dir: Path, project_path: Path) -> None:
        session = _session(
            [project_path],
            [
                ProgressIncrement(),
                ProgressIncrement(),
                ExecutionCompleted(
                    records=[
                        OutcomeRecord("App.Tests.MathTests.Adds", Outcome.PASSED, 3),
                        OutcomeRecord("App.Tests.MathTests.Divides", Outcome.PASSED, 4),
                    ],
                    exit_code=0,
                ),
            ],
        )

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir)])

        assert result.exit_code == 0, result.output
        assert "2 passed" in result.output

    def test_failing_run_exits_nonzero(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session(
            [project_path],
            [
                OutputLine(text="[console] diverging"),
                ExecutionCompleted(
                    records=[
                        OutcomeRecord("App.Tests.MathTests.Adds", Outcome.PASSED),
                        OutcomeRecord(
                            "App.Tests.MathTests.Divides",
                            Outcome.FAILED,
                            12,
                            "Attempted to divide by zero.",
                        ),
                    ],
                    exit_code=1,
                ),
            ],
        )

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir)])

        assert result.exit_code == 1
        assert "[console] diverging" in result.output
        assert "Attempted to divide by zero." in result.output
        assert "1 failed" in result.output

    def test_filter_selects_tests(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session([project_path], [ExecutionCompleted(records=[], exit_code=0)])

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir), "--filter", "divides"])

        assert result.exit_code == 0, result.output
        session.driver.run.assert_called_once_with(
            project_path, ["App.Tests.MathTests.Divides"]
        )

    def test_filter_without_matches(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session([project_path])

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir), "--filter", "nothing"])

        assert result.exit_code == 0
        assert "no tests match" in result.output
        session.driver.run.assert_not_called()

    def test_run_failure_reported(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session(
            [project_path], [ExecutionFailed(message="Malformed test report: x", exit_code=1)]
        )

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir)])

        assert result.exit_code == 1
        assert "Malformed test report" in result.output

    def test_unknown_project(
        self, runner: CliRunner, solution_dir: Path, project_path: Path
    ) -> None:
        session = _session([project_path])

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["run", str(solution_dir), "--project", "Nope"])

        assert result.exit_code != 0
        assert "No test project named 'Nope'" in result.output


class TestBuildCommand:
    def test_build(self, runner: CliRunner, solution_dir: Path, project_path: Path) -> None:
        session = _session([project_path])

        with patch("testament.cli.utils.Session.from_config", return_value=session):
            result = runner.invoke(cli, ["build", str(solution_dir)])

        assert result.exit_code == 0, result.output
        session.driver.build.assert_called_once_with(project_path)


class TestCacheClear:
    """testament cache clear."""

    def _configure(self, root: Path, cache_dir: Path) -> None:
        (root / ".testament").mkdir()
        (root / ".testament" / "config.yaml").write_text(
            f"discovery:\n  cache_dir: {cache_dir}\n"
        )

    def test_nothing_to_clear(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._configure(tmp_path, tmp_path / "absent")
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli, ["cache", "clear"])

        assert result.exit_code == 0
        assert "Nothing to clear" in result.output

    def test_removes_entries(
        self, runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cache_dir = tmp_path / "cache"
        cache_dir.mkdir()
        (cache_dir / "0123456789abcdef.json").write_text("{}")
        (cache_dir / "fedcba9876543210.json").write_text("{}")
        self._configure(tmp_path, cache_dir)
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(cli, ["cache", "clear"])

        assert result.exit_code == 0, result.output
        assert "Removed 2 cached enumerations" in result.output
        assert list(cache_dir.iterdir()) == []
