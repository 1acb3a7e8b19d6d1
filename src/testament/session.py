"""Front-end session state.

The session owns the project tree and the streams of the operations in
flight. Background workers never touch it; every mutation happens in
``poll`` (or ``wait``) on the caller's thread.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from testament.config.models import TestamentConfig
from testament.core.errors import ToolError
from testament.discovery.cache import DiscoveryCache, FileDiscoveryCache, NullDiscoveryCache
from testament.discovery.coordinator import DiscoveryCoordinator
from testament.discovery.enumerator import TestEnumerator
from testament.discovery.solution import locate_descriptor, resolve_test_projects
from testament.discovery.source_index import SourceIndexer
from testament.dotnet import DotnetCli
from testament.events import (
    DiscoveryComplete,
    Event,
    EventStream,
    ExecutionCompleted,
    ExecutionFailed,
    ProgressIncrement,
    ProjectDiscovered,
    ProjectDiscoveryFailed,
)
from testament.execution.correlator import CorrelationSummary, correlate, reset_unmatched
from testament.execution.driver import ExecutionDriver
from testament.models import TestCase, TestProject, TestStatus

logger = structlog.get_logger()


def make_cache(config: TestamentConfig) -> DiscoveryCache:
    discovery = config.discovery
    if not discovery.cache_enabled:
        return NullDiscoveryCache()
    cache_dir = Path(discovery.cache_dir) if discovery.cache_dir else None
    return FileDiscoveryCache(
        cache_dir=cache_dir,
        fingerprint_depth=discovery.fingerprint_depth,
        fully_qualified_listing=discovery.fully_qualified_listing,
    )


@dataclass
class Session:
    """Projects, discovery results and the single in-flight run or build.

    Usage::

        session = Session.from_config(load_config(), Path("."))
        session.begin_discovery()
        while session.discovering:
            session.wait(0.1)
        session.begin_run(0)
    """

    cli: DotnetCli
    coordinator: DiscoveryCoordinator
    driver: ExecutionDriver
    project_paths: list[Path] = field(default_factory=list)

    projects: list[TestProject] = field(default_factory=list, init=False)
    discovery_errors: dict[int, str] = field(default_factory=dict, init=False)
    last_failed: dict[int, list[str]] = field(default_factory=dict, init=False)
    last_summary: CorrelationSummary | None = field(default=None, init=False)
    last_error: str | None = field(default=None, init=False)
    running_project_index: int | None = field(default=None, init=False)
    completed: int = field(default=0, init=False)
    total: int = field(default=0, init=False)

    _discovery: EventStream | None = field(default=None, init=False, repr=False)
    _execution: EventStream | None = field(default=None, init=False, repr=False)
    _building: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.projects = [TestProject.from_path(path) for path in self.project_paths]

    @classmethod
    def from_config(cls, config: TestamentConfig, start: Path) -> Session:
        """Wire a session for the descriptor found from ``start``.

        Raises:
            DiscoveryError: No solution or project could be located.
        """
        descriptor = locate_descriptor(start)
        project_paths = resolve_test_projects(descriptor, config.discovery.project_suffixes)
        cli = DotnetCli.from_config(config.runner)
        enumerator = TestEnumerator(
            cli=cli,
            cache=make_cache(config),
            fully_qualified_listing=config.discovery.fully_qualified_listing,
        )
        logger.info(
            "session_created",
            descriptor=str(descriptor),
            projects=len(project_paths),
        )
        return cls(
            cli=cli,
            coordinator=DiscoveryCoordinator(enumerator=enumerator, indexer=SourceIndexer()),
            driver=ExecutionDriver(cli=cli),
            project_paths=project_paths,
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def discovering(self) -> bool:
        return self._discovery is not None

    @property
    def executing(self) -> bool:
        return self._execution is not None

    @property
    def busy(self) -> bool:
        return self.discovering or self.executing

    @property
    def progress(self) -> tuple[int, int]:
        """(completed, total) for the active or most recent run."""
        return self.completed, self.total

    def tests_matching(self, project_index: int, text: str) -> list[TestCase]:
        """Tests of a project whose display or full name contains ``text``, ignoring case."""
        needle = text.lower()
        return [
            test
            for test in self.projects[project_index].iter_tests()
            if needle in test.name.lower() or needle in test.full_name.lower()
        ]

    # =========================================================================
    # Commands
    # =========================================================================

    def begin_discovery(self, project_paths: Sequence[Path] | None = None) -> None:
        """Start a discovery round, replacing the project list with placeholders.

        Raises:
            ToolError: dotnet is unavailable, or a run or build is in flight.
        """
        if self.executing:
            raise ToolError.busy()
        self.cli.ensure_available()
        if project_paths is not None:
            self.project_paths = list(project_paths)
        self.projects, self._discovery = self.coordinator.discover(self.project_paths)
        self.discovery_errors.clear()
        self.last_failed.clear()

    def begin_run(
        self, project_index: int, test_names: Sequence[str] | None = None
    ) -> EventStream | None:
        """Run a project, or only the tests whose full names are given.

        Returns None when a filtered selection matches nothing.

        Raises:
            ToolError: A run or build is already in flight.
        """
        if self.executing:
            raise ToolError.busy()
        project = self.projects[project_index]

        selected = set(test_names) if test_names is not None else None
        marked = 0
        for test in project.iter_tests():
            if selected is None or test.full_name in selected:
                test.status = TestStatus.RUNNING
                marked += 1

        if selected is not None and marked == 0:
            logger.info("run_selection_empty", project=project.name)
            return None

        self.running_project_index = project_index
        self.completed, self.total = 0, marked
        self.last_error = None
        self._building = False
        self._execution = self.driver.run(
            project.path, sorted(selected) if selected is not None else None
        )
        return self._execution

    def begin_run_failed(self, project_index: int) -> EventStream | None:
        """Re-run the tests that failed in the project's previous run."""
        failed = self.last_failed.get(project_index)
        if not failed:
            return None
        return self.begin_run(project_index, failed)

    def begin_build(self, project_index: int) -> EventStream:
        if self.executing:
            raise ToolError.busy()
        self.running_project_index = project_index
        self.completed, self.total = 0, 0
        self.last_error = None
        self._building = True
        self._execution = self.driver.build(self.projects[project_index].path)
        return self._execution

    # =========================================================================
    # Event application
    # =========================================================================

    def poll(self) -> list[Event]:
        """Drain and apply every pending event without blocking."""
        events: list[Event] = []
        if self._discovery is not None:
            events.extend(self._discovery.poll())
        if self._execution is not None:
            events.extend(self._execution.poll())
        for event in events:
            self._apply(event)
        return events

    def wait(self, timeout: float | None = None) -> list[Event]:
        """Block up to ``timeout`` for events of the in-flight operation, then apply them."""
        stream = self._execution or self._discovery
        if stream is None:
            return []
        events = stream.wait(timeout)
        for event in events:
            self._apply(event)
        return events

    def _apply(self, event: Event) -> None:
        if isinstance(event, ProjectDiscovered):
            self.projects[event.index].classes = event.classes
            self.discovery_errors.pop(event.index, None)
        elif isinstance(event, ProjectDiscoveryFailed):
            self.discovery_errors[event.index] = event.message
        elif isinstance(event, DiscoveryComplete):
            self._discovery = None
        elif isinstance(event, ProgressIncrement):
            self.completed += 1
        elif isinstance(event, ExecutionCompleted):
            self._finish_execution(event)
        elif isinstance(event, ExecutionFailed):
            self.last_error = event.message
            reset_unmatched(self.projects)
            self._end_execution()

    def _finish_execution(self, event: ExecutionCompleted) -> None:
        index = self.running_project_index
        if not self._building and index is not None:
            project = self.projects[index]
            self.last_summary = correlate(project, event.records)
            self.last_failed[index] = [
                t.full_name for t in project.iter_tests() if t.status is TestStatus.FAILED
            ]
            reset = reset_unmatched(self.projects)
            logger.info(
                "run_applied",
                project=project.name,
                passed=self.last_summary.passed,
                failed=self.last_summary.failed,
                skipped=self.last_summary.skipped,
                reset=reset,
            )
        self._end_execution()

    def _end_execution(self) -> None:
        self._execution = None
        self._building = False
        self.running_project_index = None
