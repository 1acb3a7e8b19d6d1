"""Concurrent discovery across test projects."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from testament.core.errors import InternalError, TestamentError
from testament.discovery.enumerator import TestEnumerator
from testament.discovery.resolver import is_fully_qualified_batch, resolve
from testament.discovery.source_index import SourceIndexer
from testament.events import (
    DiscoveryComplete,
    EventStream,
    ProjectDiscovered,
    ProjectDiscoveryFailed,
)
from testament.models import TestProject

logger = structlog.get_logger()


@dataclass
class DiscoveryCoordinator:
    """Fans discovery out to one worker per project.

    Design:
    - ``discover`` returns placeholder projects immediately
    - A supervisor thread owns a pool sized to the project count
    - Each worker enumerates, indexes source when needed, and resolves
    - The supervisor waits for every worker, then sends DiscoveryComplete
    """

    enumerator: TestEnumerator = field(default_factory=TestEnumerator)
    indexer: SourceIndexer = field(default_factory=SourceIndexer)

    def discover(self, project_paths: Sequence[Path]) -> tuple[list[TestProject], EventStream]:
        projects = [TestProject.from_path(path) for path in project_paths]
        stream = EventStream()
        supervisor = threading.Thread(
            target=self._supervise,
            args=(list(project_paths), stream),
            name="testament-discovery",
            daemon=True,
        )
        supervisor.start()
        logger.debug("discovery_started", projects=len(projects))
        return projects, stream

    def _supervise(self, project_paths: list[Path], stream: EventStream) -> None:
        with ThreadPoolExecutor(
            max_workers=max(1, len(project_paths)),
            thread_name_prefix="testament-discover",
        ) as executor:
            futures = [
                executor.submit(self._discover_one, index, path, stream)
                for index, path in enumerate(project_paths)
            ]
            wait(futures)
        stream.send(DiscoveryComplete())
        logger.debug("discovery_complete", projects=len(project_paths))

    def _discover_one(self, index: int, project_path: Path, stream: EventStream) -> None:
        try:
            names = self.enumerator.list_tests(project_path)
            source_index = None
            if not is_fully_qualified_batch(names):
                source_index = self.indexer.build_index(project_path.parent)
            classes = resolve(names, source_index)
        except TestamentError as e:
            logger.info("project_discovery_failed", project=str(project_path), error=e.message)
            stream.send(ProjectDiscoveryFailed(index=index, message=e.message))
            return
        except Exception as e:
            logger.exception("project_discovery_crashed", project=str(project_path))
            error = InternalError.unexpected("discovery", e)
            stream.send(ProjectDiscoveryFailed(index=index, message=error.message))
            return

        logger.info(
            "project_discovered",
            project=str(project_path),
            classes=len(classes),
            tests=sum(len(c.tests) for c in classes),
        )
        stream.send(ProjectDiscovered(index=index, classes=classes))
