"""Events sent from background workers to the front end.

Each operation (a discovery round, a run, a build) gets its own
``EventStream``. Workers only ever call ``send``; the front end drains the
stream with ``poll`` once per tick and never blocks on it.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from testament.models import OutcomeRecord, TestClass


# =============================================================================
# Discovery events
# =============================================================================


@dataclass
class ProjectDiscovered:
    index: int
    classes: list[TestClass]


@dataclass
class ProjectDiscoveryFailed:
    index: int
    message: str


@dataclass
class DiscoveryComplete:
    pass


DiscoveryEvent = Union[ProjectDiscovered, ProjectDiscoveryFailed, DiscoveryComplete]


# =============================================================================
# Execution events
# =============================================================================


@dataclass
class OutputLine:
    text: str


@dataclass
class ProgressIncrement:
    pass


@dataclass
class ExecutionCompleted:
    records: list[OutcomeRecord] = field(default_factory=list)
    exit_code: int | None = None


@dataclass
class ExecutionFailed:
    message: str
    exit_code: int | None = None


ExecutionEvent = Union[OutputLine, ProgressIncrement, ExecutionCompleted, ExecutionFailed]

Event = Union[DiscoveryEvent, ExecutionEvent]

TERMINAL_EVENTS = (DiscoveryComplete, ExecutionCompleted, ExecutionFailed)


class EventStream:
    """Multi-producer, single-consumer event channel for one operation.

    The stream is closed once its terminal event has been drained.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Event] = queue.Queue()
        self._closed = False

    def send(self, event: Event) -> None:
        self._queue.put(event)

    def poll(self) -> list[Event]:
        """Drain every available event without blocking."""
        events: list[Event] = []
        while not self._closed:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            events.append(event)
            if isinstance(event, TERMINAL_EVENTS):
                self._closed = True
        return events

    def wait(self, timeout: float | None = None) -> list[Event]:
        """Block up to ``timeout`` for the next event, then drain the rest.

        For headless consumers; interactive loops use ``poll``.
        """
        if self._closed:
            return []
        try:
            first = self._queue.get(timeout=timeout)
        except queue.Empty:
            return []
        if isinstance(first, TERMINAL_EVENTS):
            self._closed = True
            return [first]
        return [first, *self.poll()]

    @property
    def closed(self) -> bool:
        return self._closed
