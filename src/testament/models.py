"""Core data model.

Canonical structures for discovered projects, classes and tests, the
source-index entries used to recover qualification, and the per-test
outcome records read back from a run's result report.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

NAME_SEPARATOR = "."
UNCATEGORIZED_LABEL = "(uncategorized)"


# =============================================================================
# Name helpers
# =============================================================================


def split_params(name: str) -> tuple[str, str]:
    """Split ``NS.Class.Method(a: 1)`` into ``("NS.Class.Method", "(a: 1)")``."""
    paren = name.find("(")
    if paren < 0:
        return name, ""
    return name[:paren], name[paren:]


def strip_params(name: str) -> str:
    return split_params(name)[0]


def bare_name(name: str) -> str:
    """Token after the final separator, keeping any parameter suffix."""
    base, params = split_params(name)
    return base.rsplit(NAME_SEPARATOR, 1)[-1] + params


# =============================================================================
# Test tree
# =============================================================================


class TestStatus(Enum):
    NOT_RUN = "not_run"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TestCase:
    """A single test in the tree.

    ``name`` is the short, class-qualified display name; ``full_name`` is the
    key results are correlated against.
    """

    name: str
    full_name: str
    status: TestStatus = TestStatus.NOT_RUN
    duration_ms: int | None = None
    error_message: str | None = None


@dataclass
class TestClass:
    """Tests grouped under one declaring class."""

    name: str
    namespace: str
    tests: list[TestCase] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}{NAME_SEPARATOR}{self.name}"

    @property
    def is_uncategorized(self) -> bool:
        return not self.name and not self.namespace

    @property
    def display_name(self) -> str:
        return UNCATEGORIZED_LABEL if self.is_uncategorized else self.full_name


@dataclass
class TestProject:
    """A test project descriptor (.csproj) and its discovered classes.

    ``classes`` is replaced wholesale per discovery round.
    """

    name: str
    path: Path
    classes: list[TestClass] = field(default_factory=list)

    @classmethod
    def from_path(cls, path: Path) -> TestProject:
        return cls(name=path.stem or "Unknown", path=path)

    @property
    def directory(self) -> Path:
        return self.path.parent

    @property
    def test_count(self) -> int:
        return sum(len(c.tests) for c in self.classes)

    def iter_tests(self) -> Iterator[TestCase]:
        for test_class in self.classes:
            yield from test_class.tests


# =============================================================================
# Source index
# =============================================================================


@dataclass(frozen=True)
class SourceMethodInfo:
    """A method declaration found in source, with its declaring scope."""

    method_name: str
    class_name: str
    namespace: str

    @property
    def class_full_name(self) -> str:
        if not self.namespace:
            return self.class_name
        return f"{self.namespace}{NAME_SEPARATOR}{self.class_name}"

    @property
    def qualified_name(self) -> str:
        if not self.class_full_name:
            return self.method_name
        return f"{self.class_full_name}{NAME_SEPARATOR}{self.method_name}"


SourceIndex = dict[str, list[SourceMethodInfo]]
"""Method name -> every declaration of that name, in encounter order."""


# =============================================================================
# Report outcomes
# =============================================================================


class Outcome(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def status(self) -> TestStatus:
        return _OUTCOME_STATUS[self]


_OUTCOME_STATUS = {
    Outcome.PASSED: TestStatus.PASSED,
    Outcome.FAILED: TestStatus.FAILED,
    Outcome.SKIPPED: TestStatus.SKIPPED,
}


@dataclass
class OutcomeRecord:
    """One result entry from a run's report, name exactly as reported."""

    test_name: str
    outcome: Outcome
    duration_ms: int = 0
    error_message: str | None = None
