"""Correlation of report records with the discovered test tree.

Reported names do not always match discovered names: a bare-name
framework reports ``T1`` while the tree holds ``NS.A.T1``, and vstest may
report the reverse. Matching runs in three passes of decreasing precision,
and each record is consumed at most once per call.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from testament.models import (
    NAME_SEPARATOR,
    Outcome,
    OutcomeRecord,
    TestCase,
    TestProject,
    TestStatus,
    bare_name,
    split_params,
)

logger = structlog.get_logger()


@dataclass
class CorrelationSummary:
    """Counts from applying one report to one project."""

    records: int = 0
    matched: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def unmatched_records(self) -> int:
        return self.records - self.matched

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


def dotted_suffixes(name: str) -> list[str]:
    """Proper dotted suffixes, longest first, parameters re-appended.

    ``NS.A.T1(x: 1.5)`` -> ``["A.T1(x: 1.5)", "T1(x: 1.5)"]``
    """
    base, params = split_params(name)
    segments = base.split(NAME_SEPARATOR)
    return [NAME_SEPARATOR.join(segments[i:]) + params for i in range(1, len(segments))]


class _RecordPool:
    """Records with lookup tables and a consumed flag per record."""

    def __init__(self, records: list[OutcomeRecord]) -> None:
        self.records = records
        self.consumed = [False] * len(records)
        self.by_name: dict[str, list[int]] = {}
        self.by_suffix: dict[str, list[int]] = {}
        for i, record in enumerate(records):
            self.by_name.setdefault(record.test_name, []).append(i)
            for suffix in dotted_suffixes(record.test_name):
                self.by_suffix.setdefault(suffix, []).append(i)

    def take_from(self, table: dict[str, list[int]], key: str) -> OutcomeRecord | None:
        for i in table.get(key, ()):
            if not self.consumed[i]:
                self.consumed[i] = True
                return self.records[i]
        return None

    def take_first(
        self, keys: Iterable[str], table: dict[str, list[int]]
    ) -> OutcomeRecord | None:
        for key in keys:
            record = self.take_from(table, key)
            if record is not None:
                return record
        return None

    def take_where(self, predicate: Callable[[OutcomeRecord], bool]) -> OutcomeRecord | None:
        for i, record in enumerate(self.records):
            if not self.consumed[i] and predicate(record):
                self.consumed[i] = True
                return record
        return None


def _apply(test: TestCase, record: OutcomeRecord, summary: CorrelationSummary) -> None:
    test.status = record.outcome.status
    test.duration_ms = record.duration_ms
    test.error_message = record.error_message
    summary.matched += 1
    if record.outcome is Outcome.PASSED:
        summary.passed += 1
    elif record.outcome is Outcome.FAILED:
        summary.failed += 1
    else:
        summary.skipped += 1


def correlate(project: TestProject, records: list[OutcomeRecord]) -> CorrelationSummary:
    """Apply report records to a project's tests in place."""
    pool = _RecordPool(records)
    summary = CorrelationSummary(records=len(records))
    tests = list(project.iter_tests())

    # Exact, then test is a suffix of a record, then a record is a suffix of the test.
    for test in tests:
        record = (
            pool.take_from(pool.by_name, test.full_name)
            or pool.take_from(pool.by_suffix, test.full_name)
            or pool.take_first(dotted_suffixes(test.full_name), pool.by_name)
        )
        if record is not None:
            _apply(test, record, summary)

    for test in tests:
        if test.status is not TestStatus.RUNNING:
            continue
        needle = NAME_SEPARATOR + test.full_name
        record = pool.take_where(
            lambda r, t=test, n=needle: r.test_name == t.full_name or r.test_name.endswith(n)
        )
        if record is not None:
            _apply(test, record, summary)

    for test in tests:
        if test.status is not TestStatus.RUNNING:
            continue
        keys = {test.name, bare_name(test.name)}
        record = pool.take_where(
            lambda r, k=keys: r.test_name in k or bare_name(r.test_name) in k
        )
        if record is not None:
            _apply(test, record, summary)

    logger.debug(
        "results_correlated",
        project=project.name,
        records=summary.records,
        matched=summary.matched,
        failed=summary.failed,
    )
    return summary


def reset_unmatched(projects: Iterable[TestProject]) -> int:
    """Return every still-running test to not-run. Returns how many were reset."""
    reset = 0
    for project in projects:
        for test in project.iter_tests():
            if test.status is TestStatus.RUNNING:
                test.status = TestStatus.NOT_RUN
                reset += 1
    return reset
