"""Resolution of enumerated names into a class tree.

``dotnet test --list-tests`` prints fully qualified names for some test
frameworks and bare method names for others. Qualified batches are split
directly; bare batches are qualified through a source index of method
declarations.
"""

from __future__ import annotations

from collections.abc import Iterable

from testament.models import (
    NAME_SEPARATOR,
    SourceIndex,
    SourceMethodInfo,
    TestCase,
    TestClass,
    split_params,
)


def is_qualified_name(name: str) -> bool:
    """At least namespace, class and method: two separators before any parameters."""
    return split_params(name)[0].count(NAME_SEPARATOR) >= 2


def is_fully_qualified_batch(names: list[str]) -> bool:
    """True when a strict majority of the names is qualified."""
    qualified = sum(1 for name in names if is_qualified_name(name))
    return qualified * 2 > len(names)


def _display_name(class_name: str, method: str) -> str:
    if not class_name:
        return method
    return f"{class_name}{NAME_SEPARATOR}{method}"


def _split_qualified(name: str) -> tuple[str, str, TestCase]:
    """(namespace, class, test) for a name taken at face value."""
    base, params = split_params(name)
    parts = base.rsplit(NAME_SEPARATOR, 2)
    if len(parts) == 3:
        namespace, class_name, method = parts
    elif len(parts) == 2:
        namespace, (class_name, method) = "", parts
    else:
        return "", "", TestCase(name=name, full_name=name)
    test = TestCase(name=_display_name(class_name, method + params), full_name=name)
    return namespace, class_name, test


def _lookup(name: str, index: SourceIndex) -> tuple[str, list[SourceMethodInfo]] | None:
    """First cascade step with a hit: raw name, stripped name, final token."""
    base, _ = split_params(name)
    for key in (name, base, base.rsplit(NAME_SEPARATOR, 1)[-1]):
        candidates = index.get(key)
        if candidates:
            return key, candidates
    return None


def _group(entries: Iterable[tuple[str, str, TestCase]]) -> list[TestClass]:
    classes: dict[str, TestClass] = {}
    for namespace, class_name, test in entries:
        key = f"{namespace}{NAME_SEPARATOR}{class_name}" if namespace else class_name
        group = classes.get(key)
        if group is None:
            group = classes[key] = TestClass(name=class_name, namespace=namespace)
        group.tests.append(test)

    result = sorted(classes.values(), key=lambda c: c.full_name.lower())
    for group in result:
        group.tests.sort(key=lambda t: t.name.lower())
    return result


def resolve(names: list[str], source_index: SourceIndex | None = None) -> list[TestClass]:
    """Group raw enumerated names into classes.

    Args:
        names: Raw names, in tool order.
        source_index: Method declarations; only consulted for bare batches.

    Returns:
        Classes sorted case-insensitively by full name, tests sorted by
        display name. Names that cannot be placed land in the
        uncategorized group (empty class name and namespace).
    """
    if is_fully_qualified_batch(names):
        return _group(_split_qualified(name) for name in names)

    index = source_index or {}
    counters: dict[str, int] = {}
    entries: list[tuple[str, str, TestCase]] = []
    for name in names:
        hit = _lookup(name, index)
        if hit is None:
            entries.append(("", "", TestCase(name=name, full_name=name)))
            continue

        key, candidates = hit
        turn = counters.get(key, 0)
        counters[key] = turn + 1
        info = candidates[turn % len(candidates)]

        params = split_params(name)[1]
        test = TestCase(
            name=_display_name(info.class_name, info.method_name + params),
            full_name=info.qualified_name + params,
        )
        entries.append((info.namespace, info.class_name, test))

    return _group(entries)
