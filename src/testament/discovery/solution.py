"""Solution and project descriptor location.

Finds the .sln (or .csproj) to work from and extracts the test projects a
solution references.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path

import structlog

from testament.core.errors import DiscoveryError

logger = structlog.get_logger()

SOLUTION_SUFFIX = ".sln"
PROJECT_SUFFIX = ".csproj"
DEFAULT_PROJECT_SUFFIXES = ("Tests", "Test")

# Project("{FAE04EC0-...}") = "Name", "relative\path\Name.csproj", "{GUID}"
_PROJECT_LINE = re.compile(
    r'^Project\("[^"]*"\)\s*=\s*"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"'
)


def _files_with_suffix(directory: Path, suffix: str) -> list[Path]:
    try:
        return sorted(p for p in directory.iterdir() if p.suffix == suffix and p.is_file())
    except OSError as e:
        raise DiscoveryError.file_read(str(directory), str(e)) from e


def find_solution(start: Path) -> Path | None:
    """Search ``start`` and its ancestors for a .sln file."""
    current = start.resolve()
    for directory in (current, *current.parents):
        solutions = _files_with_suffix(directory, SOLUTION_SUFFIX)
        if solutions:
            return solutions[0]
    return None


def locate_descriptor(start: Path) -> Path:
    """Resolve a solution file, project file or directory to a descriptor.

    A directory is searched upward for a solution; failing that, a project
    file directly inside it is used.

    Raises:
        DiscoveryError: When nothing is found. No partial result.
    """
    start = start.expanduser()
    if start.is_file():
        if start.suffix in (SOLUTION_SUFFIX, PROJECT_SUFFIX):
            return start.resolve()
        raise DiscoveryError.solution_not_found(str(start))

    if not start.is_dir():
        raise DiscoveryError.solution_not_found(str(start))

    solution = find_solution(start)
    if solution is not None:
        logger.debug("solution_located", path=str(solution))
        return solution

    projects = _files_with_suffix(start.resolve(), PROJECT_SUFFIX)
    if projects:
        logger.debug("project_located", path=str(projects[0]))
        return projects[0]

    raise DiscoveryError.solution_not_found(str(start))


def is_test_project_name(name: str, suffixes: Sequence[str] = DEFAULT_PROJECT_SUFFIXES) -> bool:
    return any(name.endswith(suffix) for suffix in suffixes)


def parse_solution(
    sln_path: Path,
    suffixes: Sequence[str] = DEFAULT_PROJECT_SUFFIXES,
) -> list[Path]:
    """Extract the existing test project paths a solution references.

    Only ``.csproj`` entries whose project name ends with one of ``suffixes``
    are kept.
    """
    try:
        content = sln_path.read_text(encoding="utf-8-sig", errors="replace")
    except OSError as e:
        raise DiscoveryError.file_read(str(sln_path), str(e)) from e

    sln_dir = sln_path.parent
    projects: list[Path] = []
    for line in content.splitlines():
        match = _PROJECT_LINE.match(line)
        if match is None:
            continue
        name, rel_path = match.group("name"), match.group("path")
        if not rel_path.endswith(PROJECT_SUFFIX) or not is_test_project_name(name, suffixes):
            continue
        full_path = (sln_dir / rel_path.replace("\\", "/")).resolve()
        if full_path.exists() and full_path not in projects:
            projects.append(full_path)

    logger.debug("solution_parsed", path=str(sln_path), test_projects=len(projects))
    return projects


def resolve_test_projects(
    descriptor: Path,
    suffixes: Sequence[str] = DEFAULT_PROJECT_SUFFIXES,
) -> list[Path]:
    """Test project paths for a descriptor: the project itself, or a solution's."""
    if descriptor.suffix == PROJECT_SUFFIX:
        return [descriptor]
    return parse_solution(descriptor, suffixes)


def find_project_for_file(file_path: Path) -> Path | None:
    """Nearest .csproj at or above a source file's directory."""
    for directory in file_path.resolve().parents:
        try:
            projects = _files_with_suffix(directory, PROJECT_SUFFIX)
        except DiscoveryError:
            continue
        if projects:
            return projects[0]
    return None
