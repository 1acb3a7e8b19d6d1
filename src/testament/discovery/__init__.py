"""Test discovery: locating projects, enumerating and resolving their tests."""

from testament.discovery.cache import (
    DiscoveryCache,
    FileDiscoveryCache,
    NullDiscoveryCache,
    compute_fingerprint,
    default_cache_dir,
)
from testament.discovery.coordinator import DiscoveryCoordinator
from testament.discovery.enumerator import TestEnumerator
from testament.discovery.resolver import is_fully_qualified_batch, resolve
from testament.discovery.solution import (
    find_project_for_file,
    find_solution,
    locate_descriptor,
    parse_solution,
    resolve_test_projects,
)
from testament.discovery.source_index import SourceIndexer

__all__ = [
    "DiscoveryCache",
    "DiscoveryCoordinator",
    "FileDiscoveryCache",
    "NullDiscoveryCache",
    "SourceIndexer",
    "TestEnumerator",
    "compute_fingerprint",
    "default_cache_dir",
    "find_project_for_file",
    "find_solution",
    "is_fully_qualified_batch",
    "locate_descriptor",
    "parse_solution",
    "resolve",
    "resolve_test_projects",
]
