"""Persistent cache of enumerated test names.

Enumeration shells out to dotnet and is the slowest step of discovery. The
raw names are cached per project, keyed by a fingerprint of the project
descriptor and its build output, so an unchanged project is never asked
twice.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger()

DEFAULT_FINGERPRINT_DEPTH = 5
OUTPUT_DIR_NAME = "bin"
CACHE_FILE_SUFFIX = ".json"


class DiscoveryCache(Protocol):
    """Storage for raw enumerated names, keyed by project descriptor."""

    def load(self, project_path: Path) -> list[str] | None: ...

    def save(self, project_path: Path, names: list[str]) -> None: ...


def default_cache_dir() -> Path:
    """``$XDG_CACHE_HOME/testament/discovery``, else ``~/.cache/testament/discovery``."""
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "testament" / "discovery"


def _newest_mtime_ns(root: Path, max_depth: int) -> int:
    newest = 0
    for dirpath, dirs, files in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        if depth + 1 >= max_depth:
            dirs[:] = []
        for name in files:
            try:
                newest = max(newest, (Path(dirpath) / name).stat().st_mtime_ns)
            except OSError:
                continue
    return newest


def compute_fingerprint(
    project_path: Path,
    max_depth: int = DEFAULT_FINGERPRINT_DEPTH,
) -> int | None:
    """Newest modification time of the descriptor or anything it built.

    Returns None when the descriptor itself cannot be stat'ed.
    """
    try:
        fingerprint = project_path.stat().st_mtime_ns
    except OSError:
        return None
    output_dir = project_path.parent / OUTPUT_DIR_NAME
    if output_dir.is_dir():
        fingerprint = max(fingerprint, _newest_mtime_ns(output_dir, max_depth))
    return fingerprint


class FileDiscoveryCache:
    """One JSON document per project under a cache directory.

    Corrupt entries read as misses; failed writes are logged and dropped.
    """

    def __init__(
        self,
        cache_dir: Path | None = None,
        fingerprint_depth: int = DEFAULT_FINGERPRINT_DEPTH,
        fully_qualified_listing: bool = True,
    ) -> None:
        self.cache_dir = cache_dir if cache_dir is not None else default_cache_dir()
        self.fingerprint_depth = fingerprint_depth
        # Entries written under the other listing mode hold differently shaped names.
        self.fully_qualified_listing = fully_qualified_listing

    def entry_path(self, project_path: Path) -> Path:
        key = hashlib.sha256(str(project_path.resolve()).encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / f"{key}{CACHE_FILE_SUFFIX}"

    def load(self, project_path: Path) -> list[str] | None:
        entry = self.entry_path(project_path)
        if not entry.exists():
            return None

        try:
            data = json.loads(entry.read_text(encoding="utf-8"))
            stored_project = data["project"]
            stored_fingerprint = data["fingerprint"]
            names = data["tests"]
            stored_listing = data.get("fully_qualified_listing")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("discovery_cache_corrupt", path=str(entry), error=str(e))
            return None

        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            logger.debug("discovery_cache_corrupt", path=str(entry), error="bad tests list")
            return None
        if stored_project != str(project_path.resolve()):
            return None
        if stored_listing is not self.fully_qualified_listing:
            logger.debug("discovery_cache_stale", project=str(project_path), reason="listing mode")
            return None

        current = compute_fingerprint(project_path, self.fingerprint_depth)
        if current is None or stored_fingerprint != current:
            logger.debug("discovery_cache_stale", project=str(project_path))
            return None

        logger.debug("discovery_cache_hit", project=str(project_path), count=len(names))
        return list(names)

    def save(self, project_path: Path, names: list[str]) -> None:
        fingerprint = compute_fingerprint(project_path, self.fingerprint_depth)
        if fingerprint is None:
            return
        payload = {
            "project": str(project_path.resolve()),
            "fingerprint": fingerprint,
            "fully_qualified_listing": self.fully_qualified_listing,
            "tests": list(names),
        }
        entry = self.entry_path(project_path)
        tmp_name: str | None = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=".tmp-", suffix=CACHE_FILE_SUFFIX
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_name, entry)
            tmp_name = None
        except OSError as e:
            logger.warning("discovery_cache_write_failed", path=str(entry), error=str(e))
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)

    def clear(self) -> int:
        """Remove every cached entry. Returns the number removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for entry in self.cache_dir.glob(f"*{CACHE_FILE_SUFFIX}"):
            try:
                entry.unlink()
                removed += 1
            except OSError as e:
                logger.warning("discovery_cache_remove_failed", path=str(entry), error=str(e))
        logger.info("discovery_cache_cleared", removed=removed)
        return removed


class NullDiscoveryCache:
    """Cache that never hits; used when caching is disabled."""

    def load(self, project_path: Path) -> list[str] | None:
        return None

    def save(self, project_path: Path, names: list[str]) -> None:
        pass
