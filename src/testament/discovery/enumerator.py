"""Test enumeration through ``dotnet test --list-tests``."""

from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from testament.core.errors import ToolError
from testament.discovery.cache import DiscoveryCache, NullDiscoveryCache
from testament.dotnet import (
    DotnetCli,
    filter_error_output,
    find_built_assembly,
    parse_list_output,
)

logger = structlog.get_logger()


@dataclass
class TestEnumerator:
    """Lists the tests of one project, cache first.

    Enumeration never builds: a project that has not been built fails with
    the tool's own error text.
    """

    cli: DotnetCli = field(default_factory=DotnetCli)
    cache: DiscoveryCache = field(default_factory=NullDiscoveryCache)
    fully_qualified_listing: bool = True

    def list_tests(self, project_path: Path) -> list[str]:
        """Raw enumerated names for a project, in tool order.

        Raises:
            ToolError: dotnet is missing or the listing exited non-zero.
        """
        cached = self.cache.load(project_path)
        if cached is not None:
            return cached

        result = self.cli.capture(
            self.cli.list_tests_command(project_path), cwd=project_path.parent
        )
        if result.returncode != 0:
            detail = filter_error_output(result.stdout or "", result.stderr or "")
            if not detail:
                detail = f"exit code {result.returncode}"
            logger.info(
                "enumeration_failed",
                project=str(project_path),
                exit_code=result.returncode,
            )
            raise ToolError.enumeration_failed(str(project_path), detail, result.returncode)

        names = parse_list_output(result.stdout or "")
        if self.fully_qualified_listing and names:
            qualified = self._list_fully_qualified(project_path)
            if qualified is not None and len(qualified) == len(names):
                names = qualified

        logger.info("tests_enumerated", project=str(project_path), count=len(names))
        self.cache.save(project_path, names)
        return names

    def _list_fully_qualified(self, project_path: Path) -> list[str] | None:
        """Secondary listing via vstest, or None when unavailable.

        Any failure here is logged and ignored.
        """
        target: Path | None = None
        try:
            assembly = find_built_assembly(project_path)
            if assembly is None:
                return None
            fd, target_name = tempfile.mkstemp(prefix="testament-list-", suffix=".txt")
            os.close(fd)
            target = Path(target_name)
            result = self.cli.capture(
                self.cli.list_fully_qualified_command(assembly, target),
                cwd=project_path.parent,
            )
            if result.returncode != 0:
                logger.debug(
                    "fully_qualified_listing_failed",
                    project=str(project_path),
                    exit_code=result.returncode,
                )
                return None
            lines = target.read_text(encoding="utf-8", errors="replace").splitlines()
        except (OSError, ToolError) as e:
            logger.debug("fully_qualified_listing_failed", project=str(project_path), error=str(e))
            return None
        finally:
            if target is not None:
                with contextlib.suppress(OSError):
                    target.unlink()

        return [line.strip() for line in lines if line.strip()]
