"""dotnet CLI invocation.

Builds the command lines for listing, running and building test projects,
the non-interactive environment they run under, and the line filters used to
separate useful tool output from restore/build chatter.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from testament.config.models import RunnerConfig
from testament.core.errors import ToolError
from testament.models import NAME_SEPARATOR, strip_params

LIST_TESTS_BANNER = "The following Tests are available:"

# Restore/build/test-host banners printed around every dotnet invocation.
_NOISE_PREFIXES: tuple[str, ...] = (
    "Determining projects to restore",
    "All projects are up-to-date for restore",
    "Restored ",
    "Restoring ",
    "Build started",
    "Build succeeded",
    "Build FAILED",
    "Time Elapsed",
    "Microsoft (R)",
    "Copyright (C)",
    "MSBuild version",
    "Welcome to .NET",
    "Test run for ",
    "VSTest version",
    "A total of ",
    "Starting test execution",
    "Test Run Successful",
    "Test Run Failed",
    "Results File:",
    "Results (Nunit",
    "Total tests:",
)

_BUILD_STEP = re.compile(r"^\S.* -> \S")  # "MyProject -> /path/bin/Debug/net8.0/MyProject.dll"
_COUNTS_LINE = re.compile(r"^\s*\d+ (Warning|Error)\(s\)")

# Stack trace fragments and per-assertion diagnostics from failing tests.
_DIAGNOSTIC_PREFIXES: tuple[str, ...] = (
    "at ",
    "Stack Trace:",
    "Error Message:",
    "Standard Output Messages:",
    "Expected:",
    "Actual:",
    "Assert.",
    "--- End of",
)

_TEST_MARKER = re.compile(r"^\s*(Passed|Failed|Skipped)\s+\S")

# Characters with meaning in the --filter grammar.
_FILTER_SPECIAL = re.compile(r"([\\()&|=!~])")


def is_noise_line(line: str) -> bool:
    """Restore/build banner text that never carries a useful error."""
    stripped = line.strip()
    if not stripped:
        return True
    if stripped.startswith(_NOISE_PREFIXES):
        return True
    return bool(_BUILD_STEP.match(stripped) or _COUNTS_LINE.match(stripped))


def is_diagnostic_line(line: str) -> bool:
    """Stack trace and assertion detail lines; the report carries these instead."""
    return line.strip().startswith(_DIAGNOSTIC_PREFIXES)


def is_test_marker(line: str) -> bool:
    """Per-test ``Passed X [1 ms]`` / ``Failed X [2 ms]`` progress lines."""
    return bool(_TEST_MARKER.match(line))


def filter_error_output(*outputs: str) -> str:
    """Drop noise from failed-invocation output, keeping the rest in order."""
    kept = [
        line.rstrip()
        for output in outputs
        for line in output.splitlines()
        if not is_noise_line(line)
    ]
    return "\n".join(kept)


def parse_list_output(stdout: str) -> list[str]:
    """Test names from ``dotnet test --list-tests``: every line after the banner."""
    names: list[str] = []
    in_list = False
    for line in stdout.splitlines():
        trimmed = line.strip()
        if trimmed == LIST_TESTS_BANNER:
            in_list = True
            continue
        if in_list and trimmed:
            names.append(trimmed)
    return names


def escape_filter_value(value: str) -> str:
    return _FILTER_SPECIAL.sub(r"\\\1", value)


def build_filter_expression(full_names: list[str]) -> str:
    """Disjunctive ``--filter`` expression selecting the given tests.

    Parameter suffixes are dropped (every data row of a theory shares the
    method's name) and duplicates collapse. Qualified names match exactly;
    bare names fall back to a contains-match.
    """
    seen: set[str] = set()
    clauses: list[str] = []
    for full_name in full_names:
        name = strip_params(full_name).strip()
        if not name or name in seen:
            continue
        seen.add(name)
        op = "=" if NAME_SEPARATOR in name else "~"
        clauses.append(f"FullyQualifiedName{op}{escape_filter_value(name)}")
    return "|".join(clauses)


def find_built_assembly(project_path: Path) -> Path | None:
    """Most recently built ``<ProjectName>.dll`` under the project's bin/."""
    bin_dir = project_path.parent / "bin"
    if not bin_dir.is_dir():
        return None
    candidates = [
        p
        for p in bin_dir.rglob(f"{project_path.stem}.dll")
        if p.is_file() and p.parent.name != "ref"
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_mtime_ns)


@dataclass
class DotnetCli:
    """Command builder for the dotnet executable."""

    executable: str = "dotnet"
    extra_args: list[str] = field(default_factory=list)
    parallel: int = 0
    verbosity: str = "normal"

    @classmethod
    def from_config(cls, config: RunnerConfig) -> DotnetCli:
        return cls(
            executable=config.dotnet_path,
            extra_args=list(config.extra_args),
            parallel=config.parallel,
            verbosity=config.verbosity,
        )

    def ensure_available(self) -> None:
        """Raise if the executable cannot be found. Missing dotnet is fatal."""
        if shutil.which(self.executable) is None:
            raise ToolError.not_found(self.executable)

    def environment(self, base_env: dict[str, str] | None = None) -> dict[str, str]:
        """Non-interactive, telemetry-free environment for every invocation."""
        env = dict(base_env) if base_env is not None else dict(os.environ)
        env.update(
            {
                "DOTNET_CLI_TELEMETRY_OPTOUT": "1",
                "DOTNET_NOLOGO": "1",
                "DOTNET_SKIP_FIRST_TIME_EXPERIENCE": "1",
                "DOTNET_INTERACTIVE": "false",
                "NUGET_XMLDOC_MODE": "skip",
                "MSBUILDDISABLENODEREUSE": "1",
                "NO_COLOR": "1",
            }
        )
        return env

    def list_tests_command(self, project_path: Path) -> list[str]:
        return [self.executable, "test", str(project_path), "--list-tests", "--no-build"]

    def list_fully_qualified_command(self, assembly: Path, target: Path) -> list[str]:
        return [
            self.executable,
            "vstest",
            str(assembly),
            "--ListFullyQualifiedTests",
            f"--ListTestsTargetPath:{target}",
        ]

    def run_command(
        self,
        project_path: Path,
        *,
        report_path: Path,
        filter_expression: str | None = None,
    ) -> list[str]:
        cmd = [
            self.executable,
            "test",
            str(project_path),
            "--logger",
            f"trx;LogFileName={report_path}",
            "--verbosity",
            self.verbosity,
        ]
        if filter_expression:
            cmd.extend(["--filter", filter_expression])
        cmd.extend(self.extra_args)
        if self.parallel > 0:
            cmd.extend(["--", f"RunConfiguration.MaxCpuCount={self.parallel}"])
        return cmd

    def build_command(self, project_path: Path) -> list[str]:
        return [self.executable, "build", str(project_path)]

    def capture(
        self, cmd: list[str], *, cwd: Path | None = None
    ) -> subprocess.CompletedProcess[str]:
        """Run to completion, capturing output. A missing executable is fatal."""
        try:
            return subprocess.run(
                cmd,
                cwd=cwd,
                env=self.environment(),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolError.not_found(self.executable) from e

    def stream(self, cmd: list[str], *, cwd: Path | None = None) -> subprocess.Popen[str]:
        """Start with stdout (stderr merged) piped line by line."""
        try:
            return subprocess.Popen(
                cmd,
                cwd=cwd,
                env=self.environment(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise ToolError.not_found(self.executable) from e
