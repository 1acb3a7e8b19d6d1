"""Tests for test enumeration through dotnet.

subprocess.run is patched; no dotnet installation is needed.
"""

import subprocess
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from testament.core.errors import ErrorCode, ToolError
from testament.discovery.enumerator import TestEnumerator
from testament.dotnet import DotnetCli

LISTING = """\
  Determining projects to restore...
The following Tests are available:
    AddsNumbers
    Parses(value: 1)
"""


def _completed(cmd: list[str], returncode: int = 0, stdout: str = "", stderr: str = "") -> Any:
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


def _listing(cmd: list[str], **_: Any) -> Any:
    return _completed(cmd, 0, LISTING)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    path = tmp_path / "App.Tests" / "App.Tests.csproj"
    path.parent.mkdir()
    path.write_text("<Project />")
    return path


class TestListTests:
    """Primary enumeration."""

    def test_parses_names(self, project: Path, memory_cache: Any) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)
        with patch("testament.dotnet.subprocess.run", side_effect=_listing) as mock_run:
            names = enumerator.list_tests(project)

        assert names == ["AddsNumbers", "Parses(value: 1)"]
        cmd = mock_run.call_args.args[0]
        assert cmd[1:] == ["test", str(project), "--list-tests", "--no-build"]
        assert memory_cache.saves == [(project, names)]

    def test_cache_hit_skips_dotnet(self, project: Path, memory_cache: Any) -> None:
        memory_cache.entries[project] = ["NS.A.T1"]
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with patch("testament.dotnet.subprocess.run") as mock_run:
            names = enumerator.list_tests(project)

        assert names == ["NS.A.T1"]
        mock_run.assert_not_called()

    def test_failure_reports_filtered_output(self, project: Path, memory_cache: Any) -> None:
        stdout = (
            "  Determining projects to restore...\n"
            "/repo/A.cs(3,1): error CS1002: ; expected\n"
            "Build FAILED.\n"
        )
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with (
            patch(
                "testament.dotnet.subprocess.run",
                side_effect=lambda cmd, **_: _completed(cmd, 1, stdout),
            ),
            pytest.raises(ToolError) as exc_info,
        ):
            enumerator.list_tests(project)

        assert exc_info.value.code == ErrorCode.ENUMERATION_FAILED
        assert exc_info.value.message == "/repo/A.cs(3,1): error CS1002: ; expected"
        assert memory_cache.saves == []

    def test_failure_with_only_noise_reports_exit_code(
        self, project: Path, memory_cache: Any
    ) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with (
            patch(
                "testament.dotnet.subprocess.run",
                side_effect=lambda cmd, **_: _completed(cmd, 3, "Build FAILED.\n"),
            ),
            pytest.raises(ToolError) as exc_info,
        ):
            enumerator.list_tests(project)

        assert exc_info.value.message == "exit code 3"

    def test_missing_dotnet(self, project: Path, memory_cache: Any) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with (
            patch("testament.dotnet.subprocess.run", side_effect=FileNotFoundError("dotnet")),
            pytest.raises(ToolError) as exc_info,
        ):
            enumerator.list_tests(project)

        assert exc_info.value.code == ErrorCode.TOOL_NOT_FOUND


class TestFullyQualifiedListing:
    """Secondary vstest enumeration."""

    @pytest.fixture
    def built_project(self, project: Path) -> Path:
        output = project.parent / "bin" / "Debug" / "net8.0"
        output.mkdir(parents=True)
        (output / "App.Tests.dll").write_bytes(b"\0")
        return project

    @staticmethod
    def _dotnet(qualified: list[str], vstest_code: int = 0) -> Any:
        def run(cmd: list[str], **_: Any) -> Any:
            if cmd[1] == "vstest":
                target = Path(cmd[-1].split(":", 1)[1])
                target.write_text("\n".join(qualified) + "\n")
                return _completed(cmd, vstest_code)
            return _completed(cmd, 0, LISTING)

        return run

    def test_same_length_replaces_primary(self, built_project: Path, memory_cache: Any) -> None:
        qualified = ["App.Tests.AdderTests.AddsNumbers", "App.Tests.ParserTests.Parses(value: 1)"]
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with patch("testament.dotnet.subprocess.run", side_effect=self._dotnet(qualified)):
            names = enumerator.list_tests(built_project)

        assert names == qualified
        assert memory_cache.saves == [(built_project, qualified)]

    def test_length_mismatch_keeps_primary(self, built_project: Path, memory_cache: Any) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with patch("testament.dotnet.subprocess.run", side_effect=self._dotnet(["A.B.C"])):
            names = enumerator.list_tests(built_project)

        assert names == ["AddsNumbers", "Parses(value: 1)"]

    def test_vstest_failure_keeps_primary(self, built_project: Path, memory_cache: Any) -> None:
        qualified = ["A.B.AddsNumbers", "A.B.Parses(value: 1)"]
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with patch("testament.dotnet.subprocess.run", side_effect=self._dotnet(qualified, 1)):
            names = enumerator.list_tests(built_project)

        assert names == ["AddsNumbers", "Parses(value: 1)"]

    def test_assembly_lookup_failure_keeps_primary(
        self, built_project: Path, memory_cache: Any
    ) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with (
            patch("testament.dotnet.subprocess.run", side_effect=_listing),
            patch(
                "testament.discovery.enumerator.find_built_assembly",
                side_effect=OSError("stat failed"),
            ),
        ):
            names = enumerator.list_tests(built_project)

        assert names == ["AddsNumbers", "Parses(value: 1)"]

    def test_temp_file_failure_keeps_primary(
        self, built_project: Path, memory_cache: Any
    ) -> None:
        enumerator = TestEnumerator(cli=DotnetCli(), cache=memory_cache)

        with (
            patch("testament.dotnet.subprocess.run", side_effect=_listing) as mock_run,
            patch(
                "testament.discovery.enumerator.tempfile.mkstemp",
                side_effect=OSError("no space left"),
            ),
        ):
            names = enumerator.list_tests(built_project)

        assert names == ["AddsNumbers", "Parses(value: 1)"]
        assert mock_run.call_count == 1

    def test_disabled(self, built_project: Path, memory_cache: Any) -> None:
        enumerator = TestEnumerator(
            cli=DotnetCli(), cache=memory_cache, fully_qualified_listing=False
        )

        with patch("testament.dotnet.subprocess.run", side_effect=_listing) as mock_run:
            enumerator.list_tests(built_project)

        assert mock_run.call_count == 1
