"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of testament modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("testament"):
        del sys.modules[module_name]


class MemoryDiscoveryCache:
    """In-memory stand-in for the file cache."""

    def __init__(self, entries: dict[Path, list[str]] | None = None) -> None:
        self.entries: dict[Path, list[str]] = dict(entries or {})
        self.loads: list[Path] = []
        self.saves: list[tuple[Path, list[str]]] = []

    def load(self, project_path: Path) -> list[str] | None:
        self.loads.append(project_path)
        names = self.entries.get(project_path)
        return list(names) if names is not None else None

    def save(self, project_path: Path, names: list[str]) -> None:
        self.saves.append((project_path, list(names)))
        self.entries[project_path] = list(names)


@pytest.fixture
def memory_cache() -> MemoryDiscoveryCache:
    return MemoryDiscoveryCache()


@pytest.fixture
def solution_dir(tmp_path: Path) -> Path:
    """A solution with one test project and one non-test project on disk."""
    (tmp_path / "src" / "App").mkdir(parents=True)
    (tmp_path / "src" / "App" / "App.csproj").write_text("<Project />")
    (tmp_path / "tests" / "App.Tests").mkdir(parents=True)
    (tmp_path / "tests" / "App.Tests" / "App.Tests.csproj").write_text("<Project />")
    (tmp_path / "App.sln").write_text(
        "Microsoft Visual Studio Solution File, Format Version 12.00\n"
        'Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "App", '
        '"src\\App\\App.csproj", "{11111111-1111-1111-1111-111111111111}"\n'
        "EndProject\n"
        'Project("{FAE04EC0-301F-11D3-BF4B-00C04F79EFBC}") = "App.Tests", '
        '"tests\\App.Tests\\App.Tests.csproj", "{22222222-2222-2222-2222-222222222222}"\n'
        "EndProject\n"
    )
    return tmp_path
