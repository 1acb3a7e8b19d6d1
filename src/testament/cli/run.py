"""testament run / build commands."""

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from testament.cli.utils import (
    STATUS_STYLES,
    discover,
    drain_execution,
    open_session,
    print_discovery_error,
    select_projects,
)
from testament.core.errors import TestamentError
from testament.discovery.solution import find_project_for_file
from testament.execution.correlator import CorrelationSummary
from testament.models import TestProject, TestStatus
from testament.session import Session

MAX_ERROR_LINES = 8


def _print_summary(console: Console, project: TestProject, summary: CorrelationSummary) -> None:
    failed = [t for t in project.iter_tests() if t.status is TestStatus.FAILED]
    if failed:
        table = Table(title=f"{project.name}: failures", show_lines=True)
        table.add_column("", width=1)
        table.add_column("Test")
        table.add_column("Duration", justify="right")
        table.add_column("Message")
        for test in failed:
            message = "\n".join((test.error_message or "").splitlines()[:MAX_ERROR_LINES])
            table.add_row(
                STATUS_STYLES[test.status],
                escape(test.full_name),
                f"{test.duration_ms or 0} ms",
                escape(message),
            )
        console.print(table)

    parts = [
        f"[green]{summary.passed} passed[/green]",
        f"[red]{summary.failed} failed[/red]" if summary.failed else "0 failed",
        f"[yellow]{summary.skipped} skipped[/yellow]" if summary.skipped else "0 skipped",
    ]
    if summary.unmatched_records:
        parts.append(f"[dim]{summary.unmatched_records} unmatched[/dim]")
    console.print(f"[bold]{escape(project.name)}[/bold]: " + ", ".join(parts))


def _run_one(
    session: Session,
    console: Console,
    index: int,
    test_names: list[str] | None,
    *,
    only_failed: bool = False,
) -> bool:
    """Run one project to completion; returns False on failures or a failed run."""
    project = session.projects[index]
    try:
        if only_failed:
            stream = session.begin_run_failed(index)
        else:
            stream = session.begin_run(index, test_names)
    except TestamentError as e:
        raise click.ClickException(e.message) from e
    if stream is None:
        return True

    console.print(f"[bold]Running {escape(project.name)}[/bold] [dim]({session.total} tests)[/dim]")
    drain_execution(session, console, label="Running tests")

    if session.last_error is not None:
        console.print(f"[red]✗[/red] {escape(project.name)}: {escape(session.last_error)}")
        return False
    summary = session.last_summary
    if summary is None:
        return True
    _print_summary(console, project, summary)
    return not summary.has_failures


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--project", "project_name", default=None, help="Only the test project with this name"
)
@click.option("--filter", "name_filter", default=None, help="Only tests whose name contains TEXT")
@click.option(
    "--file",
    "source_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Only the test project containing this source file",
)
@click.option("--failed", "rerun_failed", is_flag=True, help="Re-run failing tests once afterwards")
@click.pass_context
def run_command(
    ctx: click.Context,
    path: Path | None,
    project_name: str | None,
    name_filter: str | None,
    source_file: Path | None,
    rerun_failed: bool,
) -> None:
    """Discover and run tests. Exits 1 when any test fails.

    PATH may be a solution file, a project file, or a directory.
    """
    console = Console()
    session = open_session(path, verbose=bool(ctx.obj and ctx.obj.get("verbose")))
    discover(session, console)
    indices = select_projects(session, project_name)

    if source_file is not None:
        owner = find_project_for_file(source_file)
        if owner is None:
            raise click.ClickException(f"No project contains {source_file}")
        indices = [i for i in indices if session.projects[i].path.resolve() == owner.resolve()]
        if not indices:
            raise click.ClickException(f"{owner.name} is not a discovered test project")

    ok = True
    for index in indices:
        project = session.projects[index]
        error = session.discovery_errors.get(index)
        if error is not None:
            print_discovery_error(console, project, error)
            ok = False
            continue

        test_names: list[str] | None = None
        if name_filter:
            test_names = [t.full_name for t in session.tests_matching(index, name_filter)]
            if not test_names:
                console.print(f"[dim]{escape(project.name)}: no tests match {name_filter!r}[/dim]")
                continue

        passed = _run_one(session, console, index, test_names)
        if rerun_failed and session.last_failed.get(index):
            console.print(f"[bold]Re-running {len(session.last_failed[index])} failed tests[/bold]")
            passed = _run_one(session, console, index, None, only_failed=True)
        ok = ok and passed

    if not ok:
        ctx.exit(1)


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--project", "project_name", default=None, help="Only the test project with this name"
)
@click.pass_context
def build_command(ctx: click.Context, path: Path | None, project_name: str | None) -> None:
    """Build test projects. Exits 1 when a build fails."""
    console = Console()
    session = open_session(path, verbose=bool(ctx.obj and ctx.obj.get("verbose")))
    indices = select_projects(session, project_name)

    ok = True
    for index in indices:
        project = session.projects[index]
        console.print(f"[bold]Building {escape(project.name)}[/bold]")
        try:
            session.begin_build(index)
        except TestamentError as e:
            raise click.ClickException(e.message) from e
        drain_execution(session, console, label="Building")
        if session.last_error is not None:
            console.print(f"[red]✗[/red] {escape(project.name)}: {escape(session.last_error)}")
            ok = False
        else:
            console.print(f"[green]✓[/green] {escape(project.name)}")

    if not ok:
        ctx.exit(1)
