"""CLI utilities."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from testament.config.loader import load_config
from testament.core.errors import TestamentError
from testament.core.logging import configure_logging
from testament.discovery.solution import locate_descriptor
from testament.events import OutputLine
from testament.models import TestProject, TestStatus
from testament.session import Session

STATUS_STYLES: dict[TestStatus, str] = {
    TestStatus.NOT_RUN: "[dim]○[/dim]",
    TestStatus.RUNNING: "[yellow]…[/yellow]",
    TestStatus.PASSED: "[green]✓[/green]",
    TestStatus.FAILED: "[red]✗[/red]",
    TestStatus.SKIPPED: "[yellow]-[/yellow]",
}

POLL_INTERVAL = 0.1


def open_session(path: Path | None, *, verbose: bool = False) -> Session:
    """Locate the descriptor for ``path``, load its config and build a session.

    Raises:
        click.ClickException: Nothing to work from, or the config is invalid.
    """
    start = path if path is not None else Path.cwd()
    try:
        descriptor = locate_descriptor(start)
        config = load_config(descriptor.parent)
        configure_logging(config.logging, verbose=verbose)
        return Session.from_config(config, descriptor)
    except TestamentError as e:
        raise click.ClickException(e.message) from e


def discover(session: Session, console: Console) -> None:
    """Run a discovery round to completion."""
    try:
        session.begin_discovery()
    except TestamentError as e:
        raise click.ClickException(e.message) from e

    with console.status("Discovering tests..."):
        while session.discovering:
            session.wait(POLL_INTERVAL)


def select_projects(session: Session, name: str | None) -> list[int]:
    """Indices of projects named ``name`` (case-insensitive), or all of them."""
    if name is None:
        return list(range(len(session.projects)))
    wanted = name.lower()
    indices = [i for i, p in enumerate(session.projects) if p.name.lower() == wanted]
    if not indices:
        available = ", ".join(p.name for p in session.projects) or "none"
        raise click.ClickException(f"No test project named {name!r} (available: {available})")
    return indices


def drain_execution(session: Session, console: Console, label: str = "Running") -> None:
    """Wait for the in-flight run or build, echoing tool output as it arrives."""
    with console.status(f"{label}...") as status:
        while session.executing:
            for event in session.wait(POLL_INTERVAL):
                if isinstance(event, OutputLine):
                    console.print(event.text, markup=False, highlight=False)
            completed, total = session.progress
            if total:
                status.update(f"{label}... {completed}/{total}")


def print_discovery_error(console: Console, project: TestProject, message: str) -> None:
    console.print(f"[red]✗[/red] [bold]{escape(project.name)}[/bold]: discovery failed")
    for line in message.splitlines()[:3]:
        console.print(f"    [dim]{escape(line)}[/dim]")
