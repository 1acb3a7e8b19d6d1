"""testament list command - show discovered tests."""

from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from testament.cli.utils import discover, open_session, print_discovery_error


@click.command()
@click.argument("path", default=None, required=False, type=click.Path(exists=True, path_type=Path))
@click.pass_context
def list_command(ctx: click.Context, path: Path | None) -> None:
    """List the tests of every test project.

    PATH may be a solution file, a project file, or a directory. A directory
    is searched upward for a solution, else a project inside it is used.
    """
    console = Console()
    session = open_session(path, verbose=bool(ctx.obj and ctx.obj.get("verbose")))
    discover(session, console)

    if not session.projects:
        console.print("[yellow]No test projects found[/yellow]")
        return

    for index, project in enumerate(session.projects):
        error = session.discovery_errors.get(index)
        if error is not None:
            print_discovery_error(console, project, error)
            continue

        tree = Tree(f"[bold]{escape(project.name)}[/bold] [dim]({project.test_count} tests)[/dim]")
        for test_class in project.classes:
            branch = tree.add(escape(test_class.display_name))
            for test in test_class.tests:
                branch.add(escape(test.name))
        console.print(tree)
