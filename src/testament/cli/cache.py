"""testament cache commands - manage cached test enumerations."""

from pathlib import Path

import click
from rich.console import Console

from testament.config.loader import load_config
from testament.core.errors import TestamentError
from testament.discovery.cache import FileDiscoveryCache


@click.group()
def cache_group() -> None:
    """Manage cached test enumerations."""


@cache_group.command("clear")
def clear_command() -> None:
    """Remove every cached test enumeration.

    The next discovery re-lists every project with dotnet.
    """
    console = Console(stderr=True)
    try:
        config = load_config(Path.cwd())
    except TestamentError as e:
        raise click.ClickException(e.message) from e

    cache_dir = config.discovery.cache_dir
    cache = FileDiscoveryCache(cache_dir=Path(cache_dir) if cache_dir else None)
    if not cache.cache_dir.exists():
        console.print("[yellow]Nothing to clear[/yellow] - no cached enumerations found")
        return

    removed = cache.clear()
    console.print(
        f"[green]✓[/green] Removed {removed} cached enumerations from {cache.cache_dir}"
    )
