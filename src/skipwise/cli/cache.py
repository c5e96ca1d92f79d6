"""Cache management commands."""

from pathlib import Path
from typing import Optional

import typer

from ..cache import FingerprintCache
from . import app
from ._common import ConfigOption, ProjectOption, command_errors, console, resolve_config


@app.command()
def cache_info(
    project: Optional[Path] = ProjectOption,
    config: Optional[Path] = ConfigOption,
):
    """Show fingerprint cache information and statistics."""
    with command_errors("cache-info"):
        project_dir, settings = resolve_config(project, config)
        cache = FingerprintCache(settings.cache_path(project_dir), enabled=settings.cache_enabled)
        try:
            stats = cache.stats()
        finally:
            cache.close()

    console.print("[bold cyan]skipwise Fingerprint Cache[/bold cyan]")
    console.print()

    if stats.get("enabled"):
        console.print("Status: [green]Enabled[/green]")
        console.print(f"Directory: [blue]{stats.get('directory', 'N/A')}[/blue]")
        console.print(f"Entries: [yellow]{stats.get('size', 0)}[/yellow]")
        console.print(f"Size: [yellow]{stats.get('volume', 0)} bytes[/yellow]")
    else:
        console.print("Status: [red]Disabled[/red]")


@app.command()
def cache_clear(
    project: Optional[Path] = ProjectOption,
    config: Optional[Path] = ConfigOption,
):
    """Clear the fingerprint cache."""
    with command_errors("cache-clear"):
        project_dir, settings = resolve_config(project, config)

        if not settings.cache_enabled:
            console.print("[yellow]Cache is disabled[/yellow]")
            raise typer.Exit(0)

        cache = FingerprintCache(settings.cache_path(project_dir))
        try:
            cache.clear()
        finally:
            cache.close()
    console.print("[green]Cache cleared successfully[/green]")
