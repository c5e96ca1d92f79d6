"""Shared CLI helpers."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console

from ..config import SkipwiseConfig, load_config
from ..discovery import ManifestDiscovery
from ..exceptions import SkipwiseError
from ..lifecycle import Build, create_build
from ..logging_config import get_logger, setup_logging

console = Console()

DEFAULT_MANIFEST = "skipwise-units.json"

# Exit code for failures; 1 is reserved for SKIP in ``should-execute``.
ERROR_EXIT_CODE = 2

ProjectOption = typer.Option(
    None,
    "-C",
    "--project",
    help="Project root (default: current directory)",
    file_okay=False,
    dir_okay=True,
)
UnitsOption = typer.Option(
    None,
    "-u",
    "--units",
    help=f"Unit manifest written by the build tool (default: <project>/{DEFAULT_MANIFEST})",
    dir_okay=False,
)
ConfigOption = typer.Option(
    None,
    "-c",
    "--config",
    help="Configuration file (TOML)",
    exists=True,
    file_okay=True,
    dir_okay=False,
    readable=True,
)
VerboseOption = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log every decision and store write",
)


def resolve_config(
    project: Optional[Path] = None,
    config: Optional[Path] = None,
    verbose: bool = False,
) -> tuple[Path, SkipwiseConfig]:
    """Project root and settings from CLI options."""
    project_dir = Path(project) if project else Path.cwd()
    settings = load_config(config_file=config, project_dir=project_dir, verbose=verbose or None)
    setup_logging(verbose=settings.verbosity == "verbose", quiet=settings.verbosity == "quiet")
    return project_dir, settings


def open_build(
    project: Optional[Path] = None,
    units: Optional[Path] = None,
    config: Optional[Path] = None,
    verbose: bool = False,
) -> Build:
    """Build context for one CLI invocation."""
    project_dir, settings = resolve_config(project, config, verbose)
    manifest = Path(units) if units else project_dir / DEFAULT_MANIFEST
    return create_build(project_dir, ManifestDiscovery(manifest), settings)


@contextmanager
def command_errors(action: str, verbose: bool = False) -> Iterator[None]:
    """Turn errors into a console message and ``ERROR_EXIT_CODE``."""
    logger = get_logger("skipwise.cli")
    try:
        yield
    except typer.Exit:
        raise
    except SkipwiseError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(ERROR_EXIT_CODE)
    except KeyboardInterrupt:
        logger.info("%s interrupted by user", action)
        console.print(f"\n[yellow]{action} interrupted[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        logger.exception("Unexpected error during %s", action)
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            console.print_exception()
        raise typer.Exit(ERROR_EXIT_CODE)
