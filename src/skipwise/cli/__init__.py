"""CLI entry point: registers all subcommands."""

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="skipwise",
    help="skipwise - skip tests whose covered code did not change",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True, no_args_is_help=True)
def _callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
    ),
):
    """
    Predictive test selection for compiled projects.

    [bold cyan]Examples:[/bold cyan]

      skipwise build-started --units build/units.json

      skipwise should-execute com.example.FooTest

      skipwise stage com.example.FooTest build/jacoco/FooTest.exec

      skipwise build-finished
    """
    if version:
        console.print(f"[bold cyan]skipwise[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit(0)


# Import subcommands to register them
from .build import build_started as _build_started  # noqa: F401, E402
from .cache import cache_info as _cache_info, cache_clear as _cache_clear  # noqa: F401, E402
from .show import show as _show  # noqa: F401, E402


def main() -> None:
    app()
