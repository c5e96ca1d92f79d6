"""Build lifecycle commands, one per hook a build tool calls."""

from pathlib import Path
from typing import Optional

import typer

from . import app
from ._common import (
    ConfigOption,
    ProjectOption,
    UnitsOption,
    VerboseOption,
    command_errors,
    console,
    open_build,
)


@app.command("build-started")
def build_started(
    project: Optional[Path] = ProjectOption,
    units: Optional[Path] = UnitsOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Reset staging and the decision log for a new build."""
    with command_errors("build-started", verbose):
        build = open_build(project, units, config, verbose)
        try:
            build.on_build_started()
        finally:
            build.close()


@app.command("should-execute")
def should_execute(
    test: str = typer.Argument(..., help="Test id, e.g. com.example.FooTest"),
    project: Optional[Path] = ProjectOption,
    units: Optional[Path] = UnitsOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """
    Decide whether TEST must run.

    Prints the decision and exits 0 for EXECUTE, 1 for SKIP.
    """
    with command_errors("should-execute", verbose):
        build = open_build(project, units, config, verbose)
        try:
            decision = build.decide(test)
        finally:
            build.close()
        console.print(decision.to_log_line(), markup=False, highlight=False)
        if not decision.should_execute:
            raise typer.Exit(1)


@app.command("stage")
def stage(
    test: str = typer.Argument(..., help="Test id the coverage belongs to"),
    coverage_file: Path = typer.Argument(
        ...,
        help="Execution data written by the coverage agent for TEST",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    project: Optional[Path] = ProjectOption,
    units: Optional[Path] = UnitsOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Stage the coverage of one executed test."""
    with command_errors("stage", verbose):
        build = open_build(project, units, config, verbose)
        try:
            build.record_coverage(test, coverage_file.read_bytes())
        finally:
            build.close()


@app.command("fail")
def fail(
    test: str = typer.Argument(..., help="Test id that failed"),
    project: Optional[Path] = ProjectOption,
    units: Optional[Path] = UnitsOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Mark TEST as failed so it runs again next build."""
    with command_errors("fail", verbose):
        build = open_build(project, units, config, verbose)
        try:
            build.record_test_failure(test)
        finally:
            build.close()


@app.command("build-finished")
def build_finished(
    project: Optional[Path] = ProjectOption,
    units: Optional[Path] = UnitsOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Merge staged coverage into a new snapshot."""
    with command_errors("build-finished", verbose):
        build = open_build(project, units, config, verbose)
        try:
            snapshot_id = build.on_build_finished()
        finally:
            build.close()
        console.print(f"[green]Saved snapshot[/green] {snapshot_id}")


@app.command("clean")
def clean(
    project: Optional[Path] = ProjectOption,
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Delete the store, including every snapshot and the fingerprint cache."""
    with command_errors("clean", verbose):
        build = open_build(project, None, config, verbose)
        build.clean()
        console.print("[green]Store deleted[/green]")
