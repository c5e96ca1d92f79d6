"""Show the latest snapshot and this build's decisions."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..decision import Decision
from ..model import Found
from ..storage import FileSystemRepository
from . import app
from ._common import ConfigOption, ProjectOption, command_errors, console, resolve_config


@app.command()
def show(
    project: Optional[Path] = ProjectOption,
    config: Optional[Path] = ConfigOption,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """Show what the latest snapshot knows about each test."""
    with command_errors("show"):
        project_dir, settings = resolve_config(project, config)
        repository = FileSystemRepository(settings.store_path(project_dir))
        snapshot_id = repository.latest_snapshot_id()
        snapshot = repository.load_latest_snapshot()
        decisions = {}
        for line in repository.read_decisions():
            try:
                decision = Decision.from_log_line(line)
            except ValueError:
                continue
            decisions[decision.test_id] = decision

    if not isinstance(snapshot, Found):
        if json_output:
            print(json.dumps({"snapshot": None}))
        else:
            console.print("[yellow]No snapshot yet.[/yellow] Run a build with skipwise enabled first.")
        return

    analysis = snapshot.value
    if json_output:
        data = {
            "snapshot": snapshot_id,
            "units": len(analysis.fingerprints),
            "tests": {
                test.name: {
                    **record.to_dict(),
                    "decision": decisions[test].to_log_line() if test in decisions else None,
                }
                for test, record in sorted(analysis.coverage.items())
            },
        }
        print(json.dumps(data, indent=2))
        return

    console.print(f"[bold cyan]Snapshot[/bold cyan] {snapshot_id}")
    console.print(
        f"{len(analysis.fingerprints)} fingerprinted units, {len(analysis.coverage)} tests"
    )
    console.print()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Test")
    table.add_column("Covered", justify="right")
    table.add_column("Tags")
    table.add_column("Last decision")
    for test, record in sorted(analysis.coverage.items()):
        decision = decisions.get(test)
        if decision is None:
            last = "[dim]-[/dim]"
        elif decision.should_execute:
            last = f"[yellow]EXECUTE[/yellow] {decision.reason.value}"
        else:
            last = f"[green]SKIP[/green] {decision.reason.value}"
        table.add_row(
            test.name,
            str(len(record.covered_units)),
            ", ".join(sorted(tag.value for tag in record.tags)),
            last,
        )
    console.print(table)
