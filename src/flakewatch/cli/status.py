"""Status command: table of tracked patterns."""

from typing import Optional

import typer
from rich.table import Table

from . import app
from ._common import console, open_engine, print_json


@app.command()
def status(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Limit to one project"),
    active_only: bool = typer.Option(False, "--active", help="Only currently flaky patterns"),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """Show the classification and lifecycle state of tracked tests."""
    with open_engine(ctx) as engine:
        patterns = engine.store.patterns(project_id=project, active_only=active_only)
        stats = engine.quarantine_stats(project)

    if json_output:
        print_json({"patterns": [p.to_dict() for p in patterns], "quarantine": stats.to_dict()})
        return

    if not patterns:
        console.print("[yellow]No tracked patterns.[/yellow] Ingest some outcomes first.")
        raise typer.Exit(0)

    table = Table(title="Flaky patterns", show_lines=False)
    table.add_column("Test", style="cyan", no_wrap=True)
    table.add_column("State")
    table.add_column("Class")
    table.add_column("Rate", justify="right")
    table.add_column("Runs", justify="right")
    table.add_column("Conf", justify="right")
    table.add_column("Pattern")
    for p in patterns:
        state = f"[red]{p.state.value}[/red]" if p.is_quarantined else p.state.value
        table.add_row(
            p.identity.key,
            state,
            p.classification.value,
            f"{p.failure_rate:.1%}",
            str(p.total_runs),
            f"{p.confidence:.2f}",
            p.failure_pattern.value if p.failure_pattern else "-",
        )
    console.print(table)
    console.print(
        f"Quarantined now: [bold]{stats.currently_quarantined}[/bold]  "
        f"auto: {stats.auto_quarantines}  manual: {stats.manual_quarantines}  "
        f"premature unquarantines: {stats.premature_unquarantines}"
    )
