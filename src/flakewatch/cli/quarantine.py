"""Manual quarantine actions and the audit trail."""

from typing import Optional

import typer
from rich.table import Table

from ..exceptions import FlakewatchError
from . import app
from ._common import console, identity_from, open_engine, print_json


@app.command()
def quarantine(
    ctx: typer.Context,
    test: str = typer.Argument(..., help="Test name"),
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    suite: Optional[str] = typer.Option(None, "--suite", "-s", help="Suite name"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the test is being quarantined"),
):
    """Quarantine a test regardless of its failure rate."""
    identity = identity_from(test, project, suite)
    with open_engine(ctx) as engine:
        try:
            transition = engine.manual_quarantine(identity, reason)
        except FlakewatchError as e:
            console.print(f"[red]Quarantine failed:[/red] {e}")
            raise typer.Exit(1)
    console.print(f"[green]Quarantined[/green] {identity.key} ({transition.previous_state.value} -> quarantined)")


@app.command()
def unquarantine(
    ctx: typer.Context,
    test: str = typer.Argument(..., help="Test name"),
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    suite: Optional[str] = typer.Option(None, "--suite", "-s", help="Suite name"),
    reason: str = typer.Option(..., "--reason", "-r", help="Why the test is being restored"),
):
    """Restore a quarantined test. Restoring a still-flaky test is recorded as a policy violation."""
    identity = identity_from(test, project, suite)
    with open_engine(ctx) as engine:
        try:
            transition = engine.manual_unquarantine(identity, reason)
        except FlakewatchError as e:
            console.print(f"[red]Unquarantine failed:[/red] {e}")
            raise typer.Exit(1)
    console.print(f"[green]Unquarantined[/green] {identity.key}")
    if transition.event is not None and transition.event.policy_violation:
        console.print("[yellow]Policy violation:[/yellow] the test is still failing in its current window")


@app.command()
def events(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Limit to one project"),
    test: Optional[str] = typer.Option(None, "--test", "-t", help="Limit to one test (needs --project)"),
    suite: Optional[str] = typer.Option(None, "--suite", "-s", help="Suite of --test"),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """Show the quarantine audit trail."""
    if test and not project:
        console.print("[red]--test needs --project[/red]")
        raise typer.Exit(2)
    identity = identity_from(test, project, suite) if test else None
    with open_engine(ctx) as engine:
        trail = engine.store.events(identity=identity, project_id=project)

    if json_output:
        print_json([e.to_dict() for e in trail])
        return

    if not trail:
        console.print("[yellow]No quarantine events.[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Quarantine events")
    table.add_column("When")
    table.add_column("Test", style="cyan", no_wrap=True)
    table.add_column("Action")
    table.add_column("By")
    table.add_column("Reason")
    for e in trail:
        action = e.action.value + (" [yellow](violation)[/yellow]" if e.policy_violation else "")
        table.add_row(e.timestamp.strftime("%Y-%m-%d %H:%M"), e.identity.key, action, e.triggered_by.value, e.reason)
    console.print(table)
