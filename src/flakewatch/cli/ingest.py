"""Ingest command: load outcome records and run one batch."""

import json
from pathlib import Path
from typing import Optional

import typer

from . import app
from ._common import console, open_engine, print_issues, print_json


def load_records(path: Path) -> list:
    """JSON array, ``{"records": [...]}`` object, or JSON lines."""
    text = path.read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith("[") or stripped.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return data.get("records", [data])
    return [json.loads(line) for line in text.splitlines() if line.strip()]


@app.command()
def ingest(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="JSON or JSON-lines file of outcome records", exists=True, dir_okay=False),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project for records that name none"),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """
    Store a batch of test outcomes and advance every affected test's lifecycle.

    [bold cyan]Examples:[/bold cyan]

      flakewatch ingest results.jsonl --project web
    """
    try:
        records = load_records(file)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {file}:[/red] {e}")
        raise typer.Exit(1)

    with open_engine(ctx) as engine:
        result = engine.ingest(records, project_id=project)

    if json_output:
        print_json(
            {
                "accepted": result.accepted,
                "rejected": result.rejected,
                "events": [e.to_dict() for e in result.events],
                "transitions": {
                    identity.key: {
                        "from": t.previous_state.value,
                        "to": t.new_state.value,
                    }
                    for identity, t in result.transitions.items()
                    if t is not None and t.changed
                },
                "failed": {identity.key: error for identity, error in result.failed.items()},
                "issues": [i.to_json() for i in result.issues],
            }
        )
        return

    console.print(
        f"[green]{result.accepted}[/green] records accepted, "
        f"[yellow]{result.rejected}[/yellow] rejected"
    )
    for identity, t in sorted(result.transitions.items(), key=lambda kv: kv[0].key):
        if t is not None and t.changed:
            console.print(f"  {identity.key}: {t.previous_state.value} -> [bold]{t.new_state.value}[/bold]")
    if result.issues:
        console.print("[yellow]Issues:[/yellow]")
        print_issues(result.issues)
    if result.failed:
        raise typer.Exit(1)
