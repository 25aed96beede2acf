"""Risk command: score test files before they fail."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from . import app
from ._common import console, open_engine, print_issues, print_json

_LEVEL_STYLE = {"low": "green", "medium": "yellow", "high": "red", "critical": "bold red"}


def _collect(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*.py") if p.name.startswith("test_") or p.name.endswith("_test.py")))
        else:
            files.append(path)
    return files


@app.command()
def risk(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Test files or directories", exists=True),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project id for stored assessments"),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """
    Score test files for flakiness risk from their source alone.

    [bold cyan]Examples:[/bold cyan]

      flakewatch risk tests/ --project web
    """
    files = _collect(paths)
    if not files:
        console.print("[yellow]No test files found.[/yellow]")
        raise typer.Exit(0)

    with open_engine(ctx) as engine:
        report = engine.score_files(files, project_id=project)

    if json_output:
        print_json(
            {
                "summary": report.summary.to_dict(),
                "assessments": [a.to_dict() for a in report.assessments],
                "issues": [i.to_json() for i in report.issues],
            }
        )
        return

    table = Table(title="Flakiness risk")
    table.add_column("File", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right")
    table.add_column("Level")
    table.add_column("Conf", justify="right")
    table.add_column("Categories")
    for a in sorted(report.assessments, key=lambda a: a.score, reverse=True):
        style = _LEVEL_STYLE[a.level.value]
        table.add_row(
            a.file_path,
            f"{a.score:.2f}",
            f"[{style}]{a.level.value}[/{style}]",
            f"{a.confidence:.2f}",
            ", ".join(c.value for c in a.categories),
        )
    console.print(table)
    s = report.summary
    console.print(
        f"{s.total_files} files, {s.high_risk_files} high risk, mean score {s.average_risk_score:.2f}"
    )
    if report.issues:
        print_issues(report.issues)
