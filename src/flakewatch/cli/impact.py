"""Impact and trend commands."""

from dataclasses import asdict
from typing import Optional

import typer
from rich.table import Table

from ..impact import ImpactStatus
from . import app
from ._common import console, money, open_engine, print_issues, print_json


def _sparkline(values: list) -> str:
    """Generate an ASCII sparkline from a list of numeric values."""
    if not values:
        return ""
    blocks = " ▁▂▃▄▅▆▇█"
    mn, mx = min(values), max(values)
    if mx == mn:
        return blocks[4] * len(values)
    return "".join(blocks[min(8, int((v - mn) / (mx - mn) * 8))] for v in values)


@app.command()
def impact(
    ctx: typer.Context,
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    top: int = typer.Option(5, "--top", "-n", help="How many costliest tests to list", min=1),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """Estimate what flaky tests cost a project over the classifier window."""
    with open_engine(ctx) as engine:
        result = engine.estimate_impact(project)

    total = result.total
    if json_output:
        print_json(
            {
                "total": total.to_dict(),
                "top_tests": [t.to_dict() for t in result.top_tests(top)],
                "quarantine_savings": asdict(result.quarantine_savings) if result.quarantine_savings else None,
            }
        )
        return

    if total.status is ImpactStatus.NO_DATA:
        console.print(f"[yellow]No flaky failures recorded for {project} in this period.[/yellow]")
        raise typer.Exit(0)

    console.print(f"[bold cyan]Impact for {project}[/bold cyan]")
    console.print(f"  Estimated cost:        [bold]{money(total.estimated_cost_impact)}[/bold]")
    console.print(f"  Developer hours lost:  {total.developer_hours_lost:.1f}")
    console.print(f"  CI minutes wasted:     {total.ci_minutes_wasted:.1f}")
    console.print(f"  Delayed deployments:   {total.delayed_deployments}")
    console.print(f"  Blocked merges:        {total.blocked_merge_requests}")
    console.print(f"  Velocity reduction:    {total.velocity_reduction:.1f}%")
    console.print(f"  Deployment risk:       {total.production_deployment_risk:.2f}")
    if result.quarantine_savings and result.quarantine_savings.failures_absorbed:
        s = result.quarantine_savings
        console.print(
            f"  Quarantine saved:      {money(s.cost_avoided)} ({s.failures_absorbed} failures absorbed)"
        )

    table = Table(title=f"Top {top} tests by cost")
    table.add_column("Test", style="cyan", no_wrap=True)
    table.add_column("Failures", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Cost", justify="right")
    for t in result.top_tests(top):
        table.add_row(t.identity.key, str(t.failure_count), f"{t.failure_rate:.1%}", money(t.estimated_cost_impact))
    console.print(table)

    if total.recommendations:
        console.print("[bold]Recommendations[/bold]")
        for rec in total.recommendations:
            console.print(f"  • {rec}")


@app.command()
def trend(
    ctx: typer.Context,
    project: str = typer.Option(..., "--project", "-p", help="Project id"),
    days: int = typer.Option(30, "--days", "-d", help="Days to recompute", min=1, max=365),
    json_output: bool = typer.Option(False, "--json", help="Output in machine-readable JSON format"),
):
    """Recompute daily impact records and show the trend."""
    with open_engine(ctx) as engine:
        result = engine.recompute_trend(project, days=days)

    if json_output:
        print_json(
            {
                "project": project,
                "direction": result.direction,
                "points": [p.to_dict() for p in result.points],
                "failed_days": [d.date().isoformat() for d in result.failed_days],
                "issues": [i.to_json() for i in result.issues],
            }
        )
        return

    costs = [p.estimated_cost_impact for p in result.points]
    console.print(f"[bold cyan]{project}[/bold cyan] daily cost  {_sparkline(costs)}  ({result.direction})")
    table = Table()
    table.add_column("Day")
    table.add_column("Flaky", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Cost", justify="right")
    for p in result.points:
        table.add_row(p.day.date().isoformat(), str(p.flaky_tests), str(p.failure_count), money(p.estimated_cost_impact))
    console.print(table)
    if result.issues:
        print_issues(result.issues)
    if result.failed_days:
        raise typer.Exit(1)
