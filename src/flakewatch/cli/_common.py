"""Shared CLI helpers."""

import json
from pathlib import Path
from typing import Any, Iterable, Optional

import typer
from rich.console import Console

from ..config import EngineConfig, load_config
from ..engine import FlakewatchEngine
from ..exceptions import FlakewatchError, FlakewatchIssue
from ..models import TestIdentity
from ..notifications import LoggingNotifier

console = Console()


def resolve_config(
    config: Optional[Path] = None,
    db: Optional[Path] = None,
    no_cache: bool = False,
    verbose: bool = False,
    quiet: bool = False,
) -> EngineConfig:
    """Build engine config from CLI options."""
    overrides: dict[str, Any] = {"verbose": verbose, "quiet": quiet}
    if db is not None:
        overrides["db_path"] = str(db)
    if no_cache:
        overrides["cache_enabled"] = False
    try:
        return load_config(config_file=config, **overrides)
    except FlakewatchError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)


def open_engine(ctx: typer.Context) -> FlakewatchEngine:
    config = ctx.obj if isinstance(ctx.obj, EngineConfig) else resolve_config()
    try:
        return FlakewatchEngine.open(config, notifier=LoggingNotifier())
    except FlakewatchError as e:
        console.print(f"[red]Cannot open store:[/red] {e}")
        raise typer.Exit(1)


def identity_from(test: str, project: str, suite: Optional[str]) -> TestIdentity:
    return TestIdentity(project_id=project, test_name=test, suite=suite or None)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def print_issues(issues: Iterable[FlakewatchIssue], limit: int = 10) -> None:
    issues = list(issues)
    for issue in issues[:limit]:
        console.print(f"  [yellow]{issue}[/yellow]")
    if len(issues) > limit:
        console.print(f"  [dim]... and {len(issues) - limit} more[/dim]")


def money(value: float) -> str:
    return f"${value:,.0f}"
