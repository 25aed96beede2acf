"""Cache management commands."""

import typer

from ..storage import IdentityCache
from . import app
from ._common import console, resolve_config


def _cache(ctx: typer.Context) -> IdentityCache:
    config = ctx.obj or resolve_config()
    return IdentityCache(
        cache_dir=config.cache_dir,
        ttl_seconds=config.cache_ttl_seconds,
        enabled=config.cache_enabled,
    )


@app.command()
def cache_info(ctx: typer.Context):
    """Show cache information and statistics."""
    cache = _cache(ctx)
    stats = cache.stats()
    cache.close()

    console.print("[bold cyan]Flakewatch Cache Info[/bold cyan]")
    console.print()

    if stats.get("enabled"):
        console.print("Status: [green]Enabled[/green]")
        console.print(f"Directory: [blue]{stats.get('directory', 'N/A')}[/blue]")
        console.print(f"Entries: [yellow]{stats.get('size', 0)}[/yellow]")
        console.print(f"Size: [yellow]{stats.get('volume', 0)} bytes[/yellow]")
    else:
        console.print("Status: [red]Disabled[/red]")


@app.command()
def cache_clear(ctx: typer.Context):
    """Clear the identity history cache."""
    cache = _cache(ctx)
    if not cache.enabled:
        console.print("[yellow]Cache is disabled[/yellow]")
        raise typer.Exit(0)

    cache.clear()
    cache.close()
    console.print("[green]Cache cleared successfully[/green]")
