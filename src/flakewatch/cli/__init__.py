"""CLI entry point: registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ..logging_config import setup_logging
from ._common import console, resolve_config

app = typer.Typer(
    name="flakewatch",
    help="Flakewatch - flaky test classification and quarantine lifecycle",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version(value: bool) -> None:
    if value:
        console.print(f"flakewatch {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to a flakewatch.toml", exists=True, dir_okay=False
    ),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Disable the identity history cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    version: bool = typer.Option(
        False, "--version", callback=_version, is_eager=True, help="Show version and exit"
    ),
):
    """Classify, quarantine and price flaky tests."""
    setup_logging(verbose=verbose, quiet=quiet, log_file=str(log_file) if log_file else None)
    ctx.obj = resolve_config(config, db=db, no_cache=no_cache, verbose=verbose, quiet=quiet)


def main() -> None:
    app()


# Import subcommands to register them
from .ingest import ingest as _ingest  # noqa: F401, E402
from .status import status as _status  # noqa: F401, E402
from .quarantine import quarantine as _quarantine, unquarantine as _unquarantine, events as _events  # noqa: F401, E402
from .impact import impact as _impact, trend as _trend  # noqa: F401, E402
from .risk import risk as _risk  # noqa: F401, E402
from .cache import cache_info as _cache_info, cache_clear as _cache_clear  # noqa: F401, E402
