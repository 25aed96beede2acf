"""
Logging setup for Flakewatch.

Console output goes through rich. ``--log-file`` adds a plain-text audit
copy whose lines carry the test identity when the call site tags the
record::

    logger.info("quarantined", extra=identity_context(identity))
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

AUDIT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(identity)s] %(message)s"
AUDIT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class IdentityFilter(logging.Filter):
    """Default ``record.identity`` to ``-`` for untagged records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "identity"):
            record.identity = "-"
        return True


def identity_context(identity: Any) -> dict:
    """``extra=`` payload tagging a log record with a test identity."""
    return {"identity": getattr(identity, "key", str(identity))}


def _level(verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.WARNING


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Attach console and optional audit-file handlers to the ``flakewatch`` logger.

    Handlers from an earlier call are replaced, not stacked.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Suppress all but ERROR level logging
        log_file: Optional path for the identity-tagged audit log

    Returns:
        The ``flakewatch`` logger
    """
    logger = logging.getLogger("flakewatch")
    for handler in [h for h in logger.handlers if getattr(h, "flakewatch_owned", False)]:
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [
        RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            tracebacks_show_locals=verbose,
            markup=False,
            show_time=True,
            show_path=verbose,
            log_time_format="[%X]",
        )
    ]
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(AUDIT_FORMAT, datefmt=AUDIT_DATEFMT))
        file_handler.addFilter(IdentityFilter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.flakewatch_owned = True
        logger.addHandler(handler)
    logger.setLevel(_level(verbose, quiet))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger namespaced under ``flakewatch`` (the package logger for None)."""
    if name is None:
        return logging.getLogger("flakewatch")

    if not name.startswith("flakewatch"):
        name = f"flakewatch.{name}"

    return logging.getLogger(name)
