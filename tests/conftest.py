"""Shared test fixtures for Flakewatch tests."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from flakewatch.config import EngineConfig
from flakewatch.engine import FlakewatchEngine
from flakewatch.models import OutcomeRecord, OutcomeStatus, TestIdentity
from flakewatch.notifications import CollectingNotifier
from flakewatch.storage import MemorySampleStore, SQLiteSampleStore

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def make_runs(identity, pattern, start=T0, step=timedelta(hours=1), **extra):
    """Outcome records from a string such as ``"PFPP"`` (S = skipped)."""
    statuses = {"P": OutcomeStatus.PASSED, "F": OutcomeStatus.FAILED, "S": OutcomeStatus.SKIPPED}
    return [
        OutcomeRecord(
            identity=identity,
            status=statuses[ch],
            timestamp=start + i * step,
            duration=extra.get("duration", 2.0),
            branch=extra.get("branch", "main"),
            error_message=extra.get("error_message") if ch == "F" else None,
        )
        for i, ch in enumerate(pattern)
    ]


@pytest.fixture
def identity():
    return TestIdentity("web", "test_checkout_total", "cart")


@pytest.fixture
def notifier():
    return CollectingNotifier()


@pytest.fixture
def config():
    return EngineConfig(cache_enabled=False, workers=2)


@pytest.fixture
def memory_store():
    return MemorySampleStore()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteSampleStore(tmp_path / ".flakewatch" / "flakewatch.db")
    yield store
    store.close()


@pytest.fixture
def engine(memory_store, config, notifier):
    return FlakewatchEngine(memory_store, config, notifier)


@pytest.fixture
def runs():
    """The ``make_runs`` factory."""
    return make_runs


@pytest.fixture
def t0():
    return T0


@pytest.fixture(autouse=True)
def reset_flakewatch_logging():
    """Drop handlers and level left behind by ``setup_logging``."""
    yield
    logger = logging.getLogger("flakewatch")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
