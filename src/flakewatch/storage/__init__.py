"""Sample store adapter and its SQLite / in-memory implementations."""

from .adapter import SampleStore
from .cache import IdentityCache
from .database import FlakewatchDB
from .memory import MemorySampleStore
from .sqlite_store import SQLiteSampleStore

__all__ = [
    "SampleStore",
    "IdentityCache",
    "FlakewatchDB",
    "MemorySampleStore",
    "SQLiteSampleStore",
]
