"""SQLite-backed sample store."""

from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

from ..exceptions import StorageError
from ..impact.models import ImpactRecord, ImpactScope
from ..logging_config import get_logger
from ..models import FlakyPattern, OutcomeRecord, QuarantineEvent, TestIdentity, ensure_utc
from ..risk.models import RiskAssessment
from . import reader, writer
from .adapter import SampleStore
from .cache import IdentityCache
from .database import FlakewatchDB

logger = get_logger(__name__)


class SQLiteSampleStore(SampleStore):
    """Store backed by one shared connection.

    Calls are serialized on an ``RLock``; each write is one transaction.
    Outcome histories are cached per identity and invalidated on append.
    """

    def __init__(self, db_path: Union[str, Path], cache: Optional[IdentityCache] = None):
        self.db = FlakewatchDB(db_path)
        self.db.connect()
        self.cache = cache or IdentityCache(enabled=False)
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config) -> "SQLiteSampleStore":
        cache = IdentityCache(
            cache_dir=config.cache_dir,
            ttl_seconds=config.cache_ttl_seconds,
            enabled=config.cache_enabled,
        )
        return cls(config.db_path, cache=cache)

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db.conn

    def _write(self, fn, *args, **kwargs):
        with self._lock:
            try:
                return fn(self.conn, *args, **kwargs)
            except sqlite3.Error as e:
                logger.error(f"Write to {self.db.db_path} failed: {e}")
                raise StorageError(str(e), self.db.db_path) from e

    # ── outcomes ─────────────────────────────────────────────────────

    def append_outcomes(self, records: Iterable[OutcomeRecord]) -> int:
        records = list(records)
        count = self._write(writer.append_outcomes, records)
        for identity in {r.identity for r in records}:
            self.cache.invalidate(identity)
        return count

    def outcomes(self, identity, since=None, until=None) -> list[OutcomeRecord]:
        history = self.cache.get(identity)
        if history is None:
            with self._lock:
                history = reader.load_outcomes(self.conn, identity)
            self.cache.set(identity, history)
        since = ensure_utc(since) if since else None
        until = ensure_utc(until) if until else None
        return [
            r
            for r in history
            if (since is None or r.timestamp >= since) and (until is None or r.timestamp <= until)
        ]

    def project_outcomes(self, project_id, since=None, until=None) -> list[OutcomeRecord]:
        with self._lock:
            return reader.load_project_outcomes(self.conn, project_id, since, until)

    def latest_timestamp(self, identity) -> Optional[datetime]:
        with self._lock:
            return reader.latest_timestamp(self.conn, identity)

    def identities(self, project_id=None) -> list[TestIdentity]:
        with self._lock:
            return reader.list_identities(self.conn, project_id)

    def projects(self) -> list[str]:
        with self._lock:
            return reader.list_projects(self.conn)

    # ── patterns and events ──────────────────────────────────────────

    def get_pattern(self, identity) -> Optional[FlakyPattern]:
        with self._lock:
            return reader.load_pattern(self.conn, identity)

    def patterns(self, project_id=None, active_only=False) -> list[FlakyPattern]:
        with self._lock:
            return reader.load_patterns(self.conn, project_id, active_only)

    def save_pattern(self, pattern, expected_version, event=None) -> FlakyPattern:
        return self._write(writer.save_pattern, pattern, expected_version, event)

    def events(self, identity=None, project_id=None) -> list[QuarantineEvent]:
        with self._lock:
            return reader.load_events(self.conn, identity, project_id)

    # ── impact and risk ──────────────────────────────────────────────

    def save_impacts(self, records) -> list[ImpactRecord]:
        return self._write(writer.save_impacts, records)

    def impact_records(self, project_id, scope: Optional[ImpactScope] = None, identity=None, since=None, until=None):
        with self._lock:
            return reader.load_impacts(self.conn, project_id, scope, identity, since, until)

    def latest_impact(self, project_id, identity=None) -> Optional[ImpactRecord]:
        with self._lock:
            return reader.load_latest_impact(self.conn, project_id, identity)

    def save_risk(self, assessment) -> RiskAssessment:
        return self._write(writer.save_risk, assessment)

    def risk_assessments(self, project_id=None, file_path=None) -> list[RiskAssessment]:
        with self._lock:
            return reader.load_risk_assessments(self.conn, project_id, file_path)

    def close(self) -> None:
        with self._lock:
            self.db.close()
        self.cache.close()
