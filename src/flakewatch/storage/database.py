"""SQLite database stored under ``.flakewatch/`` next to the project."""

import sqlite3
from pathlib import Path
from typing import Optional, Union

from ..exceptions import StorageError
from ..logging_config import get_logger

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 1


class FlakewatchDB:
    """Manages the flakewatch SQLite database.

    Usage::

        with FlakewatchDB(".flakewatch/flakewatch.db") as db:
            append_outcomes(db.conn, records)

    The connection may be shared across threads; callers serialize access.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path: Path = Path(db_path)
        self.db_dir: Path = self.db_path.parent
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Return the active connection. Raises if not connected."""
        if self._conn is None:
            raise RuntimeError("FlakewatchDB is not connected. Use as context manager or call connect().")
        return self._conn

    # ── lifecycle ─────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        """Create the database directory with a .gitignore so it stays untracked."""
        self.db_dir.mkdir(parents=True, exist_ok=True)
        gitignore = self.db_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text("*\n")

    def connect(self) -> sqlite3.Connection:
        """Open (or create) the database and run migrations."""
        try:
            self._ensure_dir()
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=30)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"cannot open database: {e}", self.db_path) from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._migrate()
        logger.debug(f"Flakewatch DB connected at {self.db_path}")
        return conn

    def close(self) -> None:
        """Close the connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "FlakewatchDB":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self) -> None:
        """Idempotently create / upgrade all tables."""
        c = self.conn

        c.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER NOT NULL
            )
            """
        )
        row = c.execute("SELECT version FROM schema_version").fetchone()
        if row is None:
            c.execute("INSERT INTO schema_version (version) VALUES (?)", (_SCHEMA_VERSION,))
        elif row["version"] > _SCHEMA_VERSION:
            raise StorageError(
                f"database schema v{row['version']} is newer than supported v{_SCHEMA_VERSION}",
                self.db_path,
            )

        # ── outcomes (append-only) ───────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS outcomes (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id    TEXT    NOT NULL,
                suite         TEXT    NOT NULL DEFAULT '',
                test_name     TEXT    NOT NULL,
                status        TEXT    NOT NULL,
                timestamp     TEXT    NOT NULL,
                duration      REAL,
                branch        TEXT,
                error_message TEXT,
                stack_trace   TEXT,
                retry_attempt INTEGER,
                run_id        TEXT
            )
            """
        )

        # ── flaky_patterns ───────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS flaky_patterns (
                project_id              TEXT    NOT NULL,
                suite                   TEXT    NOT NULL DEFAULT '',
                test_name               TEXT    NOT NULL,
                failure_rate            REAL    NOT NULL DEFAULT 0,
                total_runs              INTEGER NOT NULL DEFAULT 0,
                failure_count           INTEGER NOT NULL DEFAULT 0,
                confidence              REAL    NOT NULL DEFAULT 0,
                first_seen              TEXT,
                last_seen               TEXT,
                is_active               INTEGER NOT NULL DEFAULT 0,
                is_quarantined          INTEGER NOT NULL DEFAULT 0,
                quarantined_at          TEXT,
                state                   TEXT    NOT NULL DEFAULT 'stable',
                classification          TEXT    NOT NULL DEFAULT 'undetermined',
                failure_pattern         TEXT,
                day_variance            REAL    NOT NULL DEFAULT 0,
                recovery_started_at     TEXT,
                unquarantined_at        TEXT,
                premature_unquarantines INTEGER NOT NULL DEFAULT 0,
                updated_at              TEXT,
                version                 INTEGER NOT NULL DEFAULT 1,
                PRIMARY KEY (project_id, suite, test_name)
            )
            """
        )

        # ── quarantine_events ────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS quarantine_events (
                id               INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id       TEXT    NOT NULL,
                suite            TEXT    NOT NULL DEFAULT '',
                test_name        TEXT    NOT NULL,
                action           TEXT    NOT NULL,
                triggered_by     TEXT    NOT NULL,
                reason           TEXT    NOT NULL,
                timestamp        TEXT    NOT NULL,
                confidence       REAL    NOT NULL DEFAULT 0,
                policy_violation INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        # ── impact_records ───────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS impact_records (
                id           INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id   TEXT    NOT NULL,
                scope        TEXT    NOT NULL,
                identity_key TEXT    NOT NULL DEFAULT '',
                suite        TEXT    NOT NULL DEFAULT '',
                test_name    TEXT    NOT NULL DEFAULT '',
                period_start TEXT    NOT NULL,
                period_end   TEXT    NOT NULL,
                status       TEXT    NOT NULL,
                payload      TEXT    NOT NULL,
                calculated_at TEXT   NOT NULL,
                UNIQUE (project_id, scope, identity_key, period_start, period_end)
            )
            """
        )

        # ── risk_assessments ─────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS risk_assessments (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                project_id  TEXT    NOT NULL DEFAULT '',
                file_path   TEXT    NOT NULL,
                score       REAL    NOT NULL,
                level       TEXT    NOT NULL,
                confidence  REAL    NOT NULL,
                payload     TEXT    NOT NULL,
                assessed_at TEXT    NOT NULL
            )
            """
        )

        # ── indexes ──────────────────────────────────────────────
        c.execute(
            "CREATE INDEX IF NOT EXISTS idx_outcomes_identity "
            "ON outcomes(project_id, suite, test_name, timestamp)"
        )
        c.execute("CREATE INDEX IF NOT EXISTS idx_outcomes_project ON outcomes(project_id, timestamp)")
        c.execute(
            "CREATE INDEX IF NOT EXISTS idx_events_identity "
            "ON quarantine_events(project_id, suite, test_name)"
        )
        c.execute("CREATE INDEX IF NOT EXISTS idx_impact_project ON impact_records(project_id, period_start)")
        c.execute("CREATE INDEX IF NOT EXISTS idx_risk_file ON risk_assessments(project_id, file_path)")

        c.commit()
