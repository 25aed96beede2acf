"""Write outcomes, patterns, events, impact and risk rows.

Every public function runs in a single transaction: it either commits
completely or rolls back and re-raises.
"""

import json
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from ..exceptions import ConcurrentTransitionConflict
from ..impact.models import ImpactRecord
from ..models import FlakyPattern, OutcomeRecord, QuarantineEvent, TestIdentity, ensure_utc
from ..risk.models import RiskAssessment

# Fixed width so that text ordering equals time ordering.
TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).strftime(TS_FORMAT)


def identity_columns(identity: TestIdentity) -> tuple[str, str, str]:
    return identity.project_id, identity.suite or "", identity.test_name


def append_outcomes(conn: sqlite3.Connection, records: Iterable[OutcomeRecord]) -> int:
    """Append validated outcome records. Returns the number written."""
    rows = [
        (
            *identity_columns(r.identity),
            r.status.value,
            format_ts(r.timestamp),
            r.duration,
            r.branch,
            r.error_message,
            r.stack_trace,
            r.retry_attempt,
            r.run_id,
        )
        for r in records
    ]
    if not rows:
        return 0
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        cur.executemany(
            """
            INSERT INTO outcomes (
                project_id, suite, test_name, status, timestamp, duration,
                branch, error_message, stack_trace, retry_attempt, run_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return len(rows)


def save_pattern(
    conn: sqlite3.Connection,
    pattern: FlakyPattern,
    expected_version: int,
    event: Optional[QuarantineEvent] = None,
) -> FlakyPattern:
    """Write a pattern and its optional audit event atomically.

    ``expected_version`` is the version the caller read (0 when the
    pattern did not exist). A mismatch raises
    ``ConcurrentTransitionConflict`` and writes nothing.
    """
    key = identity_columns(pattern.identity)
    new_version = expected_version + 1
    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        row = cur.execute(
            "SELECT version FROM flaky_patterns WHERE project_id = ? AND suite = ? AND test_name = ?",
            key,
        ).fetchone()
        actual = row["version"] if row is not None else 0
        if actual != expected_version:
            raise ConcurrentTransitionConflict(pattern.identity.key, expected_version, actual)

        values = (
            pattern.failure_rate,
            pattern.total_runs,
            pattern.failure_count,
            pattern.confidence,
            format_ts(pattern.first_seen),
            format_ts(pattern.last_seen),
            int(pattern.is_active),
            int(pattern.is_quarantined),
            format_ts(pattern.quarantined_at),
            pattern.state.value,
            pattern.classification.value,
            pattern.failure_pattern.value if pattern.failure_pattern else None,
            pattern.day_variance,
            format_ts(pattern.recovery_started_at),
            format_ts(pattern.unquarantined_at),
            pattern.premature_unquarantines,
            format_ts(pattern.updated_at),
            new_version,
        )
        if row is None:
            cur.execute(
                """
                INSERT INTO flaky_patterns (
                    failure_rate, total_runs, failure_count, confidence,
                    first_seen, last_seen, is_active, is_quarantined,
                    quarantined_at, state, classification, failure_pattern,
                    day_variance, recovery_started_at, unquarantined_at,
                    premature_unquarantines, updated_at, version,
                    project_id, suite, test_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values + key,
            )
        else:
            cur.execute(
                """
                UPDATE flaky_patterns SET
                    failure_rate = ?, total_runs = ?, failure_count = ?, confidence = ?,
                    first_seen = ?, last_seen = ?, is_active = ?, is_quarantined = ?,
                    quarantined_at = ?, state = ?, classification = ?, failure_pattern = ?,
                    day_variance = ?, recovery_started_at = ?, unquarantined_at = ?,
                    premature_unquarantines = ?, updated_at = ?, version = ?
                WHERE project_id = ? AND suite = ? AND test_name = ?
                """,
                values + key,
            )

        if event is not None:
            cur.execute(
                """
                INSERT INTO quarantine_events (
                    project_id, suite, test_name, action, triggered_by,
                    reason, timestamp, confidence, policy_violation
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    *identity_columns(event.identity),
                    event.action.value,
                    event.triggered_by.value,
                    event.reason,
                    format_ts(event.timestamp),
                    event.confidence,
                    int(event.policy_violation),
                ),
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return replace(pattern, version=new_version)


def save_impacts(conn: sqlite3.Connection, records: Iterable[ImpactRecord]) -> list[ImpactRecord]:
    """Write impact records in one transaction.

    A record replaces any earlier one with the same project, scope,
    identity and period, so recomputing a period is idempotent.
    """
    records = list(records)
    saved = []
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        for record in records:
            identity_key = record.identity.key if record.identity else ""
            _, suite, test_name = identity_columns(record.identity) if record.identity else ("", "", "")
            start = format_ts(record.period_start)
            end = format_ts(record.period_end)
            cur.execute(
                """
                DELETE FROM impact_records
                WHERE project_id = ? AND scope = ? AND identity_key = ?
                  AND period_start = ? AND period_end = ?
                """,
                (record.project_id, record.scope.value, identity_key, start, end),
            )
            cur.execute(
                """
                INSERT INTO impact_records (
                    project_id, scope, identity_key, suite, test_name,
                    period_start, period_end, status, payload, calculated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.project_id,
                    record.scope.value,
                    identity_key,
                    suite,
                    test_name,
                    start,
                    end,
                    record.status.value,
                    json.dumps(record.to_dict()),
                    format_ts(record.calculated_at),
                ),
            )
            saved.append(replace(record, record_id=cur.lastrowid))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return saved


def save_risk(conn: sqlite3.Connection, assessment: RiskAssessment) -> RiskAssessment:
    cur = conn.cursor()
    try:
        cur.execute("BEGIN")
        cur.execute(
            """
            INSERT INTO risk_assessments (
                project_id, file_path, score, level, confidence, payload, assessed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                assessment.project_id or "",
                assessment.file_path,
                assessment.score,
                assessment.level.value,
                assessment.confidence,
                json.dumps(assessment.to_dict()),
                format_ts(assessment.assessed_at),
            ),
        )
        assessment_id = cur.lastrowid
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return replace(assessment, assessment_id=assessment_id)
