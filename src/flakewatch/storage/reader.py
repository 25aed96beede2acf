"""Read rows back from the flakewatch database into domain objects."""

import json
import sqlite3
from dataclasses import fields
from datetime import datetime
from typing import Any, Optional

from ..impact.models import ImpactRecord, ImpactScope, ImpactStatus
from ..models import (
    Classification,
    FailurePattern,
    FlakyPattern,
    LifecycleState,
    OutcomeRecord,
    OutcomeStatus,
    QuarantineAction,
    QuarantineEvent,
    TestIdentity,
    TriggeredBy,
    parse_timestamp,
)
from ..risk.features import MetadataFeatures, StaticFeatures
from ..risk.models import FailureCategory, RiskAssessment, RiskLevel
from .writer import format_ts, identity_columns

_IDENTITY_WHERE = "project_id = ? AND suite = ? AND test_name = ?"


def _identity(row: sqlite3.Row) -> TestIdentity:
    return TestIdentity(row["project_id"], row["test_name"], row["suite"] or None)


def _window(where: list[str], params: list[Any], since: Optional[datetime], until: Optional[datetime]) -> None:
    if since is not None:
        where.append("timestamp >= ?")
        params.append(format_ts(since))
    if until is not None:
        where.append("timestamp <= ?")
        params.append(format_ts(until))


# ── outcomes ─────────────────────────────────────────────────────────


def _outcome(row: sqlite3.Row) -> OutcomeRecord:
    return OutcomeRecord(
        identity=_identity(row),
        status=OutcomeStatus(row["status"]),
        timestamp=parse_timestamp(row["timestamp"]),
        duration=row["duration"],
        branch=row["branch"],
        error_message=row["error_message"],
        stack_trace=row["stack_trace"],
        retry_attempt=row["retry_attempt"],
        run_id=row["run_id"],
    )


def load_outcomes(
    conn: sqlite3.Connection,
    identity: TestIdentity,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> list[OutcomeRecord]:
    """Outcomes of one identity in [since, until], oldest first."""
    where = [_IDENTITY_WHERE]
    params: list[Any] = list(identity_columns(identity))
    _window(where, params, since, until)
    rows = conn.execute(
        f"SELECT * FROM outcomes WHERE {' AND '.join(where)} ORDER BY timestamp, id",
        params,
    ).fetchall()
    return [_outcome(r) for r in rows]


def load_project_outcomes(
    conn: sqlite3.Connection,
    project_id: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> list[OutcomeRecord]:
    where = ["project_id = ?"]
    params: list[Any] = [project_id]
    _window(where, params, since, until)
    rows = conn.execute(
        f"SELECT * FROM outcomes WHERE {' AND '.join(where)} ORDER BY timestamp, id",
        params,
    ).fetchall()
    return [_outcome(r) for r in rows]


def latest_timestamp(conn: sqlite3.Connection, identity: TestIdentity) -> Optional[datetime]:
    row = conn.execute(
        f"SELECT MAX(timestamp) AS ts FROM outcomes WHERE {_IDENTITY_WHERE}",
        identity_columns(identity),
    ).fetchone()
    return parse_timestamp(row["ts"]) if row is not None else None


def list_identities(conn: sqlite3.Connection, project_id: Optional[str] = None) -> list[TestIdentity]:
    query = "SELECT DISTINCT project_id, suite, test_name FROM outcomes"
    params: tuple = ()
    if project_id is not None:
        query += " WHERE project_id = ?"
        params = (project_id,)
    rows = conn.execute(query + " ORDER BY project_id, suite, test_name", params).fetchall()
    return [_identity(r) for r in rows]


def list_projects(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT project_id FROM outcomes UNION SELECT project_id FROM flaky_patterns ORDER BY project_id"
    ).fetchall()
    return [r["project_id"] for r in rows]


# ── patterns and events ──────────────────────────────────────────────


def _pattern(row: sqlite3.Row) -> FlakyPattern:
    return FlakyPattern(
        identity=_identity(row),
        failure_rate=row["failure_rate"],
        total_runs=row["total_runs"],
        failure_count=row["failure_count"],
        confidence=row["confidence"],
        first_seen=parse_timestamp(row["first_seen"]),
        last_seen=parse_timestamp(row["last_seen"]),
        is_active=bool(row["is_active"]),
        is_quarantined=bool(row["is_quarantined"]),
        quarantined_at=parse_timestamp(row["quarantined_at"]),
        state=LifecycleState(row["state"]),
        classification=Classification(row["classification"]),
        failure_pattern=FailurePattern(row["failure_pattern"]) if row["failure_pattern"] else None,
        day_variance=row["day_variance"],
        recovery_started_at=parse_timestamp(row["recovery_started_at"]),
        unquarantined_at=parse_timestamp(row["unquarantined_at"]),
        premature_unquarantines=row["premature_unquarantines"],
        updated_at=parse_timestamp(row["updated_at"]),
        version=row["version"],
    )


def load_pattern(conn: sqlite3.Connection, identity: TestIdentity) -> Optional[FlakyPattern]:
    row = conn.execute(
        f"SELECT * FROM flaky_patterns WHERE {_IDENTITY_WHERE}", identity_columns(identity)
    ).fetchone()
    return _pattern(row) if row is not None else None


def load_patterns(
    conn: sqlite3.Connection, project_id: Optional[str] = None, active_only: bool = False
) -> list[FlakyPattern]:
    where, params = [], []
    if project_id is not None:
        where.append("project_id = ?")
        params.append(project_id)
    if active_only:
        where.append("is_active = 1")
    query = "SELECT * FROM flaky_patterns"
    if where:
        query += " WHERE " + " AND ".join(where)
    rows = conn.execute(query + " ORDER BY project_id, suite, test_name", params).fetchall()
    return [_pattern(r) for r in rows]


def load_events(
    conn: sqlite3.Connection,
    identity: Optional[TestIdentity] = None,
    project_id: Optional[str] = None,
) -> list[QuarantineEvent]:
    """Audit events, oldest first."""
    where, params = [], []
    if identity is not None:
        where.append(_IDENTITY_WHERE)
        params.extend(identity_columns(identity))
    elif project_id is not None:
        where.append("project_id = ?")
        params.append(project_id)
    query = "SELECT * FROM quarantine_events"
    if where:
        query += " WHERE " + " AND ".join(where)
    rows = conn.execute(query + " ORDER BY timestamp, id", params).fetchall()
    return [
        QuarantineEvent(
            identity=_identity(r),
            action=QuarantineAction(r["action"]),
            triggered_by=TriggeredBy(r["triggered_by"]),
            reason=r["reason"],
            timestamp=parse_timestamp(r["timestamp"]),
            confidence=r["confidence"],
            policy_violation=bool(r["policy_violation"]),
            event_id=r["id"],
        )
        for r in rows
    ]


# ── impact ───────────────────────────────────────────────────────────

_IMPACT_SPECIAL = {
    "project_id",
    "scope",
    "identity",
    "status",
    "period_start",
    "period_end",
    "calculated_at",
    "recommendations",
    "record_id",
}


def _impact(row: sqlite3.Row) -> ImpactRecord:
    payload = json.loads(row["payload"])
    values = {
        f.name: payload[f.name]
        for f in fields(ImpactRecord)
        if f.name not in _IMPACT_SPECIAL and f.name in payload
    }
    identity = None
    if row["identity_key"]:
        identity = TestIdentity(row["project_id"], row["test_name"], row["suite"] or None)
    return ImpactRecord(
        project_id=row["project_id"],
        scope=ImpactScope(row["scope"]),
        period_start=parse_timestamp(row["period_start"]),
        period_end=parse_timestamp(row["period_end"]),
        identity=identity,
        status=ImpactStatus(row["status"]),
        recommendations=tuple(payload.get("recommendations") or ()),
        calculated_at=parse_timestamp(row["calculated_at"]),
        record_id=row["id"],
        **values,
    )


def load_impacts(
    conn: sqlite3.Connection,
    project_id: str,
    scope: Optional[ImpactScope] = None,
    identity: Optional[TestIdentity] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> list[ImpactRecord]:
    """Impact records of a project ordered by period start."""
    where = ["project_id = ?"]
    params: list[Any] = [project_id]
    if scope is not None:
        where.append("scope = ?")
        params.append(scope.value)
    if identity is not None:
        where.append("identity_key = ?")
        params.append(identity.key)
    if since is not None:
        where.append("period_start >= ?")
        params.append(format_ts(since))
    if until is not None:
        where.append("period_end <= ?")
        params.append(format_ts(until))
    rows = conn.execute(
        f"SELECT * FROM impact_records WHERE {' AND '.join(where)} ORDER BY period_start, id",
        params,
    ).fetchall()
    return [_impact(r) for r in rows]


def load_latest_impact(
    conn: sqlite3.Connection, project_id: str, identity: Optional[TestIdentity] = None
) -> Optional[ImpactRecord]:
    scope = ImpactScope.TEST if identity is not None else ImpactScope.PROJECT
    row = conn.execute(
        """
        SELECT * FROM impact_records
        WHERE project_id = ? AND scope = ? AND identity_key = ?
        ORDER BY calculated_at DESC, id DESC LIMIT 1
        """,
        (project_id, scope.value, identity.key if identity else ""),
    ).fetchone()
    return _impact(row) if row is not None else None


# ── risk ─────────────────────────────────────────────────────────────


def _risk(row: sqlite3.Row) -> RiskAssessment:
    payload = json.loads(row["payload"])
    return RiskAssessment(
        file_path=row["file_path"],
        project_id=row["project_id"] or None,
        score=row["score"],
        level=RiskLevel(row["level"]),
        confidence=row["confidence"],
        categories=tuple(FailureCategory(c) for c in payload.get("categories", [])),
        static=StaticFeatures.from_dict(payload.get("static", {})),
        metadata=MetadataFeatures.from_dict(payload.get("metadata", {})),
        days_to_flaky=payload.get("days_to_flaky"),
        contributions=payload.get("contributions", {}),
        assessed_at=parse_timestamp(row["assessed_at"]),
        assessment_id=row["id"],
    )


def load_risk_assessments(
    conn: sqlite3.Connection,
    project_id: Optional[str] = None,
    file_path: Optional[str] = None,
) -> list[RiskAssessment]:
    """Assessments, newest first."""
    where, params = [], []
    if project_id is not None:
        where.append("project_id = ?")
        params.append(project_id)
    if file_path is not None:
        where.append("file_path = ?")
        params.append(file_path)
    query = "SELECT * FROM risk_assessments"
    if where:
        query += " WHERE " + " AND ".join(where)
    rows = conn.execute(query + " ORDER BY assessed_at DESC, id DESC", params).fetchall()
    return [_risk(r) for r in rows]
