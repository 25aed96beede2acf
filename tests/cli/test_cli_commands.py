"""End-to-end tests for the flakewatch command line."""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest
from typer.testing import CliRunner

from flakewatch import __version__
from flakewatch.cli import app

# Wide enough that identity columns never truncate.
runner = CliRunner(env={"COLUMNS": "200"})

RISKY_TEST = '''
import time
import requests


def test_fetch_orders():
    time.sleep(2)
    response = requests.get("http://orders.internal/api", timeout=5)
    assert response.status_code == 200
'''


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in [k for k in os.environ if k.startswith("FLAKEWATCH_")]:
        monkeypatch.delenv(key)
    return tmp_path


@pytest.fixture
def base_args(workspace):
    return ["--quiet", "--db", str(workspace / "fw.db"), "--no-cache"]


@pytest.fixture
def results_file(workspace):
    """Ten recent runs of one flaky test, as JSON lines."""
    start = datetime.now(timezone.utc) - timedelta(hours=12)
    lines = []
    for i, ch in enumerate("FPPFPPFPPP"):
        lines.append(
            json.dumps(
                {
                    "test_name": "test_checkout",
                    "status": "failed" if ch == "F" else "passed",
                    "timestamp": (start + timedelta(hours=i)).isoformat(),
                    "duration": 30.0,
                }
            )
        )
    path = workspace / "results.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return path


def invoke(base_args, *args):
    return runner.invoke(app, [*base_args, *args])


class TestBasics:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status_when_empty(self, base_args):
        result = invoke(base_args, "status")
        assert result.exit_code == 0
        assert "No tracked patterns" in result.output


class TestIngestAndStatus:
    """A flaky batch is ingested, quarantined and listed."""

    def test_ingest_json(self, base_args, results_file):
        result = invoke(base_args, "ingest", str(results_file), "--project", "web", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["accepted"] == 10
        assert data["rejected"] == 0
        assert data["transitions"]["web::test_checkout"]["to"] == "quarantined"
        assert [e["action"] for e in data["events"]] == ["quarantined"]

    def test_ingest_array_with_bad_record(self, base_args, workspace):
        path = workspace / "batch.json"
        path.write_text(
            json.dumps(
                [
                    {"project_id": "web", "test_name": "test_a", "status": "passed", "timestamp": "2024-03-01T09:00:00Z"},
                    {"project_id": "web", "test_name": "test_a", "status": "bogus", "timestamp": "2024-03-01T10:00:00Z"},
                ]
            )
        )
        result = invoke(base_args, "ingest", str(path))
        assert result.exit_code == 0, result.output
        assert "1 records accepted" in result.output
        assert "FW102" in result.output

    def test_status_after_ingest(self, base_args, results_file):
        invoke(base_args, "ingest", str(results_file), "--project", "web")
        result = invoke(base_args, "status", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["patterns"][0]["identity"] == "web::test_checkout"
        assert data["patterns"][0]["is_quarantined"] is True
        assert data["quarantine"]["currently_quarantined"] == 1

    def test_status_table_keeps_identity_on_one_line(self, base_args, results_file):
        invoke(base_args, "ingest", str(results_file), "--project", "web")
        result = invoke(base_args, "status")
        assert result.exit_code == 0, result.output
        row = next(line for line in result.output.splitlines() if "web::test_checkout" in line)
        assert "quarantined" in row


class TestQuarantineCommands:
    def test_manual_cycle_and_events(self, base_args):
        result = invoke(base_args, "quarantine", "test_search", "--project", "web", "--reason", "hangs on CI")
        assert result.exit_code == 0, result.output
        assert "Quarantined" in result.output

        result = invoke(base_args, "unquarantine", "test_search", "--project", "web", "--reason", "fixed")
        assert result.exit_code == 0, result.output

        result = invoke(base_args, "events", "--project", "web", "--json")
        trail = json.loads(result.output)
        assert [e["action"] for e in trail] == ["quarantined", "unquarantined"]
        assert all(e["triggered_by"] == "manual" for e in trail)

    def test_events_test_needs_project(self, base_args):
        result = invoke(base_args, "events", "--test", "test_search")
        assert result.exit_code == 2


class TestImpactCommands:
    def test_impact(self, base_args, results_file):
        invoke(base_args, "ingest", str(results_file), "--project", "web")
        result = invoke(base_args, "impact", "--project", "web", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["total"]["failure_count"] == 3
        assert data["top_tests"][0]["identity"] == "web::test_checkout"

    def test_impact_without_data(self, base_args):
        result = invoke(base_args, "impact", "--project", "empty")
        assert result.exit_code == 0
        assert "No flaky failures" in result.output

    def test_trend(self, base_args, results_file):
        invoke(base_args, "ingest", str(results_file), "--project", "web")
        result = invoke(base_args, "trend", "--project", "web", "--days", "3", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert len(data["points"]) == 3
        assert data["failed_days"] == []


class TestRiskCommand:
    def test_scores_directory(self, base_args, workspace):
        tests_dir = workspace / "suite"
        tests_dir.mkdir()
        (tests_dir / "test_orders.py").write_text(RISKY_TEST)
        (tests_dir / "helpers.py").write_text("X = 1\n")

        result = invoke(base_args, "risk", str(tests_dir), "--project", "web", "--json")
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["summary"]["total_files"] == 1
        assert data["assessments"][0]["file_path"].endswith("test_orders.py")
        assert data["assessments"][0]["score"] > 0

    def test_no_test_files(self, base_args, workspace):
        empty = workspace / "empty"
        empty.mkdir()
        result = invoke(base_args, "risk", str(empty))
        assert result.exit_code == 0
        assert "No test files" in result.output


class TestCacheCommands:
    def test_disabled(self, base_args):
        result = invoke(base_args, "cache-info")
        assert result.exit_code == 0
        assert "Disabled" in result.output

    def test_enabled(self, workspace):
        args = ["--quiet", "--db", str(workspace / "fw.db")]
        result = runner.invoke(app, [*args, "cache-info"])
        assert result.exit_code == 0, result.output
        assert "Enabled" in result.output
        result = runner.invoke(app, [*args, "cache-clear"])
        assert "Cache cleared" in result.output
