"""Tests for logging setup and the identity-tagged audit log."""

import logging
from datetime import timedelta

import pytest

from flakewatch.logging_config import get_logger, identity_context, setup_logging


@pytest.fixture
def audit_log(tmp_path):
    path = tmp_path / "audit.log"
    setup_logging(verbose=True, log_file=str(path))
    return path


class TestSetupLogging:
    def test_levels(self):
        assert setup_logging(quiet=True).level == logging.ERROR
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert setup_logging().level == logging.WARNING

    def test_repeated_setup_does_not_stack_handlers(self, audit_log):
        logger = setup_logging(verbose=True, log_file=str(audit_log))
        assert len(logger.handlers) == 2

    def test_get_logger_namespaces(self):
        assert get_logger("storage").name == "flakewatch.storage"
        assert get_logger("flakewatch.engine").name == "flakewatch.engine"
        assert get_logger().name == "flakewatch"


class TestAuditLog:
    """The audit file carries the test identity when one is tagged."""

    def test_tagged_and_untagged_records(self, audit_log, identity):
        log = get_logger("flakewatch.quarantine.manager")
        log.info("quarantined", extra=identity_context(identity))
        log.info("batch done")
        lines = audit_log.read_text().splitlines()
        assert lines[0].endswith("[web::cart::test_checkout_total] quarantined")
        assert lines[1].endswith("[-] batch done")

    def test_lifecycle_transitions_are_tagged(self, audit_log, engine, runs, identity, t0):
        engine.ingest(runs(identity, "FPPFPPFPPP"))
        engine.manual_unquarantine(identity, "fixed upstream", now=t0 + timedelta(hours=10))
        text = audit_log.read_text()
        assert "[web::cart::test_checkout_total] web::cart::test_checkout_total: quarantined (auto)" in text
        assert "WARNING flakewatch.quarantine.manager [web::cart::test_checkout_total] Policy violation" in text
