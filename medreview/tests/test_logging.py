"""
Tests for JSON log formatting and audit lines.
"""
import json
import logging

from medreview.core.logging import AuditLogger, StructuredFormatter, redact


def record(msg, **extra):
    return logging.makeLogRecord({
        "name": "medreview.test",
        "msg": msg,
        "levelno": logging.INFO,
        "levelname": "INFO",
        **extra,
    })


class TestStructuredFormatter:
    """One redacted JSON object per record."""

    def test_secrets_redacted(self):
        assert redact("token=abc123 rest") == "token=***REDACTED*** rest"
        assert "eyJhbGci" not in redact("Authorization: Bearer eyJhbGci.payload")

    def test_audit_fields_promoted(self):
        line = json.loads(StructuredFormatter().format(
            record("AUDIT: BDApproved", actor_id="bd-1", action="BDApproved", entity_id="s-1")
        ))
        assert line["message"] == "AUDIT: BDApproved"
        assert line["level"] == "INFO"
        assert line["actor_id"] == "bd-1"
        assert line["entity_id"] == "s-1"
        assert "entity_type" not in line

    def test_plain_record_has_no_audit_fields(self):
        line = json.loads(StructuredFormatter().format(record("hello")))
        assert set(line) == {"timestamp", "level", "logger", "message"}


class TestAuditLogger:
    def test_audit_line(self, caplog):
        caplog.set_level(logging.INFO, logger="audit-test")
        AuditLogger("audit-test").log(
            action="ScoresSubmitted",
            actor_id="md-1",
            entity_type="medical_review",
            entity_id="s-1",
            details={"overall_grade": "A", "brand_id": "b-1"},
        )

        [rec] = caplog.records
        assert rec.getMessage() == (
            'AUDIT: ScoresSubmitted on medical_review:s-1 - {"brand_id": "b-1", "overall_grade": "A"}'
        )
        assert rec.actor_id == "md-1"
        assert rec.action == "ScoresSubmitted"
