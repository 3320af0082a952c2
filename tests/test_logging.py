"""
Tests for structured logging and payload redaction.
"""

import logging

from context_keeper.util.logging import StructuredLogger, audit_event, logger, sanitize_payload


class TestSanitizePayload:
    """Redaction of content-bearing fields."""

    def test_sensitive_fields_redacted(self):
        """Content and secrets never reach the log."""
        payload = {"content": "private notes", "api_key": "sk-123", "context_count": 3}
        sanitized = sanitize_payload(payload)
        assert sanitized == {"content": "[REDACTED]", "api_key": "[REDACTED]", "context_count": 3}

    def test_nested_structures(self):
        """Redaction applies inside nested dicts and lists."""
        payload = {"items": [{"content": "secret", "id": "a"}]}
        assert sanitize_payload(payload) == {"items": [{"content": "[REDACTED]", "id": "a"}]}

    def test_long_strings_truncated(self):
        """Strings over 100 characters are shortened."""
        sanitized = sanitize_payload({"note": "x" * 150})
        assert sanitized["note"] == "x" * 100 + "..."

    def test_reveal_sensitive(self):
        """reveal_sensitive keeps every field."""
        assert sanitize_payload({"content": "shown"}, reveal_sensitive=True) == {"content": "shown"}


class TestStructuredLogger:
    """Level selection and helpers."""

    def test_failed_operations_log_as_errors(self, caplog):
        """Failed status is logged at ERROR."""
        with caplog.at_level(logging.INFO, logger="context_keeper"):
            logger.log_operation("backup.create", "failed", {"error": "disk full"})
        assert caplog.records[-1].levelno == logging.ERROR
        assert "backup.create" in caplog.records[-1].getMessage()

    def test_skipped_operations_log_as_warnings(self, caplog):
        """Skipped and degraded statuses are warnings."""
        with caplog.at_level(logging.INFO, logger="context_keeper"):
            logger.log_operation("session.capture", "skipped")
        assert caplog.records[-1].levelno == logging.WARNING

    def test_context_operation_logs_length_not_content(self, caplog):
        """Context logs carry the content length only."""
        with caplog.at_level(logging.INFO, logger="context_keeper"):
            logger.log_context_operation("added", "ctx-1", "very private text")
        message = caplog.records[-1].getMessage()
        assert "ctx-1" in message
        assert "content_length" in message
        assert "very private text" not in message

    def test_heartbeat_task_duration(self, caplog):
        """Heartbeat logs include the duration in milliseconds."""
        with caplog.at_level(logging.INFO, logger="context_keeper"):
            logger.log_heartbeat_task("automatic_backup", 1.0, 1.25)
        assert "250.0" in caplog.records[-1].getMessage()

    def test_single_handler(self):
        """Creating another logger with the same name does not duplicate handlers."""
        before = len(logging.getLogger("context_keeper").handlers)
        StructuredLogger()
        assert len(logging.getLogger("context_keeper").handlers) == before


def test_audit_event_redacts(caplog):
    """Audit events go through redaction."""
    with caplog.at_level(logging.INFO, logger="context_keeper"):
        audit_event("backup.created", {"backup_id": "backup-1.json"}, payload={"content": "secret"})
    message = caplog.records[-1].getMessage()
    assert "backup_created" in message
    assert "[REDACTED]" in message
    assert "secret" not in message
