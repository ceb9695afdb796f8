"""
Structured logging and payload sanitisation.
"""

import logging

import pytest
from unittest.mock import MagicMock, patch

from memstore.util.logging import StructuredLogger, audit_event, sanitize_payload

from conftest import E1


class TestStructuredLogger:
    """Formatting and levels of the structured helpers."""

    def setup_method(self):
        self.structured = StructuredLogger("memstore.test")
        self.structured.logger = MagicMock()

    def test_log_operation_format(self):
        self.structured.log_operation("ingest", "success", {"memory_id": "mem_1"})

        level, message = self.structured.logger.log.call_args[0]
        assert level == logging.INFO
        assert message == "Operation: ingest, Status: success, Details: {'memory_id': 'mem_1'}"

    def test_memory_operation_redacts_text(self):
        self.structured.log_memory_operation("ingest", "mem_1", "alice", {"text": "secret diary"})

        message = self.structured.logger.log.call_args[0][1]
        assert "memory.ingest" in message
        assert "secret diary" not in message
        assert "[REDACTED]" in message

    def test_dedup_decision_is_debug(self):
        self.structured.log_dedup_decision("semantic", "mem_1", similarity=0.971234)

        level, message = self.structured.logger.log.call_args[0]
        assert level == logging.DEBUG
        assert "0.9712" in message

    def test_failed_vector_operation_is_warning(self):
        self.structured.log_vector_operation("refresh", "mem_1", {"error": "boom"}, status="failed")
        assert self.structured.logger.log.call_args[0][0] == logging.WARNING

        self.structured.log_vector_operation("upsert", "mem_1")
        assert self.structured.logger.log.call_args[0][0] == logging.DEBUG

    def test_provider_unavailable_is_warning(self):
        self.structured.log_provider_unavailable("ingest", RuntimeError("x" * 500))

        level, message = self.structured.logger.log.call_args[0]
        assert level == logging.WARNING
        assert "embedding.ingest" in message
        assert "x" * 201 not in message


def test_sanitize_payload():
    payload = {
        "text": "private",
        "memory_id": "mem_1",
        "nested": [{"query_text": "also private"}, "y" * 150],
    }

    sanitized = sanitize_payload(payload)

    assert sanitized["text"] == "[REDACTED]"
    assert sanitized["memory_id"] == "mem_1"
    assert sanitized["nested"][0]["query_text"] == "[REDACTED]"
    assert sanitized["nested"][1] == "y" * 100 + "..."
    assert sanitize_payload(payload, reveal_sensitive=True)["text"] == "private"


@patch("memstore.util.logging.logger")
def test_audit_event(mock_logger):
    audit_event("memory.hard_delete", {"memory_id": "mem_1"}, {"text": "gone", "hard": True})

    operation, status, details = mock_logger.log_operation.call_args[0]
    assert operation == "memory_hard_delete"
    assert status == "audit"
    assert details == {"memory_id": "mem_1", "payload": {"text": "[REDACTED]", "hard": True}}


def test_store_logs_ingest_without_text(store, caplog):
    with caplog.at_level(logging.INFO, logger="memstore"):
        store.ingest("a very private thought", embedding=E1)

    assert any("memory.ingest" in record.getMessage() for record in caplog.records)
    assert all("a very private thought" not in record.getMessage() for record in caplog.records)


def test_provider_failure_logged_as_warning(settings, caplog):
    from memstore import SemanticMemoryStore

    provider = MagicMock()
    provider.embed_text.side_effect = RuntimeError("provider offline")
    store = SemanticMemoryStore(settings, embedding_provider=provider)

    with caplog.at_level(logging.WARNING, logger="memstore"):
        store.ingest("degraded")

    assert any(record.levelno == logging.WARNING and "provider offline" in record.getMessage()
               for record in caplog.records)


def test_debug_setting_lowers_log_level(tmp_path):
    from memstore import SemanticMemoryStore, StoreSettings
    from memstore.util.logging import logger

    previous = logger.logger.level
    try:
        SemanticMemoryStore(StoreSettings(db_path=str(tmp_path / "debug.db"), embedding_dimension=4, debug=True))
        assert logger.logger.level == logging.DEBUG
    finally:
        logger.logger.setLevel(previous)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
