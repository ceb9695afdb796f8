"""Structured logging for memory store operations, dedup decisions and search."""

import logging
from typing import Any, Dict, List, Optional

# Keys whose values are memory content and never reach the log verbatim
SENSITIVE_FIELDS = ['text', 'previous_value', 'new_value', 'query_text', 'content', 'secret', 'password']


class StructuredLogger:
    """Structured logger for memory, vector and analytics operations."""

    def __init__(self, name: str = "memstore"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_memory_operation(self, operation: str, memory_id: str, owner: Optional[str] = None,
                             details: Dict[str, Any] = None, status: str = "success"):
        """Log a mutation or read of a single memory record."""
        log_details = {"memory_id": memory_id, "owner": owner}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"memory.{operation}", status, log_details)

    def log_dedup_decision(self, outcome: str, memory_id: Optional[str],
                           similarity: Optional[float] = None, owner: Optional[str] = None):
        """Log which ingest stage matched."""
        log_details = {"outcome": outcome, "memory_id": memory_id, "owner": owner}
        if similarity is not None:
            log_details["similarity"] = round(similarity, 4)

        self.log_operation("dedup.decision", outcome, log_details, level=logging.DEBUG)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        """Log a vector operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "failed" else logging.DEBUG
        self.log_operation(f"vector.{operation}", status, log_details, level=level)

    def log_search(self, owner: Optional[str], result_count: int, duration_ms: float,
                   threshold: float, limit: int):
        """Log a completed similarity search."""
        log_details = {
            "owner": owner,
            "result_count": result_count,
            "duration_ms": round(duration_ms, 2),
            "threshold": threshold,
            "limit": limit,
        }
        self.log_operation("search", "success", log_details)

    def log_provider_unavailable(self, operation: str, error: Exception):
        """Log an embedding provider failure that was degraded around."""
        self.log_operation(f"embedding.{operation}", "unavailable",
                           {"error": str(error)[:200]}, level=logging.WARNING)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None,
                sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
