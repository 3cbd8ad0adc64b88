"""Structured JSON audit logging for the gateway.

Logs go to stdout as JSON lines. Optional file output via AUDIT_LOG_FILE.

API keys never appear in log entries: callers pass client identities and
the credential path (shared vs. caller-supplied), not the keys themselves.
Any audit_data field whose name looks like a credential is masked anyway.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone

from src.config.settings import get_settings

AUDIT_LOGGER_NAME = "gateway.audit"

# Request-scoped context for correlating log entries
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_SENSITIVE_FIELDS = ("api_key", "apikey", "authorization", "x-api-key")


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        if hasattr(record, "audit_data"):
            log_entry.update(_mask(record.audit_data))
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            log_entry["exc_type"] = type(exc).__name__
            log_entry["exc_message"] = str(exc)
            if exc.__cause__ is not None:
                log_entry["exc_cause"] = type(exc.__cause__).__name__
        return json.dumps(log_entry, default=str)


def _mask(data: dict) -> dict:
    return {
        key: "***" if any(s in key.lower() for s in _SENSITIVE_FIELDS) else value
        for key, value in data.items()
    }


def setup_logging() -> None:
    """Configure the audit logger with JSON output."""
    settings = get_settings()

    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    if settings.audit_log_file:
        file_handler = logging.FileHandler(settings.audit_log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger (avoids duplicate output)
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager to measure upstream latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
