"""
Structured logging configuration.

Provides:
    • JSON log lines in production (one object per line)
    • Coloured console output for development
    • Context-scoped fields (request_id, alert_id) carried across awaits
      through a ContextVar, so a background alert task logs with the id of
      the alert it is working on

Usage:
    from alertbot.core.logging_config import setup_logging, log_context

    setup_logging()
    with log_context(alert_id="urn:oid:2.49.0.1.840"):
        logger.info("Publishing alert")
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from alertbot.core.config import settings

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes passed through ``extra=`` that end up in JSON output
EXTRA_FIELDS = (
    "alert_id", "user_id", "severity", "status", "delivery",
    "retry_after_ms", "duration_ms", "status_code", "endpoint",
    "targeted", "excluded",
)


def set_request_context(**kwargs: Any) -> None:
    """Replace the current log context (called by the request middleware)."""
    _log_context.set(kwargs)


def get_request_context() -> Dict[str, Any]:
    return _log_context.get()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[Dict[str, Any]]:
    """Temporarily merge fields into the log context."""
    merged = {**_log_context.get(), **kwargs}
    token = _log_context.set(merged)
    try:
        yield merged
    finally:
        _log_context.reset(token)


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """Machine-parseable JSON log output."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        ctx = get_request_context()
        if ctx:
            entry["context"] = ctx

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Coloured single-line format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        ctx = get_request_context()
        tags = []
        if ctx.get("request_id"):
            tags.append(ctx["request_id"][:8])
        if ctx.get("alert_id"):
            tags.append(f"alert={ctx['alert_id']}")
        tag_str = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{tag_str} {record.name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


# ── Setup ──

def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
