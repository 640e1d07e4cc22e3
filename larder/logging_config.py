"""Structured logging and audit trail for larder.

Provides:
- JSON file handler with rotation (~/.larder/logs/)
- Dedicated audit log for tool executions
- Console handler respecting verbose mode
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path

from larder.config import DATA_DIR

LOGS_DIR = DATA_DIR / "logs"
AUDIT_LOG_FILE = LOGS_DIR / "audit.jsonl"
APP_LOG_FILE = LOGS_DIR / "larder.log"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

_EXTRA_FIELDS = (
    "tool_name",
    "tool_call_id",
    "tool_args",
    "tool_result",
    "duration_s",
    "attempt",
    "status",
    "phase",
    "event",
)


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = repr(record.exc_info[1])
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _rotating_handler(path: Path) -> logging.handlers.RotatingFileHandler:
    handler = logging.handlers.RotatingFileHandler(
        str(path),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(verbose: bool = False) -> None:
    """Configure application-wide logging.

    - File handler: JSON lines to ~/.larder/logs/larder.log (with rotation)
    - Console handler: only if verbose=True, WARNING+ level
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("larder")
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    file_handler = _rotating_handler(APP_LOG_FILE)
    file_handler.setLevel(logging.DEBUG)
    root.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
        root.addHandler(console_handler)


def get_audit_logger() -> logging.Logger:
    """Get the dedicated audit logger for tool executions."""
    logger = logging.getLogger("larder.audit")
    logger.setLevel(logging.INFO)
    if not any(
        isinstance(h, logging.handlers.RotatingFileHandler)
        and str(AUDIT_LOG_FILE) in getattr(h, "baseFilename", "")
        for h in logger.handlers
    ):
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_rotating_handler(AUDIT_LOG_FILE))
    return logger


def log_tool_execution(
    tool_name: str,
    tool_call_id: str | None,
    tool_args: dict,
    result: str,
    success: bool,
    duration_s: float,
) -> None:
    """Log a tool execution to the audit trail."""
    logger = get_audit_logger()
    result_preview = result[:500] if len(result) > 500 else result
    logger.info(
        "Tool executed: %s",
        tool_name,
        extra={
            "tool_name": tool_name,
            "tool_call_id": tool_call_id,
            "tool_args": tool_args,
            "tool_result": result_preview,
            "status": "ok" if success else "error",
            "duration_s": round(duration_s, 3),
        },
    )
