"""Logging configuration and setup.

Every record is one JSON object (UTC timestamps). Order and chat
identifiers passed through ``extra=`` end up as top-level keys, so a single
order can be followed across webhook, reply and sweep logs.
"""

import json
import logging
import os
import sys
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Empty LOG_DIR disables the file handler
LOG_DIR = os.getenv("LOG_DIR", "logs")

# One file per process start
SESSION_ID = uuid.uuid4().hex[:8]
LOG_FILENAME = f"cod_confirm_{datetime.now(timezone.utc):%Y-%m-%d}_{SESSION_ID}.log"

CONTEXT_FIELDS = ("order_id", "order_number", "chat_id", "sweep_id", "shop_domain")

QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """Structured JSON output with order context."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}
        )

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(payload, default=str, ensure_ascii=False)


def _configure_root() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(logging.DEBUG)
    formatter = JSONFormatter()

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    stdout.setFormatter(formatter)
    root.addHandler(stdout)

    if LOG_DIR:
        Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        session_file = logging.FileHandler(Path(LOG_DIR) / LOG_FILENAME, encoding="utf-8")
        session_file.setLevel(logging.DEBUG)
        session_file.setFormatter(formatter)
        root.addHandler(session_file)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_root()


def setup_logger(name: str) -> logging.Logger:
    """Get logger for a module."""
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
