"""Log output for the bitbucket_bridge logger tree.

Every module logs through `logging.getLogger("bitbucket_bridge.<area>")`.
configure_logging() attaches one stderr handler to the `bitbucket_bridge`
logger; stdout is reserved for the MCP stdio stream.

LOG_FORMAT=json (default) emits one JSON object per line:
    {"timestamp": "...Z", "level": "INFO", "logger": "bitbucket_bridge.server",
     "message": "registering_tools", "context": {"dialect": "cloud"}}
LOG_FORMAT=text emits a single human-readable line.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

LOGGER_NAMESPACE = "bitbucket_bridge"

REDACTED = "[REDACTED]"

# `extra=` keys whose values must not reach the log (compared lower-cased)
REDACTED_KEYS = frozenset(
    {
        "authorization",
        "bearer",
        "bitbucket_token",
        "credential",
        "password",
        "secret",
        "token",
    }
)

# Attributes every LogRecord carries; anything else came from `extra=`
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _extra_context(record: logging.LogRecord) -> dict[str, Any]:
    context = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        context[key] = REDACTED if key.lower() in REDACTED_KEYS else value
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, `extra=` fields nested under `context`."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _extra_context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def configure_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """(Re)configure the bitbucket_bridge logger.

    Arguments left as None fall back to LOG_LEVEL (default INFO) and
    LOG_FORMAT (default json). Safe to call repeatedly: the existing
    handler is kept and only its formatter and the level change.
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    format_name = (log_format or os.getenv("LOG_FORMAT") or "json").lower()

    formatter: logging.Formatter
    if format_name == "text":
        formatter = TextFormatter()
    else:
        formatter = StructuredFormatter()

    root = logging.getLogger(LOGGER_NAMESPACE)
    level_value = logging.getLevelName(level_name)
    root.setLevel(level_value if isinstance(level_value, int) else logging.INFO)
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stderr))
    for handler in root.handlers:
        handler.setFormatter(formatter)
    root.propagate = False
