"""
Logging configuration

- setup_logging() installs a single root handler (text or JSON lines)
- get_logger(name) returns a logger under the po_workflow namespace
- Structured context is passed with extra={...} and rendered by the JSON formatter
"""
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

_LOGGER_PREFIX = "po_workflow"

# Attributes every LogRecord carries; anything else came in through extra={...}
_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName", "asctime"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    return str(obj)


class JSONFormatter(logging.Formatter):
    """Formats each record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val
        if record.exc_info and record.exc_info[1] is not None:
            payload["exc_type"] = type(record.exc_info[1]).__name__
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


class TextFormatter(logging.Formatter):
    """Human readable formatter that appends extra fields as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: val for key, val in vars(record).items()
            if key not in _STDLIB_KEYS
        }
        if extras:
            base += " | " + " ".join(f"{k}={v}" for k, v in extras.items())
        return base


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL
        fmt: "text" or "json"; defaults to settings.LOG_FORMAT
    """
    from po_workflow.core.config import settings

    level = (level or settings.LOG_LEVEL).upper()
    fmt = (fmt or settings.LOG_FORMAT).lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # SQL echo is controlled by the engine, keep the library quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the po_workflow namespace."""
    if name.startswith(_LOGGER_PREFIX):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")
