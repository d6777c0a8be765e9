"""Logging setup for s3http.

``HttpCommand`` logs one record per attempt and attaches the attempt's
fields with ``extra=attempt_fields(...)``. Both formatters render those
fields: JSON nests them under ``"request"``, text appends them as
``key=value`` pairs.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Fields of one request attempt, in output order.
ATTEMPT_FIELDS = ("verb", "path", "status", "outcome", "attempt", "duration_ms")

# Loggers that duplicate the per-attempt record at INFO.
_TRANSPORT_LOGGERS = ("httpx", "httpcore")


def attempt_fields(
    verb: str,
    path: str,
    status: int,
    outcome: str,
    attempt: int,
    duration_ms: float,
) -> dict:
    """The ``extra`` mapping for one attempt's log record."""
    return {
        "verb": verb,
        "path": path,
        "status": status,
        "outcome": outcome,
        "attempt": attempt,
        "duration_ms": duration_ms,
    }


def _record_attempt(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in ATTEMPT_FIELDS if hasattr(record, key)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, request."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request = _record_attempt(record)
        if request:
            entry["request"] = request
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with attempt number and timing appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        request = _record_attempt(record)
        if "attempt" in request:
            line += f" [attempt={request['attempt']} duration_ms={request.get('duration_ms')}]"
        return line


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: 'text' or 'json'.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)

    # httpx logs every request at INFO; s3http already logs each attempt.
    transport_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
