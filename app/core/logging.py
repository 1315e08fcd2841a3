"""Root logger setup.

LOG_JSON picks the output shape.  Locally, ``_TextFormatter`` prints one
readable line per record and tacks domain ids on the end.  In production,
``_JsonLinesFormatter`` emits one JSON object per record so the log store
can filter on ``quiz_id`` or ``request_id`` directly.

Domain ids reach the formatters through ``extra=`` on the logging call;
request_id is stamped on every record by app/middleware/request_context.py.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes copied from a LogRecord into the output when present
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "user_id",
    "course_id",
    "lesson_id",
    "quiz_id",
    "enrollment_id",
)

# Shown on text lines; the request fields are already in the access log line
_TEXT_SUFFIX_FIELDS = ("user_id", "course_id", "lesson_id", "quiz_id", "enrollment_id")

_NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.access",
    "uvicorn.error",
    "sqlalchemy.engine",
    "httpcore",
    "httpx",
)


def _timestamp(record: logging.LogRecord) -> str:
    moment = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds")


def record_context(record: logging.LogRecord, fields=CONTEXT_FIELDS) -> dict[str, object]:
    context = {}
    for name in fields:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value
    return context


class _TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(levelname)-8s %(name)s  %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = f"{_timestamp(record)} {super().format(record)}"
        context = record_context(record, _TEXT_SUFFIX_FIELDS)
        if context:
            line += "  " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.levelno >= logging.WARNING:
            # Points at the guard clause that rejected the request
            line += f"  [{record.filename}:{record.lineno}]"
        return line


class _JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send every record to stdout at ``level_name`` (unknown names mean INFO).

    Library loggers never go below WARNING, so DEBUG shows this service's
    records without SQL echo or HTTP client chatter.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonLinesFormatter() if json_format else _TextFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
