from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from boaz.context import get_correlation_id, get_tenant_id


_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# extras copied into the "fields" object of a JSON line
_STRUCTURED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "job_id",
        "job_type",
        "status",
        "count",
        "error",
        "event_name",
        "user_id",
        "jti",
        "program_id",
        "ticket_id",
        "appointment_id",
        "schedule_key",
        "source",
        "entity",
    }
)

_MAX_ERROR_LENGTH = 500
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s|%(tenant_id)s] %(message)s"


def _stamp_context(record: logging.LogRecord) -> logging.LogRecord:
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    if not getattr(record, "tenant_id", None):
        record.tenant_id = get_tenant_id()
    return record


class RequestContextFilter(logging.Filter):
    """Copies the request's correlation and tenant ids onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        _stamp_context(record)
        return True


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = {
            key: value
            for key, value in record.__dict__.items()
            if key in _STRUCTURED_FIELDS and key not in _RESERVED
        }
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "tenant_id": getattr(record, "tenant_id", None),
            "fields": fields,
        }
        return json.dumps(line, default=str)


def _build_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    if os.getenv("LOG_FORMAT", "json").lower() == "text":
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    else:
        handler.setFormatter(JsonLogFormatter())
    handler.addFilter(RequestContextFilter())
    return handler


def configure_logging() -> None:
    """Install the stdout handler once; LOG_LEVEL and LOG_FORMAT (json|text) come from the environment."""
    root = logging.getLogger()
    if getattr(root, "_boaz_configured", False):
        return

    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    base_factory = logging.getLogRecordFactory()

    def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        return _stamp_context(base_factory(*args, **kwargs))

    logging.setLogRecordFactory(record_factory)
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(_build_handler(level))
    root._boaz_configured = True  # type: ignore[attr-defined]
