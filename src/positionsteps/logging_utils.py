from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from typing import Any

from positionsteps.logging_context import LOGGING_CONTEXT_FIELDS, get_logging_context
from positionsteps.security.redaction import redact_data


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = getattr(record, "extra", None)
        if isinstance(extras, dict):
            payload.update(extras)

        context = get_logging_context()
        for field in LOGGING_CONTEXT_FIELDS:
            payload.setdefault(field, context.get(field))

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["error_type"] = exc_type.__name__ if exc_type else "Exception"
            payload["error_message"] = str(exc_value) if exc_value is not None else ""
            payload["traceback"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["traceback"] = record.exc_text

        return json.dumps(redact_data(payload), default=str)


def _resolve_log_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level

    candidate = level if level is not None else os.getenv("LOG_LEVEL", "INFO")
    resolved = logging.getLevelName(str(candidate).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int | None = None) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    resolved_level = _resolve_log_level(level)
    root.setLevel(resolved_level)

    # Request lines from httpx would print the RPC URL, which may embed a key.
    logging.getLogger("httpx").setLevel(logging.DEBUG if resolved_level <= logging.DEBUG else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
