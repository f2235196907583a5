from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any

_TOKEN_RE = re.compile(r"(Token\s+|api_key=|token=)([^&\s'\"]+)", re.IGNORECASE)

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    )
)


def redact_secrets(message: str) -> str:
    """Redact API tokens that can show up in exception messages, URLs or headers."""
    if not message:
        return message
    return _TOKEN_RE.sub(r"\1REDACTED", message)


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": redact_secrets(record.getMessage()),
        }
        # If extra fields were passed, include them.
        for k, v in record.__dict__.items():
            if k.startswith("_") or k in _RESERVED_ATTRS or k in payload:
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except (TypeError, ValueError):
                payload[k] = str(v)
        if record.exc_info:
            payload["exc"] = redact_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
    if json_logs is None:
        json_logs = (os.environ.get("LOG_JSON") or "").strip().lower() in ("1", "true", "yes", "on")

    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    # Avoid adding duplicate handlers in tests/worker restarts.
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)

    logging.getLogger("plate_privacy").setLevel(level)
