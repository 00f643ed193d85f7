# propdesk/logging_config.py
"""
Process-wide logging for the API and the CLI.

Gateway code logs with `extra={...}` (entity, entity_id, actor and friends);
whatever it passes ends up on the emitted line next to the request id, either
as one JSON object (default) or as key=value pairs for a local terminal.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import settings
from .middleware.request_id import get_request_id

# attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("x", logging.INFO, "x", 0, "", None, None))) | {"message", "asctime"}


def _store_context(record: logging.LogRecord) -> dict[str, Any]:
    out: dict[str, Any] = {}
    rid = get_request_id()
    if rid:
        out["request_id"] = rid
    for k, v in vars(record).items():
        if k not in _RECORD_ATTRS and not k.startswith("_"):
            out[k] = v
    return out


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_store_context(record),
        }
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


class KeyValueFormatter(logging.Formatter):
    """`12:00:01 INFO propdesk.services.tasks task_created entity=Task entity_id=3`"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        ctx = " ".join(f"{k}={v}" for k, v in _store_context(record).items())
        text = f"{ts} {record.levelname} {record.name} {record.getMessage()}"
        if ctx:
            text = f"{text} {ctx}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def configure_logging() -> None:
    level = settings.log_level.upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(KeyValueFormatter() if settings.log_format == "text" else JsonFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(settings.sql_log_level.upper())
    logging.getLogger("httpx").setLevel("WARNING")
