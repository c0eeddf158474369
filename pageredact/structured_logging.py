"""Logging setup for the redaction core and its service.

When PAGEREDACT_LOG_FORMAT=json, all log output is JSON-lines, one
object per line, suitable for log aggregators.

When PAGEREDACT_LOG_FORMAT=text (default), standard human-readable
format is used.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

_EXTRA_KEYS = ("doc_id", "page", "identity", "error_type", "duration_ms", "count")


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line.

    - `severity` carries the level name
    - `message` for the log message
    - `timestamp` in RFC-3339
    - `logger` for the logger name
    - known extra fields are merged at top level
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Merge any extra fields that were passed via `extra={…}` kwarg
        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info and record.exc_info[2]:
            payload["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Exception",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
                "stacktrace": "".join(traceback.format_exception(*record.exc_info)),
            }

        return json.dumps(payload, default=str)


def setup_logging(log_format: Optional[str] = None, level: Optional[str] = None) -> None:
    """Configure the root logger once, in text or JSON-lines format."""
    from pageredact.config import config

    fmt = (log_format or config.log_format).lower()
    lvl = (level or config.log_level).upper()

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)

    # Quiet noisy third-party loggers
    for name in ("uvicorn.access", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)
