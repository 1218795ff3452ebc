import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional, TextIO

# Structured fields copied from `extra=` when present.
_EXTRA_FIELDS = (
    "correlation_id",
    "op",
    "connection_name",
    "ssid",
    "ifname",
    "key",
    "result_code",
    "bind",
    "path",
    "method",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in _EXTRA_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, separators=(",", ":"))


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """
    Route every logger through one JSON-lines handler.

    The daemon logs to stdout (journald picks it up); the settings CLI passes
    stderr so stdout stays a single JSON response.
    """
    lvl = (level or os.environ.get("NM_HOTSPOT_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, lvl, logging.INFO))

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
