"""JSON log lines for the publisher: one object per event, feed name hoisted."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from rate_publisher.core.time_utils import iso_millis

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())

# Context keys promoted next to the message so feed cycles can be grepped per feed.
_HOISTED = ("feed", "event_id")

# Per-request logs from the HTTP and websocket clients drown out cycle events.
_NOISY_LOGGERS = ("httpx", "httpcore", "websockets")


class JsonFormatter(logging.Formatter):
    """Serialize log records as compact JSON lines tagged with the service name."""

    def __init__(self, service: str = "rate_publisher") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": iso_millis(datetime.fromtimestamp(record.created, timezone.utc)),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        for key in _HOISTED:
            if key in extras:
                payload[key] = extras.pop(key)
        if extras:
            payload["context"] = extras

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO", service: str = "rate_publisher") -> None:
    """Configure process-wide JSON logging once."""

    root = logging.getLogger()
    if getattr(root, "_rate_publisher_configured", False):
        return

    root.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter(service))

    root.addHandler(handler)
    root.setLevel(level.upper())
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    setattr(root, "_rate_publisher_configured", True)
