from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

__all__ = ["JsonFormatter", "configure_logging"]


class JsonFormatter(logging.Formatter):
    """A minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # extras attached by the dispatcher (see bankly.http)
        for key in ("service", "correlation_id", "endpoint", "method", "status"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        return json.dumps(payload, separators=(",", ":"))


class _ServiceFilter(logging.Filter):
    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self._service
        return True


def configure_logging(
    fmt: str | None = None,
    *,
    service_name: str | None = None,
    level: str | None = None,
) -> None:
    """Configure the ``bankly`` logger with plain text or JSON output.

    Args:
        fmt: 'json' or 'text'. Defaults to LOG_FORMAT env or 'text'.
        service_name: optional service label to inject into every log line.
        level: log level name. Defaults to LOG_LEVEL env or 'INFO'.
    """

    fmt = (fmt or os.getenv("LOG_FORMAT", "text")).lower()
    logger = logging.getLogger("bankly")
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
        )
    if service_name:
        handler.addFilter(_ServiceFilter(service_name))
    logger.addHandler(handler)
    logger.propagate = False
