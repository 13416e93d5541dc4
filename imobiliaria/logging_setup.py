"""Logging configuration + support log ring buffer.

`configure_logging` attaches a plain stream handler to the `imobiliaria`
logger tree. `SupportLogHandler` captures WARN+ records with the request id
into an in-memory deque so admins can read recent problems through
/api/admin/logs/recent without external log aggregation.
"""

from __future__ import annotations

import collections
import logging
import time

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=500)

LOGGER_NAME = "imobiliaria"


class SupportLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        if has_request_context():
            rid = getattr(g, "request_id", "-")
            path = request.path
        else:
            rid = "-"
            path = "-"
        LOG_BUFFER.append(
            {
                "ts": time.time(),
                "level": record.levelname,
                "logger": record.name,
                "msg": self.format(record),
                "request_id": rid,
                "path": path,
            }
        )


def configure_logging(level: str = "INFO") -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, SupportLogHandler) for h in log.handlers):
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(h)
    log.setLevel(getattr(logging, level.upper(), logging.INFO))
    return log


def install_support_log_handler() -> None:
    log = logging.getLogger(LOGGER_NAME)
    # Avoid duplicate attachment when several apps are created in one process
    if any(isinstance(h, SupportLogHandler) for h in log.handlers):
        return
    h = SupportLogHandler(level=logging.WARNING)
    h.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    log.addHandler(h)


def recent_logs(limit: int = 100, level: str | None = None) -> list[dict]:
    items = list(LOG_BUFFER)
    if level:
        items = [i for i in items if i["level"] == level.upper()]
    return items[-limit:][::-1]


__all__ = ["LOG_BUFFER", "configure_logging", "install_support_log_handler", "recent_logs"]
