"""Logging wiring.

- ``unified`` logger: one structured dict line per request (see app_factory).
- Support ring buffer: WARN+ records with their request id, kept in memory so
  recent failures can be inspected without external log aggregation.
"""

from __future__ import annotations

import collections
import logging
import time

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=500)


class SupportLogHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
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
                "msg": self.format(record),
                "request_id": rid,
                "path": path,
            }
        )


def install_support_log_handler() -> None:
    root = logging.getLogger()
    # Avoid duplicate attachment if reloaded
    if any(isinstance(h, SupportLogHandler) for h in root.handlers):
        return
    h = SupportLogHandler(level=logging.WARNING)
    h.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(h)


def get_request_logger() -> logging.Logger:
    log = logging.getLogger("unified")
    if not log.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(h)
    log.setLevel(logging.INFO)
    return log


__all__ = ["LOG_BUFFER", "install_support_log_handler", "get_request_logger"]
