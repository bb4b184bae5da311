from __future__ import annotations

import logging
from collections.abc import Mapping

from .metrics import Metrics

logger = logging.getLogger("civicdesk.metrics")


class LoggingMetrics(Metrics):
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        ordered = dict(sorted((tags or {}).items()))
        logger.info("metric name=%s tags=%s", name, ordered)
