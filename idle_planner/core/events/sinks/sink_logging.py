"""
Logging event sink.
"""
from __future__ import annotations

import logging
from typing import Any

from idle_planner.core.events.sinks.file_recorder import event_record


class LoggingEventSink:
    """Logs each planner event under its type name, fields in ``extra``."""

    def __init__(self, logger: logging.Logger, level: int = logging.INFO) -> None:
        self._logger = logger
        self._level = level

    def on_event(self, event: Any) -> None:
        if not self._logger.isEnabledFor(self._level):
            return
        record = event_record(event)
        self._logger.log(self._level, record.pop("type"), extra={"event": record})
