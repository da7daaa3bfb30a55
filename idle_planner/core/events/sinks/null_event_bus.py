from __future__ import annotations

from typing import Any

from idle_planner.core.events.event_bus import EventBus


class NullEventBus(EventBus):
    """Bus used when the caller passes none; every event is dropped unseen."""

    def __init__(self) -> None:
        super().__init__()

    def emit(self, event: Any) -> None:
        return
