"""
Event sink interface.

The solver emits one SolveFinishedEvent per search; the segment loop and the
executor emit segment, boundary and replan events. Sinks may also expose a
``close()`` method, which the bus calls once on shutdown.
"""
from __future__ import annotations

from typing import Any, Protocol


class EventSink(Protocol):
    def on_event(self, event: Any) -> None:
        """Consume one planner event."""
