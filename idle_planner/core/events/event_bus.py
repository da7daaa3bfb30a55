"""
Synchronous event bus for solver and executor events.

Usable as a context manager so a CLI run closes its recorders on every exit
path.
"""
from __future__ import annotations

from typing import Any, Iterable

from idle_planner.core.events.event_sink import EventSink


class EventBus:
    """Fans planner events out to sinks, in registration order."""

    def __init__(self, sinks: Iterable[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = list(sinks or ())
        self._closed = False

    def __enter__(self) -> EventBus:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, sink: EventSink) -> None:
        if self._closed:
            raise RuntimeError("cannot register a sink on a closed event bus")
        self._sinks.append(sink)

    def emit(self, event: Any) -> None:
        """Deliver ``event`` to every sink; dropped once the bus is closed."""
        if self._closed:
            return
        for sink in self._sinks:
            sink.on_event(event)

    def close(self) -> None:
        """Close each sink that has a ``close()`` method, once."""
        if self._closed:
            return
        self._closed = True
        for sink in self._sinks:
            close_fn = getattr(sink, "close", None)
            if callable(close_fn):
                close_fn()
