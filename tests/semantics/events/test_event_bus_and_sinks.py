"""
Semantic test: event delivery.

Invariant:
The event bus delivers events to its sinks in registration order, closes
every sink exactly once, drops events emitted after close, and rejects new
sinks once closed. The file recorder writes one JSON object per event,
tagged with the event type.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.state import GameState
from idle_planner.core.events.event_bus import EventBus
from idle_planner.core.events.events import ReplanEvent, SolveFinishedEvent
from idle_planner.core.events.sinks.file_recorder import FileRecorderSink
from idle_planner.solver.goal import ReachGpGoal
from idle_planner.solver.solver import solve


class _ListSink:
    def __init__(self, name: str, seen: list[tuple[str, object]]) -> None:
        self.name = name
        self.seen = seen
        self.closed = 0

    def on_event(self, event: object) -> None:
        self.seen.append((self.name, event))

    def close(self) -> None:
        self.closed += 1


def test_bus_dispatches_in_order_and_closes_once() -> None:
    seen: list[tuple[str, object]] = []
    first = _ListSink("first", seen)
    second = _ListSink("second", seen)
    bus = EventBus([first])
    bus.register(second)

    event = ReplanEvent(0, "Goal reached", 10)
    bus.emit(event)
    bus.close()
    bus.close()
    bus.emit(ReplanEvent(1, "late", 20))

    assert seen == [("first", event), ("second", event)]
    assert first.closed == 1
    assert second.closed == 1
    with pytest.raises(RuntimeError):
        bus.register(_ListSink("third", seen))


def test_file_recorder_writes_json_lines(tmp_path: Path) -> None:
    path = tmp_path / "events" / "run.jsonl"
    bus = EventBus([FileRecorderSink(path)])

    result = solve(GameState.new(load_default_catalog()), ReachGpGoal(20), event_bus=bus)
    bus.close()

    assert result.is_success
    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    finished = [r for r in records if r["type"] == "SolveFinishedEvent"]
    assert len(finished) == 1
    assert finished[0]["success"] is True
    assert finished[0]["total_ticks"] == result.plan.total_ticks


def test_solver_reports_failures_as_events() -> None:
    seen: list[tuple[str, object]] = []
    bus = EventBus([_ListSink("sink", seen)])

    result = solve(GameState.new(load_default_catalog()), ReachGpGoal(10_000), max_expanded_nodes=1, event_bus=bus)

    events = [event for _, event in seen if isinstance(event, SolveFinishedEvent)]
    assert not result.is_success
    assert len(events) == 1
    assert events[0].success is False
    assert events[0].failure_reason == result.failure.reason


def test_bus_closes_sinks_on_context_exit() -> None:
    seen: list[tuple[str, object]] = []
    sink = _ListSink("sink", seen)

    with pytest.raises(ValueError):
        with EventBus([sink]) as bus:
            raise ValueError("boom")

    assert bus.closed
    assert sink.closed == 1
