"""
Planner event models.

These events represent immutable facts observed while solving and executing.
They are consumed by loggers, recorders, and monitoring pipelines.
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class SolveFinishedEvent:
    goal: str
    success: bool

    expanded_nodes: int
    enqueued_nodes: int

    total_ticks: int
    interaction_count: int
    failure_reason: str | None = None


@dataclass(slots=True)
class SegmentCompletedEvent:
    segment_index: int
    boundary: str

    planned_ticks: int
    actual_ticks: int
    deaths: int


@dataclass(slots=True)
class BoundaryHitEvent:
    segment_index: int
    boundary: str
    expected: bool
    elapsed_ticks: int


@dataclass(slots=True)
class ReplanEvent:
    segment_index: int
    reason: str
    elapsed_ticks: int
