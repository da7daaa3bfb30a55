"""Optional search statistics for tuning.

Collecting a profile never changes the search result; timings are wall-clock
and only reported.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from idle_planner.runtime.prometheus_metrics import PrometheusMetricsClient

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SolverProfile:
    expanded_nodes: int = 0
    enqueued_nodes: int = 0
    dominated_pruned: int = 0
    same_key_waits_dropped: int = 0
    interaction_edges: int = 0
    wait_edges: int = 0
    macro_edges: int = 0
    macro_failures: int = 0
    dead_ends: int = 0
    max_queue_size: int = 0
    phase_seconds: dict[str, float] = field(default_factory=dict)

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.phase_seconds[name] = self.phase_seconds.get(name, 0.0) + time.perf_counter() - start

    @property
    def total_seconds(self) -> float:
        return sum(self.phase_seconds.values())

    def counters(self) -> dict[str, float]:
        return {
            "expanded_nodes": self.expanded_nodes,
            "enqueued_nodes": self.enqueued_nodes,
            "dominated_pruned": self.dominated_pruned,
            "same_key_waits_dropped": self.same_key_waits_dropped,
            "interaction_edges": self.interaction_edges,
            "wait_edges": self.wait_edges,
            "macro_edges": self.macro_edges,
            "macro_failures": self.macro_failures,
            "dead_ends": self.dead_ends,
            "max_queue_size": self.max_queue_size,
        }

    def summary(self) -> str:
        parts = [f"{name}={value}" for name, value in self.counters().items()]
        parts.extend(f"{name}_s={seconds:.3f}" for name, seconds in sorted(self.phase_seconds.items()))
        return " ".join(parts)


class _NullPhase:
    """Stand-in used when no profile is being collected."""

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        yield


NULL_PHASES = _NullPhase()


def push_solver_profile(
    profile: SolverProfile,
    client: PrometheusMetricsClient,
    *,
    job: str,
    labels: dict[str, str] | None = None,
) -> None:
    """Push ``profile`` as gauges; best-effort, never raises on delivery problems."""
    if not client.is_enabled():
        return

    labels = labels or {}
    for name, value in profile.counters().items():
        client.push_gauge(name=f"idle_planner_solver_{name}", value=float(value), labels=labels)
    for name, seconds in sorted(profile.phase_seconds.items()):
        client.push_gauge(name=f"idle_planner_solver_{name}_seconds", value=seconds, labels=labels)

    try:
        client.push_all(job=job)
    except OSError:
        LOGGER.warning("solver profile push failed", extra={"job": job}, exc_info=True)
