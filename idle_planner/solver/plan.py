"""Plan and segment model.

A plan is an immutable, ordered list of steps. ``compress`` and
``from_segments`` return new plans; nothing here mutates in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence, Union

from idle_planner.core.domain.interactions import SwitchActivity

if TYPE_CHECKING:
    from idle_planner.core.domain.interactions import Interaction
    from idle_planner.solver.boundaries import ReplanBoundary
    from idle_planner.solver.macros import MacroCandidate
    from idle_planner.solver.wait_for import WaitFor, WaitReason

TICK_MILLISECONDS = 100


def format_ticks(ticks: int) -> str:
    """Render a tick count as wall-clock game time, e.g. ``1h 02m 03s``."""
    seconds = ticks * TICK_MILLISECONDS // 1000
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InteractionStep:
    interaction: Interaction

    @property
    def ticks(self) -> int:
        return 0

    def describe(self) -> str:
        return self.interaction.describe()


@dataclass(frozen=True, slots=True)
class WaitStep:
    ticks: int
    wait_for: WaitFor
    expected_action: str | None = None

    @property
    def reason(self) -> WaitReason:
        return self.wait_for.reason

    def describe(self) -> str:
        return f"Wait {self.ticks} ticks ({format_ticks(self.ticks)}) until {self.wait_for.describe()}"


@dataclass(frozen=True, slots=True)
class MacroStep:
    """A compound decision together with the primitive steps it expanded to."""

    macro: MacroCandidate
    ticks: int
    wait_for: WaitFor
    final_action: str | None = None
    expansion: tuple[Step, ...] = ()

    @property
    def reason(self) -> WaitReason:
        return self.wait_for.reason

    def describe(self) -> str:
        return f"{self.macro.describe()} ({self.ticks} ticks, {format_ticks(self.ticks)})"


Step = Union[InteractionStep, WaitStep, MacroStep]


def count_interactions(steps: Iterable[Step]) -> int:
    """Interactions in ``steps``, including those inside macro expansions."""
    total = 0
    for step in steps:
        if isinstance(step, InteractionStep):
            total += 1
        elif isinstance(step, MacroStep):
            total += count_interactions(step.expansion)
    return total


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SegmentMarker:
    step_index: int
    boundary: ReplanBoundary
    description: str = ""


@dataclass(frozen=True, slots=True)
class Plan:
    steps: tuple[Step, ...] = ()
    total_ticks: int = 0
    interaction_count: int = 0
    expanded_nodes: int = 0
    enqueued_nodes: int = 0
    expected_deaths: float = 0.0
    segment_markers: tuple[SegmentMarker, ...] = ()

    @classmethod
    def empty(cls) -> Plan:
        return cls()

    @classmethod
    def from_steps(cls, steps: Sequence[Step], **stats: float) -> Plan:
        """Build a plan whose totals are derived from ``steps``."""
        return cls(
            steps=tuple(steps),
            total_ticks=sum(step.ticks for step in steps),
            interaction_count=count_interactions(steps),
            **stats,
        )

    @classmethod
    def from_segments(cls, segments: Sequence[Segment]) -> Plan:
        """Concatenate ``segments``, marking where each one starts."""
        steps: list[Step] = []
        markers: list[SegmentMarker] = []
        total_ticks = 0
        interactions = 0
        expanded = 0
        enqueued = 0
        for segment in segments:
            markers.append(SegmentMarker(len(steps), segment.stop_boundary, segment.description))
            steps.extend(segment.steps)
            total_ticks += segment.total_ticks
            interactions += segment.interaction_count
            expanded += segment.expanded_nodes
            enqueued += segment.enqueued_nodes
        return cls(
            steps=tuple(steps),
            total_ticks=total_ticks,
            interaction_count=interactions,
            expanded_nodes=expanded,
            enqueued_nodes=enqueued,
            segment_markers=tuple(markers),
        )

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def macro_trace(self) -> tuple[MacroStep, ...]:
        """Every macro step, top-level and nested, in execution order."""
        trace: list[MacroStep] = []

        def walk(steps: Iterable[Step]) -> None:
            for step in steps:
                if isinstance(step, MacroStep):
                    trace.append(step)
                    walk(step.expansion)

        walk(self.steps)
        return tuple(trace)

    def compress(self, initial_active_action: str | None = None) -> Plan:
        """Return an equivalent, shorter plan.

        Consecutive waits merge into one (ticks summed, the later reason
        kept), zero-tick waits disappear, and a switch to the activity that is
        already active is dropped. ``total_ticks`` is preserved and
        ``interaction_count`` recomputed. Segment markers are kept only on
        uncompressed plans, since step indices shift.
        """
        steps: list[Step] = []
        active = initial_active_action
        for step in self.steps:
            if isinstance(step, InteractionStep):
                if isinstance(step.interaction, SwitchActivity):
                    if step.interaction.action_id == active:
                        continue
                    active = step.interaction.action_id
            elif isinstance(step, MacroStep):
                if step.final_action is not None:
                    active = step.final_action
            elif isinstance(step, WaitStep):
                if step.ticks <= 0:
                    continue
                if steps and isinstance(steps[-1], WaitStep):
                    previous = steps[-1]
                    steps[-1] = WaitStep(
                        ticks=previous.ticks + step.ticks,
                        wait_for=step.wait_for,
                        expected_action=step.expected_action or previous.expected_action,
                    )
                    continue
            steps.append(step)

        return Plan(
            steps=tuple(steps),
            total_ticks=self.total_ticks,
            interaction_count=count_interactions(steps),
            expanded_nodes=self.expanded_nodes,
            enqueued_nodes=self.enqueued_nodes,
            expected_deaths=self.expected_deaths,
            segment_markers=self.segment_markers if len(steps) == len(self.steps) else (),
        )

    def pretty_print(self, max_steps: int = 30) -> str:
        """Human-readable rendering; for display only."""
        lines = [
            f"Plan: {self.step_count} steps, {self.total_ticks} ticks "
            f"({format_ticks(self.total_ticks)}), {self.interaction_count} interactions"
        ]
        if self.expected_deaths > 0:
            lines.append(f"  expected deaths: {self.expected_deaths:.2f}")
        markers = {m.step_index: m for m in self.segment_markers}
        for index, step in enumerate(self.steps[:max_steps]):
            marker = markers.get(index)
            if marker is not None:
                lines.append(f"  --- {marker.description or marker.boundary.describe()} ---")
            lines.append(f"  {index + 1:>3}. {step.describe()}")
        hidden = self.step_count - max_steps
        if hidden > 0:
            lines.append(f"  ... {hidden} more steps")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Segment:
    """A planning unit that stops at one expected boundary."""

    steps: tuple[Step, ...]
    total_ticks: int
    interaction_count: int
    stop_boundary: ReplanBoundary
    description: str = ""
    expanded_nodes: int = 0
    enqueued_nodes: int = 0

    @classmethod
    def from_plan(cls, plan: Plan, stop_boundary: ReplanBoundary, description: str = "") -> Segment:
        return cls(
            steps=plan.steps,
            total_ticks=plan.total_ticks,
            interaction_count=plan.interaction_count,
            stop_boundary=stop_boundary,
            description=description or stop_boundary.describe(),
            expanded_nodes=plan.expanded_nodes,
            enqueued_nodes=plan.enqueued_nodes,
        )
