"""Replan boundaries and their detection during a segment.

When several boundaries hold at once, detection reports them in a fixed
order: GoalReached, HorizonCap, InventoryPressure, UpgradeAffordable,
UnlockBoundary, InputsDepleted.
"""

# pylint: disable=missing-function-docstring
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Mapping, Union

from idle_planner.core.domain.interactions import effective_credits
from idle_planner.core.domain.skills import Skill
from idle_planner.solver.goal import Goal

if TYPE_CHECKING:
    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.candidates import Candidates, WatchSet
    from idle_planner.solver.config import SegmentConfig
    from idle_planner.solver.rates import Rates


# ---------------------------------------------------------------------------
# Expected boundaries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GoalReached:
    priority: ClassVar[int] = 0
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = False

    def describe(self) -> str:
        return "Goal reached"


@dataclass(frozen=True, slots=True)
class HorizonCap:
    ticks_elapsed: int

    priority: ClassVar[int] = 1
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"Horizon reached after {self.ticks_elapsed} ticks"


@dataclass(frozen=True, slots=True)
class InventoryPressure:
    used_slots: int
    total_slots: int

    priority: ClassVar[int] = 2
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"Inventory pressure ({self.used_slots}/{self.total_slots} slots)"


@dataclass(frozen=True, slots=True)
class UpgradeAffordable:
    purchase_id: str
    cost: int = 0

    priority: ClassVar[int] = 3
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"Upgrade affordable: {self.purchase_id} ({self.cost} gp)"


@dataclass(frozen=True, slots=True)
class UnlockBoundary:
    skill: Skill
    new_action_id: str
    level: int = 0

    priority: ClassVar[int] = 4
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"{self.skill} level {self.level} unlocks {self.new_action_id}"


@dataclass(frozen=True, slots=True)
class InputsDepleted:
    action_id: str
    item_id: str

    priority: ClassVar[int] = 5
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"{self.action_id} ran out of {self.item_id}"


@dataclass(frozen=True, slots=True)
class PlannedSegmentStop:
    """The planned segment ran to completion without hitting a watched boundary."""

    description: str = ""

    priority: ClassVar[int] = 6
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return self.description or "Planned segment stop"


@dataclass(frozen=True, slots=True)
class Death:
    action_id: str | None = None

    priority: ClassVar[int] = 7
    is_expected: ClassVar[bool] = True
    causes_replan: ClassVar[bool] = False

    def describe(self) -> str:
        return f"Died during {self.action_id}" if self.action_id else "Died"


# ---------------------------------------------------------------------------
# Unexpected boundaries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InventoryFull:
    priority: ClassVar[int] = 8
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return "Inventory full"


@dataclass(frozen=True, slots=True)
class CannotAfford:
    purchase_id: str
    cost: float
    available: float

    priority: ClassVar[int] = 9
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"Cannot afford {self.purchase_id}: {self.available:.0f}/{self.cost:.0f} gp"


@dataclass(frozen=True, slots=True)
class ActionUnavailable:
    action_id: str
    reason: str

    priority: ClassVar[int] = 10
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"{self.action_id} unavailable: {self.reason}"


@dataclass(frozen=True, slots=True)
class TimeBudgetExceeded:
    planned_ticks: int
    actual_ticks: int

    priority: ClassVar[int] = 11
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = True

    def describe(self) -> str:
        return f"Execution took {self.actual_ticks} ticks against {self.planned_ticks} planned"


@dataclass(frozen=True, slots=True)
class NoProgressPossible:
    reason: str = ""

    priority: ClassVar[int] = 12
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = False

    def describe(self) -> str:
        return f"No progress possible: {self.reason}" if self.reason else "No progress possible"


@dataclass(frozen=True, slots=True)
class ReplanLimitExceeded:
    limit: int

    priority: ClassVar[int] = 13
    is_expected: ClassVar[bool] = False
    causes_replan: ClassVar[bool] = False

    def describe(self) -> str:
        return f"Replan limit of {self.limit} segments exceeded"


ReplanBoundary = Union[
    GoalReached,
    HorizonCap,
    InventoryPressure,
    UpgradeAffordable,
    UnlockBoundary,
    InputsDepleted,
    PlannedSegmentStop,
    Death,
    InventoryFull,
    CannotAfford,
    ActionUnavailable,
    TimeBudgetExceeded,
    NoProgressPossible,
    ReplanLimitExceeded,
]


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SegmentWatch:
    """Boundaries that end a segment, fixed when the segment is planned.

    Only competitive upgrades end a segment. Conditions that already hold
    when the segment starts are not reported, so a segment cannot end before
    it has done anything.
    """

    goal: Goal
    config: SegmentConfig
    watch: WatchSet
    sell_policy: SellPolicy
    start_levels: Mapping[Skill, int] = field(default_factory=dict)
    upgrade_costs: Mapping[str, int] = field(default_factory=dict)
    depleted_at_start: frozenset[str] = frozenset()

    @classmethod
    def build(
        cls,
        state: GameState,
        goal: Goal,
        candidates: Candidates,
        config: SegmentConfig,
    ) -> SegmentWatch:
        credits = effective_credits(state, candidates.sell_policy)
        upgrade_costs = {}
        for upgrade_id in candidates.buy_upgrades:
            cost = state.catalog.upgrade(upgrade_id).cost
            if credits < cost:
                upgrade_costs[upgrade_id] = cost
        depleted = frozenset(
            a for a in candidates.watch.consuming_activity_ids
            if not state.has_inputs_for(state.action_def(a))
        )
        return cls(
            goal=goal,
            config=config,
            watch=candidates.watch,
            sell_policy=candidates.sell_policy,
            start_levels={skill: state.skill_level(skill) for skill in Skill},
            upgrade_costs=upgrade_costs,
            depleted_at_start=depleted,
        )

    def detect_boundary(self, state: GameState, elapsed_ticks: int) -> ReplanBoundary | None:
        """The highest-priority boundary that holds for ``state``, if any."""
        if self.goal.is_satisfied(state):
            return GoalReached()

        max_ticks = self.config.max_segment_ticks
        if max_ticks is not None and elapsed_ticks >= max_ticks:
            return HorizonCap(elapsed_ticks)

        if self.config.stop_at_inventory_pressure:
            if state.inventory_used_fraction >= self.config.inventory_pressure_threshold:
                return InventoryPressure(state.inventory_used, state.inventory_slots)

        if self.config.stop_at_upgrade_affordable and self.upgrade_costs:
            credits = effective_credits(state, self.sell_policy)
            for upgrade_id in sorted(self.upgrade_costs):
                cost = self.upgrade_costs[upgrade_id]
                if credits >= cost:
                    return UpgradeAffordable(upgrade_id, cost)

        if self.config.stop_at_unlock_boundary:
            for action_id in self.watch.locked_activity_ids:
                action = state.action_def(action_id)
                start = self.start_levels.get(action.skill, 1)
                level = state.skill_level(action.skill)
                if start < action.unlock_level <= level:
                    return UnlockBoundary(action.skill, action_id, action.unlock_level)

        if self.config.stop_at_inputs_depleted and state.active_action is not None:
            active = state.active_action
            if active in self.watch.consuming_activity_ids and active not in self.depleted_at_start:
                action = state.action_def(active)
                for item_id, quantity in sorted(action.inputs.items()):
                    if state.count(item_id) < quantity:
                        return InputsDepleted(active, item_id)
        return None


# ---------------------------------------------------------------------------
# Segment goal
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SegmentGoal(Goal):
    """Plan toward ``goal`` but stop at the first watched boundary."""

    goal: Goal
    segment_watch: SegmentWatch

    def is_satisfied(self, state: GameState) -> bool:
        return self.goal.is_satisfied(state)

    def is_satisfied_at(self, state: GameState, elapsed_ticks: int) -> bool:
        return self.segment_watch.detect_boundary(state, elapsed_ticks) is not None

    def ticks_until_stop(self, state: GameState, elapsed_ticks: int) -> int | None:
        max_ticks = self.segment_watch.config.max_segment_ticks
        if max_ticks is None:
            return None
        return max(0, max_ticks - elapsed_ticks)

    def remaining(self, state: GameState) -> float:
        return self.goal.remaining(state)

    def progress(self, state: GameState) -> float:
        return self.goal.progress(state)

    def progress_per_tick(self, state: GameState, rates: Rates) -> float:
        return self.goal.progress_per_tick(state, rates)

    def activity_rate(self, skill: Skill, gold_rate: float, xp_rate: float) -> float:
        return self.goal.activity_rate(skill, gold_rate, xp_rate)

    def is_skill_relevant(self, skill: Skill) -> bool:
        return self.goal.is_skill_relevant(skill)

    @property
    def relevant_skills(self) -> frozenset[Skill]:
        return self.goal.relevant_skills

    @property
    def consuming_skills(self) -> frozenset[Skill]:
        return self.goal.consuming_skills

    @property
    def bucket_skills(self) -> frozenset[Skill]:
        return self.goal.bucket_skills

    @property
    def is_sell_relevant(self) -> bool:
        return self.goal.is_sell_relevant

    def sell_policy(self, state: GameState) -> SellPolicy:
        return self.goal.sell_policy(state)

    def skill_targets(self, state: GameState) -> dict[Skill, int]:
        return self.goal.skill_targets(state)

    def needs_final_sell(self, state: GameState) -> bool:
        return self.goal.is_satisfied(state) and self.goal.needs_final_sell(state)

    def describe(self) -> str:
        return f"{self.goal.describe()} (segment)"
