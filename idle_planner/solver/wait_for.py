"""Wait conditions.

A ``WaitFor`` says what a wait step is waiting for. The planner uses
``estimate_ticks`` against expected rates; the executor re-checks
``is_satisfied`` against the real state, which keeps execution correct when
real randomness runs ahead of or behind the projection.
"""

# pylint: disable=missing-function-docstring
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from idle_planner.core.domain.interactions import SellAllPolicy, effective_credits
from idle_planner.core.domain.skills import Skill
from idle_planner.solver.goal import GOAL_EPSILON
from idle_planner.solver.rates import INF_TICKS, ticks_for_rate, ticks_until_death

if TYPE_CHECKING:
    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.rates import Rates


class WaitReason(str, Enum):
    GOAL_REACHED = "goal_reached"
    UPGRADE_AFFORDABLE = "upgrade_affordable"
    ACTIVITY_UNLOCKS = "activity_unlocks"
    INVENTORY_THRESHOLD = "inventory_threshold"
    INVENTORY_FULL = "inventory_full"
    INPUTS_DEPLETED = "inputs_depleted"
    STOCK_REACHED = "stock_reached"
    DEATH = "death"
    SKILL_LEVEL = "skill_level"
    MASTERY_LEVEL = "mastery_level"
    HORIZON = "horizon"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class WaitForGoal:
    goal: Goal

    reason = WaitReason.GOAL_REACHED
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return self.goal.is_satisfied(state)

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        return ticks_for_rate(self.goal.remaining(state), self.goal.progress_per_tick(state, rates))

    def describe(self) -> str:
        return f"goal ({self.goal.describe()})"


@dataclass(frozen=True, slots=True)
class WaitForSkillXp:
    skill: Skill
    target_xp: float
    reason: WaitReason = WaitReason.SKILL_LEVEL
    label: str = ""

    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return state.xp(self.skill) >= self.target_xp - GOAL_EPSILON

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        return ticks_for_rate(self.target_xp - state.xp(self.skill), rates.xp_per_tick(self.skill))

    def describe(self) -> str:
        return self.label or f"{self.skill} xp {self.target_xp:g}"


@dataclass(frozen=True, slots=True)
class WaitForMasteryXp:
    action_id: str
    target_xp: float

    reason = WaitReason.MASTERY_LEVEL
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return state.mastery(self.action_id) >= self.target_xp - GOAL_EPSILON

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        if rates.action_id != self.action_id:
            return INF_TICKS
        return ticks_for_rate(self.target_xp - state.mastery(self.action_id), rates.mastery_xp_per_tick)

    def describe(self) -> str:
        return f"{self.action_id} mastery xp {self.target_xp:g}"


@dataclass(frozen=True, slots=True)
class WaitForEffectiveCredits:
    """Wait until gp plus sellable inventory reaches ``amount``."""

    amount: float
    policy: SellPolicy = SellAllPolicy()
    label: str = ""

    reason = WaitReason.UPGRADE_AFFORDABLE
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return effective_credits(state, self.policy) >= self.amount - GOAL_EPSILON

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        keep = self.policy.keep
        rate = rates.direct_gp_per_tick
        for item_id, flow in rates.item_flows_per_tick.items():
            if item_id not in keep:
                rate += flow * state.catalog.sell_price(item_id)
        for item_id, flow in rates.items_consumed_per_tick.items():
            if item_id not in keep:
                rate -= flow * state.catalog.sell_price(item_id)
        return ticks_for_rate(self.amount - effective_credits(state, self.policy), rate)

    def describe(self) -> str:
        suffix = f" for {self.label}" if self.label else ""
        return f"{self.amount:g} credits{suffix}"


def _new_item_types_per_tick(state: GameState, rates: Rates) -> float:
    per_tick = 0.0
    for item_id, flow in rates.item_flows_per_tick.items():
        if flow > 0 and state.count(item_id) <= 0:
            per_tick += min(flow, 1.0)
    return per_tick


@dataclass(frozen=True, slots=True)
class WaitForInventoryThreshold:
    fraction: float

    reason = WaitReason.INVENTORY_THRESHOLD
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return state.inventory_used_fraction >= self.fraction

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        needed = self.fraction * state.inventory_slots - state.inventory_used
        return ticks_for_rate(needed, _new_item_types_per_tick(state, rates))

    def describe(self) -> str:
        return f"inventory {self.fraction:.0%} full"


@dataclass(frozen=True, slots=True)
class WaitForInventoryFull:
    reason = WaitReason.INVENTORY_FULL
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return state.free_slots <= 0

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        return ticks_for_rate(state.free_slots, _new_item_types_per_tick(state, rates))

    def describe(self) -> str:
        return "inventory full"


@dataclass(frozen=True, slots=True)
class WaitForInputsDepleted:
    action_id: str

    reason = WaitReason.INPUTS_DEPLETED
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return not state.has_inputs_for(state.action_def(self.action_id))

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        action = state.action_def(self.action_id)
        if not action.inputs:
            return INF_TICKS
        completions = min(state.count(item_id) / qty for item_id, qty in action.inputs.items())
        return int(completions + GOAL_EPSILON) * state.duration_ticks(action)

    def describe(self) -> str:
        return f"inputs for {self.action_id} depleted"


@dataclass(frozen=True, slots=True)
class WaitForInventoryAtLeast:
    item_id: str
    count: float

    reason = WaitReason.STOCK_REACHED
    is_time_based = False

    def is_satisfied(self, state: GameState) -> bool:
        return state.count(self.item_id) >= self.count - GOAL_EPSILON

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        return ticks_for_rate(self.count - state.count(self.item_id), rates.net_flow(self.item_id))

    def describe(self) -> str:
        return f"{self.count:g} x {self.item_id}"


@dataclass(frozen=True, slots=True)
class WaitForDeath:
    """Expected time until hit points run out; only a duration, not a state predicate."""

    reason = WaitReason.DEATH
    is_time_based = True

    def is_satisfied(self, state: GameState) -> bool:
        return False

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        ticks = ticks_until_death(state, rates)
        return INF_TICKS if ticks is None else max(1, ticks)

    def describe(self) -> str:
        return "expected death"


@dataclass(frozen=True, slots=True)
class WaitForHorizon:
    """A fixed number of ticks, used for segment horizons."""

    ticks: int

    reason = WaitReason.HORIZON
    is_time_based = True

    def is_satisfied(self, state: GameState) -> bool:
        return False

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        return max(0, self.ticks)

    def describe(self) -> str:
        return f"horizon of {self.ticks} ticks"


@dataclass(frozen=True, slots=True)
class WaitForAnyOf:
    conditions: tuple[WaitFor, ...]

    is_time_based = False

    @property
    def reason(self) -> WaitReason:
        return self.conditions[0].reason if self.conditions else WaitReason.UNKNOWN

    def is_satisfied(self, state: GameState) -> bool:
        return any(c.is_satisfied(state) for c in self.conditions if not c.is_time_based)

    def estimate_ticks(self, state: GameState, rates: Rates) -> int:
        if not self.conditions:
            return INF_TICKS
        return min(c.estimate_ticks(state, rates) for c in self.conditions)

    def first_satisfied(self, state: GameState) -> WaitFor | None:
        for condition in self.conditions:
            if not condition.is_time_based and condition.is_satisfied(state):
                return condition
        return None

    def describe(self) -> str:
        return " or ".join(c.describe() for c in self.conditions)


WaitFor = Union[
    WaitForGoal,
    WaitForSkillXp,
    WaitForMasteryXp,
    WaitForEffectiveCredits,
    WaitForInventoryThreshold,
    WaitForInventoryFull,
    WaitForInputsDepleted,
    WaitForInventoryAtLeast,
    WaitForDeath,
    WaitForHorizon,
    WaitForAnyOf,
]
