"""How far the projection may advance before the next decision point.

The delta is the minimum over every boundary that could change the best
decision: goal satisfaction, an upgrade becoming affordable, an unlock, the
inventory filling up, inputs running out, a rate change from a level or
mastery threshold, or a death. This is what lets the search skip many ticks
per node.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from idle_planner.core.domain.interactions import effective_credits
from idle_planner.core.domain.xp import MAX_LEVEL, start_xp_for_level
from idle_planner.solver.rates import (
    INF_TICKS,
    death_cycle_adjusted_rates,
    estimate_rates,
    estimate_rates_for_action,
)
from idle_planner.solver.wait_for import (
    WaitForDeath,
    WaitForEffectiveCredits,
    WaitForGoal,
    WaitForHorizon,
    WaitForInputsDepleted,
    WaitForInventoryFull,
    WaitForInventoryThreshold,
    WaitForMasteryXp,
    WaitForSkillXp,
    WaitReason,
)

if TYPE_CHECKING:
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.candidates import Candidates
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.wait_for import WaitFor

# Thieving success depends on mastery level; replan every this many levels.
MASTERY_BOUNDARY_LEVELS = 10


class RateZeroReason(str, Enum):
    NO_RELEVANT_SKILL = "no_relevant_skill"
    NO_UNLOCKED_ACTIONS = "no_unlocked_actions"
    INPUTS_REQUIRED = "inputs_required"
    ZERO_TICKS = "zero_ticks"

    def describe(self) -> str:
        return _RATE_ZERO_DESCRIPTIONS[self]


_RATE_ZERO_DESCRIPTIONS = {
    RateZeroReason.NO_RELEVANT_SKILL: "no action advances the goal",
    RateZeroReason.NO_UNLOCKED_ACTIONS: "every relevant action is locked",
    RateZeroReason.INPUTS_REQUIRED: "every unlocked relevant action needs inputs that are not held",
    RateZeroReason.ZERO_TICKS: "every relevant action has zero duration",
}


@dataclass(frozen=True, slots=True)
class NextDecision:
    delta_ticks: int
    wait_for: WaitFor
    is_dead_end: bool = False
    rate_zero_reason: RateZeroReason | None = None


def classify_rate_zero(state: GameState, goal: Goal) -> RateZeroReason | None:
    """Why no action makes progress on ``goal``; None if some action does."""
    relevant = []
    for action in sorted(state.catalog.actions, key=lambda a: a.id):
        if not goal.is_skill_relevant(action.skill):
            continue
        rates = estimate_rates_for_action(state, action.id)
        if goal.progress_per_tick(state, rates) > 0 or rates.xp_per_tick(action.skill) > 0:
            relevant.append(action)
    if not relevant:
        return RateZeroReason.NO_RELEVANT_SKILL

    unlocked = [a for a in relevant if state.is_unlocked(a)]
    if not unlocked:
        return RateZeroReason.NO_UNLOCKED_ACTIONS
    if all(state.duration_ticks(a) <= 0 for a in unlocked):
        return RateZeroReason.ZERO_TICKS
    if all(not state.has_inputs_for(a) for a in unlocked):
        return RateZeroReason.INPUTS_REQUIRED
    return None


def next_decision_delta(
    state: GameState,
    goal: Goal,
    candidates: Candidates,
    *,
    elapsed_ticks: int = 0,
) -> NextDecision:
    """Ticks until the next boundary, and which boundary it is.

    Returns 0 when a decision is due now (goal met, a buy candidate is
    affordable from gp, or inventory pressure asks for a sell). Otherwise
    returns at least 1, or ``INF_TICKS`` when nothing changes in finite time.
    """
    if goal.is_satisfied_at(state, elapsed_ticks):
        return NextDecision(0, WaitForGoal(goal))
    for upgrade_id in candidates.buy_upgrades:
        cost = state.catalog.upgrade(upgrade_id).cost
        if state.gp >= cost:
            return NextDecision(0, WaitForEffectiveCredits(float(cost), label=upgrade_id))
    if candidates.include_sell_all:
        return NextDecision(0, WaitForInventoryThreshold(state.inventory_used_fraction))

    rates = estimate_rates(state)
    if rates.hp_loss_per_tick > 0:
        rates = death_cycle_adjusted_rates(state, rates)

    options: list[WaitFor] = []
    if goal.progress_per_tick(state, rates) > 0:
        options.append(WaitForGoal(goal))

    credits = effective_credits(state, candidates.sell_policy)
    for upgrade_id in candidates.watch.upgrade_ids:
        cost = state.catalog.upgrade(upgrade_id).cost
        if credits < cost:
            options.append(WaitForEffectiveCredits(float(cost), candidates.sell_policy, label=upgrade_id))

    for action_id in candidates.watch.locked_activity_ids:
        action = state.action_def(action_id)
        if state.is_unlocked(action):
            continue
        options.append(
            WaitForSkillXp(
                action.skill,
                start_xp_for_level(action.unlock_level),
                WaitReason.ACTIVITY_UNLOCKS,
                label=f"unlock {action_id}",
            )
        )

    if candidates.watch.inventory:
        options.append(WaitForInventoryFull())

    if state.active_action is not None:
        active = state.action_def(state.active_action)
        if active.has_inputs:
            options.append(WaitForInputsDepleted(active.id))
        if active.thieving is not None:
            level = state.skill_level(active.skill)
            if level < MAX_LEVEL:
                options.append(WaitForSkillXp(active.skill, start_xp_for_level(level + 1)))
            mastery = state.mastery_level(active.id)
            boundary = (mastery // MASTERY_BOUNDARY_LEVELS + 1) * MASTERY_BOUNDARY_LEVELS
            if boundary <= MAX_LEVEL:
                options.append(WaitForMasteryXp(active.id, start_xp_for_level(boundary)))
        if rates.hp_loss_per_tick > 0:
            options.append(WaitForDeath())

    stop = goal.ticks_until_stop(state, elapsed_ticks)
    if stop is not None:
        options.append(WaitForHorizon(stop))

    best_ticks = INF_TICKS
    chosen: WaitFor | None = None
    for option in options:
        ticks = option.estimate_ticks(state, rates)
        if 0 < ticks < best_ticks:
            best_ticks, chosen = ticks, option

    if chosen is None:
        reason = None
        if goal.progress_per_tick(state, rates) <= 0:
            reason = classify_rate_zero(state, goal)
        return NextDecision(
            INF_TICKS,
            WaitForGoal(goal),
            is_dead_end=not candidates.has_decisions,
            rate_zero_reason=reason,
        )
    return NextDecision(max(1, best_ticks), chosen)
