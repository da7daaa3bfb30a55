"""Real, randomized tick execution.

This is the stochastic counterpart of the planner's expected-value projection.
Randomness only enters through the caller-supplied ``random.Random``; there is
no ambient generator, so execution is reproducible for a fixed seed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable

from idle_planner.core.domain.mechanics import MAX_HP, STUN_TICKS, stealth, thieving_success_chance
from idle_planner.core.domain.skills import Skill

if TYPE_CHECKING:
    import random as random_module

    from idle_planner.core.domain.catalog import ActionDef, ThievingDef
    from idle_planner.core.domain.state import GameState

LOGGER = logging.getLogger(__name__)


class StopReason(str, Enum):
    COMPLETED = "completed"
    STOP_CONDITION = "stop_condition"
    INPUTS_DEPLETED = "inputs_depleted"
    INVENTORY_FULL = "inventory_full"
    DEATH = "death"
    IDLE = "idle"


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    state: GameState
    ticks: int
    deaths: int
    stop_reason: StopReason


def consume_ticks(
    state: GameState,
    ticks: int,
    random: random_module.Random,
    *,
    stop_when: Callable[[GameState], bool] | None = None,
) -> ConsumeResult:
    """Run the active action for up to ``ticks`` ticks.

    Execution stops early when the player goes idle, inputs run out, the
    inventory overflows, the player dies, or ``stop_when`` (checked after every
    completion) returns True. A death restores hit points and clears the
    active action; restarting it is the caller's decision.
    """
    if ticks < 0:
        raise ValueError("ticks must be >= 0")

    elapsed = 0
    deaths = 0

    while elapsed < ticks:
        if state.active_action is None:
            return ConsumeResult(state, elapsed, deaths, StopReason.IDLE)

        action = state.action_def(state.active_action)

        if state.stun_ticks > 0:
            step = min(state.stun_ticks, ticks - elapsed)
            state = replace(state, stun_ticks=state.stun_ticks - step)
            elapsed += step
            continue

        if state.action_progress == 0 and not state.can_start(action):
            state = replace(state, active_action=None)
            return ConsumeResult(state, elapsed, deaths, StopReason.INPUTS_DEPLETED)

        remaining = state.duration_ticks(action) - state.action_progress
        step = min(remaining, ticks - elapsed)
        elapsed += step
        if step < remaining:
            state = replace(state, action_progress=state.action_progress + step)
            break

        state = replace(state, action_progress=0)
        state, outcome = _complete_action(state, action, random)

        if outcome is StopReason.DEATH:
            deaths += 1
            LOGGER.debug("player died", extra={"action_id": action.id})
            return ConsumeResult(state, elapsed, deaths, StopReason.DEATH)
        if outcome is StopReason.INVENTORY_FULL:
            return ConsumeResult(state, elapsed, deaths, StopReason.INVENTORY_FULL)
        if stop_when is not None and stop_when(state):
            return ConsumeResult(state, elapsed, deaths, StopReason.STOP_CONDITION)

    return ConsumeResult(state, elapsed, deaths, StopReason.COMPLETED)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


def _complete_action(
    state: GameState,
    action: ActionDef,
    random: random_module.Random,
) -> tuple[GameState, StopReason | None]:
    if action.thieving is not None:
        return _complete_thieving(state, action, action.thieving, random)

    state = state.with_items({k: -float(v) for k, v in action.inputs.items()})
    gained = _roll_drops(state, action, random)
    state = state.with_xp(action.skill, action.xp).with_mastery(action.id, action.mastery_xp)
    return _add_items(state, gained)


def _complete_thieving(
    state: GameState,
    action: ActionDef,
    target: ThievingDef,
    random: random_module.Random,
) -> tuple[GameState, StopReason | None]:
    chance = thieving_success_chance(
        stealth(state.skill_level(Skill.THIEVING), state.mastery_level(action.id)),
        target.perception,
    )
    if random.random() < chance:
        gold = random.randint(1, target.max_gold)
        gained = _roll_drops(state, action, random)
        state = replace(state, gp=state.gp + gold)
        state = state.with_xp(action.skill, action.xp).with_mastery(action.id, action.mastery_xp)
        return _add_items(state, gained)

    damage = random.randint(1, target.max_hit)
    hp = state.hp - damage
    if hp <= 0:
        died = replace(
            state,
            hp=float(MAX_HP),
            stun_ticks=0,
            active_action=None,
            action_progress=0,
        )
        return died, StopReason.DEATH
    return replace(state, hp=hp, stun_ticks=STUN_TICKS), None


def _roll_drops(
    state: GameState,
    action: ActionDef,
    random: random_module.Random,
) -> dict[str, float]:
    gained: dict[str, float] = {}
    for out in action.outputs:
        if out.probability >= 1.0 or random.random() < out.probability:
            gained[out.item] = gained.get(out.item, 0.0) + out.quantity
    for drop in state.catalog.skill_drops_for(action.skill):
        if random.random() < drop.probability:
            gained[drop.item] = gained.get(drop.item, 0.0) + drop.quantity
    return gained


def _add_items(state: GameState, gained: dict[str, float]) -> tuple[GameState, StopReason | None]:
    """Add ``gained``; a new item type with no free slot is lost and stops the action."""
    accepted: dict[str, float] = {}
    free = state.free_slots
    overflow = False
    for item_id in sorted(gained):
        if state.count(item_id) > 0:
            accepted[item_id] = gained[item_id]
        elif free > 0:
            accepted[item_id] = gained[item_id]
            free -= 1
        else:
            overflow = True

    state = state.with_items(accepted)
    if overflow:
        return replace(state, active_action=None, action_progress=0), StopReason.INVENTORY_FULL
    return state, None
