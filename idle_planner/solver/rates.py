"""Rate estimation: expected flows per tick for a state and an action.

``estimate_rates`` is a mechanical model. It reports flows (direct gp, item
outputs, item inputs, skill and mastery experience, hit-point loss) and never
encodes a valuation policy; turning items into value is the job of a
``ValueModel``. Drops from the action table and from the skill-level drop
table are both reported as item flows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Mapping

from idle_planner.core.domain.mechanics import STUN_TICKS, stealth, thieving_success_chance
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.xp import MAX_LEVEL, start_xp_for_level
from idle_planner.solver.rate_cache import RateCache

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import ActionDef
    from idle_planner.core.domain.state import GameState

# Sentinel for "never" (no progress possible).
INF_TICKS: int = 1 << 60


def ticks_for_rate(needed: float, rate: float) -> int:
    """Ticks to accumulate ``needed`` units at ``rate`` per tick.

    0 when already satisfied, ``INF_TICKS`` when the rate is not positive.
    """
    if needed <= 0:
        return 0
    if rate <= 0:
        return INF_TICKS
    return max(1, math.ceil(needed / rate - 1e-9))


@dataclass(frozen=True, slots=True)
class Rates:
    """Expected flows per tick for one (state, action) pair."""

    direct_gp_per_tick: float = 0.0
    item_flows_per_tick: Mapping[str, float] = field(default_factory=dict)
    items_consumed_per_tick: Mapping[str, float] = field(default_factory=dict)
    xp_per_tick_by_skill: Mapping[Skill, float] = field(default_factory=dict)
    item_types_per_tick: float = 0.0
    hp_loss_per_tick: float = 0.0
    mastery_xp_per_tick: float = 0.0
    action_id: str | None = None

    def xp_per_tick(self, skill: Skill) -> float:
        return self.xp_per_tick_by_skill.get(skill, 0.0)

    def net_flow(self, item_id: str) -> float:
        return self.item_flows_per_tick.get(item_id, 0.0) - self.items_consumed_per_tick.get(item_id, 0.0)

    @property
    def is_zero(self) -> bool:
        return (
            self.direct_gp_per_tick <= 0
            and not any(v > 0 for v in self.item_flows_per_tick.values())
            and not any(v > 0 for v in self.xp_per_tick_by_skill.values())
        )

    def ticks_until_inventory_full(self, free_slots: int) -> int:
        if free_slots <= 0:
            return 0
        if self.item_types_per_tick <= 0:
            return INF_TICKS
        return int(free_slots / self.item_types_per_tick)

    def scaled(self, factor: float) -> Rates:
        """Every flow multiplied by ``factor``; hit-point loss is kept as-is."""
        return Rates(
            direct_gp_per_tick=self.direct_gp_per_tick * factor,
            item_flows_per_tick={k: v * factor for k, v in self.item_flows_per_tick.items()},
            items_consumed_per_tick={k: v * factor for k, v in self.items_consumed_per_tick.items()},
            xp_per_tick_by_skill={k: v * factor for k, v in self.xp_per_tick_by_skill.items()},
            item_types_per_tick=self.item_types_per_tick * factor,
            hp_loss_per_tick=self.hp_loss_per_tick,
            mastery_xp_per_tick=self.mastery_xp_per_tick * factor,
            action_id=self.action_id,
        )


EMPTY_RATES = Rates()


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def estimate_rates(state: GameState) -> Rates:
    """Expected flows for the active action; zero rates when idle."""
    if state.active_action is None:
        return EMPTY_RATES
    return estimate_rates_for_action(state, state.active_action)


def estimate_rates_for_action(state: GameState, action_id: str) -> Rates:
    """Expected flows for ``action_id`` regardless of which action is active.

    Served from ``RATE_CACHE``; see ``compute_rates_for_action`` for the model.
    """
    return RATE_CACHE.rates_for(state, action_id)


def compute_rates_for_action(state: GameState, action_id: str) -> Rates:
    """Uncached rate estimate for ``action_id``."""
    action = state.action_def(action_id)
    expected_ticks = float(state.duration_ticks(action))
    if expected_ticks <= 0:
        return EMPTY_RATES

    flows_per_action = _item_flows_per_action(state, action)
    consumed = {item_id: qty / expected_ticks for item_id, qty in action.inputs.items()}

    if action.thieving is not None:
        target = action.thieving
        success = thieving_success_chance(
            stealth(state.skill_level(Skill.THIEVING), state.mastery_level(action.id)),
            target.perception,
        )
        failure = 1.0 - success
        # A failed attempt costs the stun on top of the attempt itself.
        effective_ticks = expected_ticks + failure * STUN_TICKS
        unique_types = float(len(flows_per_action))
        return Rates(
            direct_gp_per_tick=success * (1 + target.max_gold) / 2.0 / effective_ticks,
            item_flows_per_tick={k: v * success / effective_ticks for k, v in flows_per_action.items()},
            items_consumed_per_tick=consumed,
            xp_per_tick_by_skill={action.skill: success * action.xp / effective_ticks},
            item_types_per_tick=unique_types / effective_ticks if unique_types else 0.0,
            hp_loss_per_tick=failure * (1 + target.max_hit) / 2.0 / effective_ticks,
            mastery_xp_per_tick=success * action.mastery_xp / effective_ticks,
            action_id=action.id,
        )

    unique_types = float(len(flows_per_action))
    return Rates(
        direct_gp_per_tick=0.0,
        item_flows_per_tick={k: v / expected_ticks for k, v in flows_per_action.items()},
        items_consumed_per_tick=consumed,
        xp_per_tick_by_skill={action.skill: action.xp / expected_ticks},
        item_types_per_tick=unique_types / expected_ticks if unique_types else 0.0,
        mastery_xp_per_tick=action.mastery_xp / expected_ticks,
        action_id=action.id,
    )


def _item_flows_per_action(state: GameState, action: ActionDef) -> dict[str, float]:
    """Expected items per completion from the action table and the skill drop table."""
    result: dict[str, float] = {}
    for out in action.outputs:
        result[out.item] = result.get(out.item, 0.0) + out.expected_quantity
    for drop in state.catalog.skill_drops_for(action.skill):
        result[drop.item] = result.get(drop.item, 0.0) + drop.expected_quantity
    return result


RATE_CACHE = RateCache(compute_rates_for_action)


# ---------------------------------------------------------------------------
# Hazards
# ---------------------------------------------------------------------------


def ticks_until_death(state: GameState, rates: Rates) -> int | None:
    """Expected ticks until hit points run out; None for safe activities."""
    if rates.hp_loss_per_tick <= 0:
        return None
    hp_available = state.hp - 1
    if hp_available <= 0:
        return 0
    return int(hp_available / rates.hp_loss_per_tick)


def death_cycle_adjusted_rates(
    state: GameState,
    rates: Rates,
    *,
    restart_overhead_ticks: int = 0,
) -> Rates:
    """Long-run rates for a hazardous activity that is restarted after each death.

    Flows are discounted by ``ticks_to_death / (ticks_to_death + overhead)``;
    with no restart overhead this is the identity.
    """
    if rates.hp_loss_per_tick <= 0:
        return rates

    ticks_to_death = ticks_until_death(state, rates)
    if ticks_to_death is None or ticks_to_death <= 0:
        return EMPTY_RATES

    cycle = ticks_to_death + restart_overhead_ticks
    return rates.scaled(ticks_to_death / cycle)


# ---------------------------------------------------------------------------
# Level thresholds
# ---------------------------------------------------------------------------


def ticks_until_next_skill_level(state: GameState, rates: Rates) -> int | None:
    """Ticks until the trained skill gains a level; None when no xp is gained."""
    if not rates.xp_per_tick_by_skill:
        return None
    skill, xp_rate = max(rates.xp_per_tick_by_skill.items(), key=lambda kv: (kv[1], kv[0].value))
    if xp_rate <= 0:
        return None

    level = state.skill_level(skill)
    if level >= MAX_LEVEL:
        return None
    needed = start_xp_for_level(level + 1) - state.xp(skill)
    if needed <= 0:
        return 0
    return ticks_for_rate(needed, xp_rate)


def ticks_until_next_mastery_level(state: GameState, rates: Rates) -> int | None:
    """Ticks until the action's mastery gains a level; None when no mastery is gained."""
    if rates.mastery_xp_per_tick <= 0 or rates.action_id is None:
        return None

    level = state.mastery_level(rates.action_id)
    if level >= MAX_LEVEL:
        return None
    needed = start_xp_for_level(level + 1) - state.mastery(rates.action_id)
    if needed <= 0:
        return 0
    return ticks_for_rate(needed, rates.mastery_xp_per_tick)


def find_best_action_by_rate(
    state: GameState,
    action_ids: Iterable[str],
    rate_fn: Callable[[Rates], float],
    *,
    skill: Skill | None = None,
    can_use: Callable[[GameState, ActionDef], bool] | None = None,
) -> str | None:
    """The action maximizing ``rate_fn``; ties go to the smaller id."""
    best: str | None = None
    best_rate = 0.0
    for action_id in sorted(action_ids):
        action = state.action_def(action_id)
        if skill is not None and action.skill != skill:
            continue
        if can_use is not None and not can_use(state, action):
            continue
        rate = rate_fn(estimate_rates_for_action(state, action_id))
        if rate > best_rate:
            best_rate = rate
            best = action_id
    return best
