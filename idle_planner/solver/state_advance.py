"""Expected-value projection of a state over a number of ticks.

Used only by the planner. Real gameplay goes through
``idle_planner.core.domain.simulation.consume_ticks``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from idle_planner.solver.rates import (
    death_cycle_adjusted_rates,
    estimate_rates,
    ticks_until_death,
)

if TYPE_CHECKING:
    from idle_planner.core.domain.state import GameState


@dataclass(frozen=True, slots=True)
class AdvanceResult:
    state: GameState
    expected_deaths: float = 0.0


def advance(state: GameState, ticks: int) -> AdvanceResult:
    """Project ``state`` forward by ``ticks`` using expected rates.

    Parameters
    ----------
    state:
        Starting snapshot; never modified.
    ticks:
        Number of ticks to project. Non-positive values return ``state``.

    Returns
    -------
    AdvanceResult
        The projected state and the expected (fractional) number of deaths.

    Flows are applied as floats with no flooring. Production never creates gp;
    items stay in the inventory until sold. A consuming action only runs for
    as long as its inputs last, after which the player is idle. Hit points and
    action progress are not tracked by the projection.
    """
    if ticks <= 0 or state.active_action is None:
        return AdvanceResult(state)

    raw = estimate_rates(state)
    to_death = ticks_until_death(state, raw)
    rates = death_cycle_adjusted_rates(state, raw) if to_death is not None else raw

    fraction = 1.0
    for item_id, rate in rates.items_consumed_per_tick.items():
        if rate > 0:
            fraction = min(fraction, state.count(item_id) / (rate * ticks))
    fraction = max(0.0, fraction)
    effective = ticks * fraction

    delta: dict[str, float] = {}
    for item_id, rate in rates.item_flows_per_tick.items():
        delta[item_id] = delta.get(item_id, 0.0) + rate * effective
    for item_id, rate in rates.items_consumed_per_tick.items():
        delta[item_id] = delta.get(item_id, 0.0) - rate * effective

    projected = state.with_items(delta)
    if rates.direct_gp_per_tick:
        projected = replace(projected, gp=projected.gp + rates.direct_gp_per_tick * effective)
    for skill, rate in rates.xp_per_tick_by_skill.items():
        projected = projected.with_xp(skill, rate * effective)
    if rates.action_id is not None and rates.mastery_xp_per_tick:
        projected = projected.with_mastery(rates.action_id, rates.mastery_xp_per_tick * effective)

    if fraction < 1.0:
        projected = replace(projected, active_action=None, action_progress=0)

    deaths = 0.0
    if to_death is not None and to_death > 0:
        deaths = effective / to_death
    return AdvanceResult(projected, deaths)
