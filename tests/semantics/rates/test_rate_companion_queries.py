"""
Semantic test: time-to-threshold queries derived from rates.

Invariant:
Ticks until the next skill or mastery level and until death are None when the
underlying rate is zero. Death-cycle adjustment is the identity with no
restart overhead and only discounts flows otherwise.
"""

from __future__ import annotations

import pytest

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.interactions import SwitchActivity, apply_interaction
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState
from idle_planner.core.domain.xp import start_xp_for_level
from idle_planner.solver.rates import (
    death_cycle_adjusted_rates,
    estimate_rates,
    ticks_for_rate,
    ticks_until_death,
    ticks_until_next_mastery_level,
    ticks_until_next_skill_level,
)


def _running(action_id: str) -> GameState:
    return apply_interaction(GameState.new(load_default_catalog()), SwitchActivity(action_id))


def test_idle_state_has_no_thresholds() -> None:
    state = GameState.new(load_default_catalog())
    rates = estimate_rates(state)

    assert ticks_until_next_skill_level(state, rates) is None
    assert ticks_until_next_mastery_level(state, rates) is None
    assert ticks_until_death(state, rates) is None


def test_next_skill_level_matches_xp_rate() -> None:
    state = _running("normal_tree")
    rates = estimate_rates(state)

    expected = ticks_for_rate(start_xp_for_level(2), rates.xp_per_tick(Skill.WOODCUTTING))
    assert ticks_until_next_skill_level(state, rates) == expected
    assert ticks_until_next_mastery_level(state, rates) is not None
    assert ticks_until_death(state, rates) is None


def test_death_cycle_adjustment() -> None:
    state = _running("pickpocket_man")
    rates = estimate_rates(state)

    assert ticks_until_death(state, rates) > 0
    assert death_cycle_adjusted_rates(state, rates) == rates

    adjusted = death_cycle_adjusted_rates(state, rates, restart_overhead_ticks=100)
    assert adjusted.direct_gp_per_tick < rates.direct_gp_per_tick
    assert adjusted.xp_per_tick(Skill.THIEVING) == pytest.approx(
        rates.xp_per_tick(Skill.THIEVING) * adjusted.direct_gp_per_tick / rates.direct_gp_per_tick
    )


def test_safe_activity_is_not_adjusted() -> None:
    state = _running("copper_rock")
    rates = estimate_rates(state)

    assert death_cycle_adjusted_rates(state, rates, restart_overhead_ticks=100) is rates
