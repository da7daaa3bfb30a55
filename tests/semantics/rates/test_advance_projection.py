"""
Semantic test: expected-value projection.

Invariant:
advance() never creates gp from production, clamps consuming actions by the
inputs on hand (going idle when they run out), and leaves the input state
untouched.
"""

from __future__ import annotations

import pytest

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.interactions import SwitchActivity, apply_interaction
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState
from idle_planner.solver.state_advance import advance


def test_gathering_projection_keeps_items_not_gp() -> None:
    state = apply_interaction(GameState.new(load_default_catalog()), SwitchActivity("copper_rock"))

    result = advance(state, 300)

    assert result.state.gp == 0.0
    assert result.state.count("copper_ore") == pytest.approx(10.0)
    assert result.state.xp(Skill.MINING) == pytest.approx(70.0)
    assert result.expected_deaths == 0.0
    assert state.count("copper_ore") == 0.0


def test_consuming_projection_is_clamped_by_inputs() -> None:
    state = GameState.new(load_default_catalog()).with_items({"normal_logs": 3.0})
    state = apply_interaction(state, SwitchActivity("burn_normal_logs"))

    result = advance(state, 1_000)

    assert result.state.count("normal_logs") == 0.0
    assert result.state.xp(Skill.FIREMAKING) == pytest.approx(57.0)
    assert result.state.active_action is None


def test_idle_projection_is_identity() -> None:
    state = GameState.new(load_default_catalog(), gp=7.0)

    assert advance(state, 500).state == state


def test_hazardous_projection_counts_expected_deaths() -> None:
    state = apply_interaction(GameState.new(load_default_catalog()), SwitchActivity("pickpocket_man"))

    result = advance(state, 100_000)

    assert result.expected_deaths > 0
    assert result.state.gp > 0
