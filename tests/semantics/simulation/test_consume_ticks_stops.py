"""
Semantic test: the real simulation stops at hard boundaries.

Invariant:
consume_ticks never runs past the requested ticks, reports IDLE without an
active action, and clears the active action when a consuming action runs out
of inputs.
"""

from __future__ import annotations

import random

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.interactions import SwitchActivity, apply_interaction
from idle_planner.core.domain.simulation import StopReason, consume_ticks
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState


def test_idle_state_reports_idle() -> None:
    state = GameState.new(load_default_catalog())

    result = consume_ticks(state, 100, random.Random(1))

    assert result.stop_reason is StopReason.IDLE
    assert result.ticks == 0


def test_gathering_runs_exactly_the_requested_ticks() -> None:
    state = apply_interaction(GameState.new(load_default_catalog()), SwitchActivity("normal_tree"))

    result = consume_ticks(state, 300, random.Random(1))

    assert result.stop_reason is StopReason.COMPLETED
    assert result.ticks == 300
    assert result.state.count("normal_logs") == 10.0
    assert result.state.xp(Skill.WOODCUTTING) == 100.0


def test_consuming_action_stops_when_inputs_run_out() -> None:
    state = GameState.new(load_default_catalog()).with_items({"normal_logs": 3.0})
    state = apply_interaction(state, SwitchActivity("burn_normal_logs"))

    result = consume_ticks(state, 1_000, random.Random(1))

    assert result.stop_reason is StopReason.INPUTS_DEPLETED
    assert result.ticks == 60
    assert result.state.active_action is None
    assert result.state.count("normal_logs") == 0.0


def test_stop_condition_is_checked_after_each_completion() -> None:
    state = apply_interaction(GameState.new(load_default_catalog()), SwitchActivity("normal_tree"))

    result = consume_ticks(
        state,
        10_000,
        random.Random(1),
        stop_when=lambda s: s.count("normal_logs") >= 5,
    )

    assert result.stop_reason is StopReason.STOP_CONDITION
    assert result.ticks == 150


def test_thieving_earns_gold_or_stuns() -> None:
    state = apply_interaction(GameState.new(load_default_catalog()), SwitchActivity("pickpocket_man"))

    result = consume_ticks(state, 2000, random.Random(5))

    assert result.ticks <= 2000
    assert result.state.gp > 0 or result.deaths > 0
    assert result.state.xp(Skill.THIEVING) > 0 or result.deaths > 0
