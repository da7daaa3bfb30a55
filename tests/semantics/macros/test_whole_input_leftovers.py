"""
Semantic test: consuming training leaves whole input stacks behind.

Invariant:
When consuming training stops part way through a stack (at a level target),
the projected leftovers of the consumed inputs are whole items, as they are in
real execution where inputs are consumed one completion at a time. A later
switch to that action is therefore never planned on a fractional stack.
"""

from __future__ import annotations

import pytest

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig
from idle_planner.core.domain.xp import start_xp_for_level
from idle_planner.solver.macros import MacroExpansion, StopAtLevel, TrainConsumingSkillUntil, expand_macro


def _assert_whole_inputs(outcome: MacroExpansion) -> None:
    state = outcome.state
    inputs = {item_id for action in state.catalog.actions_for_skill(Skill.SMITHING) for item_id in action.inputs}
    for item_id in sorted(inputs):
        count = state.count(item_id)
        assert count == pytest.approx(round(count), abs=1e-6), item_id


def test_stop_mid_stack_leaves_whole_items() -> None:
    state = GameState.from_config(load_default_catalog(), StateConfig(inventory={"bronze_bar": 20}))
    macro = TrainConsumingSkillUntil(Skill.SMITHING, StopAtLevel(Skill.SMITHING, 2))

    outcome = expand_macro(state, macro)

    assert isinstance(outcome, MacroExpansion)
    assert outcome.state.xp(Skill.SMITHING) >= start_xp_for_level(2) - 1e-6
    _assert_whole_inputs(outcome)


def test_long_smithing_training_leaves_whole_items() -> None:
    state = GameState.new(load_default_catalog())
    macro = TrainConsumingSkillUntil(Skill.SMITHING, StopAtLevel(Skill.SMITHING, 15))

    outcome = expand_macro(state, macro)

    assert isinstance(outcome, MacroExpansion)
    assert outcome.state.skill_level(Skill.SMITHING) >= 15
    _assert_whole_inputs(outcome)
