"""
Semantic test: macros unlock what they need and skip what is done.

Invariant:
Stocking an item whose producer is locked first trains the producer's skill
as a nested macro; a macro whose stop already holds reports
MacroAlreadySatisfied instead of emitting steps.
"""

from __future__ import annotations

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig
from idle_planner.solver.macros import (
    EnsureStock,
    MacroAlreadySatisfied,
    MacroExpansion,
    StopAtLevel,
    StopAtNextUnlock,
    TrainSkillUntil,
    expand_macro,
    next_unlock_level,
)
from idle_planner.solver.plan import MacroStep


def test_locked_producer_is_trained_first() -> None:
    state = GameState.new(load_default_catalog())

    outcome = expand_macro(state, EnsureStock("oak_logs", 5))

    assert isinstance(outcome, MacroExpansion)
    first, second = outcome.steps
    assert isinstance(first, MacroStep) and isinstance(first.macro, TrainSkillUntil)
    assert first.macro.stop == StopAtLevel(Skill.WOODCUTTING, 10)
    assert isinstance(second, MacroStep) and isinstance(second.macro, EnsureStock)
    assert outcome.state.skill_level(Skill.WOODCUTTING) >= 10
    assert outcome.state.count("oak_logs") >= 5 - 1e-6
    assert outcome.ticks == first.ticks + second.ticks


def test_satisfied_stop_emits_nothing() -> None:
    state = GameState.from_config(load_default_catalog(), StateConfig(skill_levels={Skill.WOODCUTTING: 30}))

    outcome = expand_macro(state, TrainSkillUntil(Skill.WOODCUTTING, StopAtLevel(Skill.WOODCUTTING, 25)))

    assert isinstance(outcome, MacroAlreadySatisfied)
    assert isinstance(expand_macro(state, EnsureStock("oak_logs", 0)), MacroAlreadySatisfied)


def test_next_unlock_stop_targets_the_next_unlock_level() -> None:
    state = GameState.new(load_default_catalog())

    assert next_unlock_level(state, Skill.WOODCUTTING) == 10
    assert StopAtNextUnlock(Skill.WOODCUTTING, 99).target_level(state) == 10
    assert StopAtNextUnlock(Skill.WOODCUTTING, 5).target_level(state) == 5
