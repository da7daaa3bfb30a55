"""
Semantic test: solving is deterministic.

Invariant:
Two solves of the same state and goal produce identical plans and identical
expanded-node counts, because the search only uses expected rates.
"""

from __future__ import annotations

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState
from idle_planner.solver.goal import ReachGpGoal, ReachSkillLevelGoal
from idle_planner.solver.solver import SolverSuccess, solve


def test_gp_goal_is_deterministic() -> None:
    state = GameState.new(load_default_catalog())
    goal = ReachGpGoal(200)

    first = solve(state, goal)
    second = solve(state, goal)

    assert isinstance(first, SolverSuccess)
    assert isinstance(second, SolverSuccess)
    assert first.plan.total_ticks == second.plan.total_ticks
    assert first.plan.interaction_count == second.plan.interaction_count
    assert first.plan.step_count == second.plan.step_count
    assert first.plan.expanded_nodes == second.plan.expanded_nodes
    assert first.plan == second.plan


def test_skill_goal_is_deterministic() -> None:
    state = GameState.new(load_default_catalog())
    goal = ReachSkillLevelGoal(Skill.WOODCUTTING, 12)

    first = solve(state, goal)
    second = solve(state, goal)

    assert first.is_success and second.is_success
    assert first.plan == second.plan
    assert first.terminal_state.skill_level(Skill.WOODCUTTING) >= 12
