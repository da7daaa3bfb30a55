"""
Semantic test: the segment loop reaches its goal.

Invariant:
solve_to_goal plans segment by segment; each segment ends at a boundary, an
affordable competitive upgrade is bought between segments, and the loop
stops with the goal satisfied.
"""

from __future__ import annotations

import random

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig
from idle_planner.core.events.event_bus import EventBus
from idle_planner.core.events.events import ReplanEvent, SegmentCompletedEvent
from idle_planner.solver.boundaries import GoalReached
from idle_planner.solver.config import SegmentConfig
from idle_planner.solver.executor import solve_to_goal
from idle_planner.solver.goal import ReachGpGoal, ReachSkillLevelGoal


class _ListSink:
    def __init__(self) -> None:
        self.events: list[object] = []

    def on_event(self, event: object) -> None:
        self.events.append(event)


def test_projected_loop_reaches_gp_goal() -> None:
    state = GameState.new(load_default_catalog())
    goal = ReachGpGoal(100)

    result = solve_to_goal(state, goal)

    assert result.is_success
    assert goal.is_satisfied(result.final_state)
    assert any(isinstance(boundary, GoalReached) for boundary in result.boundaries)
    assert result.plan.total_ticks == sum(segment.total_ticks for segment in result.segments)


def test_competitive_upgrade_is_bought_between_segments() -> None:
    state = GameState.new(load_default_catalog())
    goal = ReachSkillLevelGoal(Skill.WOODCUTTING, 15)
    sink = _ListSink()

    result = solve_to_goal(state, goal, event_bus=EventBus([sink]))

    assert result.is_success
    assert result.final_state.owns("iron_axe")
    assert "Buy iron_axe" in [segment.description for segment in result.segments]
    assert result.replan_count >= 1
    assert any(isinstance(event, ReplanEvent) for event in sink.events)
    completed = [event for event in sink.events if isinstance(event, SegmentCompletedEvent)]
    assert len(completed) <= len(result.segments)


def test_executed_loop_reaches_skill_goal() -> None:
    state = GameState.new(load_default_catalog())
    goal = ReachSkillLevelGoal(Skill.WOODCUTTING, 5)

    result = solve_to_goal(state, goal, random=random.Random(7), segment_config=SegmentConfig(max_segments=20))

    assert result.is_success
    assert result.final_state.skill_level(Skill.WOODCUTTING) >= 5
    assert result.actual_ticks > 0


def test_inventory_backed_gp_goal_ends_with_a_sell_segment() -> None:
    state = GameState.from_config(load_default_catalog(), StateConfig(gp=10, inventory={"topaz": 1}))
    goal = ReachGpGoal(100)

    result = solve_to_goal(state, goal)

    assert result.is_success
    assert [segment.description for segment in result.segments] == ["Sell to reach goal"]
    assert result.plan.interaction_count == 1
    assert result.final_state.gp >= 100
    assert result.final_state.count("topaz") == 0
