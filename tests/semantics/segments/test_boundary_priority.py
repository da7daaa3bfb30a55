"""
Semantic test: boundary detection order.

Invariant:
When several boundaries hold at once, the segment watch reports the one with
the highest priority: GoalReached, HorizonCap, InventoryPressure,
UpgradeAffordable, UnlockBoundary, InputsDepleted.
"""

from __future__ import annotations

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.interactions import SellAllPolicy
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig
from idle_planner.solver.boundaries import (
    GoalReached,
    HorizonCap,
    InputsDepleted,
    InventoryPressure,
    SegmentWatch,
    UnlockBoundary,
    UpgradeAffordable,
)
from idle_planner.solver.candidates import WatchSet
from idle_planner.solver.config import SegmentConfig
from idle_planner.solver.goal import ReachGpGoal


def _crowded_state() -> GameState:
    catalog = load_default_catalog()
    inventory = {item.id: 1 for item in catalog.items[:18]}
    return GameState.from_config(catalog, StateConfig(gp=200, inventory=inventory))


def _watch(goal_gp: float, *, max_ticks: int | None, pressure: bool) -> SegmentWatch:
    return SegmentWatch(
        goal=ReachGpGoal(goal_gp),
        config=SegmentConfig(stop_at_inventory_pressure=pressure, max_segment_ticks=max_ticks),
        watch=WatchSet(locked_activity_ids=("oak_tree",)),
        sell_policy=SellAllPolicy(),
        upgrade_costs={"iron_axe": 50},
    )


def test_boundaries_are_reported_in_priority_order() -> None:
    state = _crowded_state()

    assert _watch(100, max_ticks=10, pressure=True).detect_boundary(state, 20) == GoalReached()
    assert _watch(10_000, max_ticks=10, pressure=True).detect_boundary(state, 20) == HorizonCap(20)
    assert _watch(10_000, max_ticks=None, pressure=True).detect_boundary(state, 20) == InventoryPressure(18, 20)
    assert _watch(10_000, max_ticks=None, pressure=False).detect_boundary(state, 20) == UpgradeAffordable("iron_axe", 50)


def test_unlock_boundary_needs_a_level_crossing() -> None:
    catalog = load_default_catalog()
    state = GameState.from_config(catalog, StateConfig(skill_levels={Skill.WOODCUTTING: 10}))
    watch = SegmentWatch(
        goal=ReachGpGoal(10_000),
        config=SegmentConfig(),
        watch=WatchSet(locked_activity_ids=("oak_tree",)),
        sell_policy=SellAllPolicy(),
        start_levels={Skill.WOODCUTTING: 1},
    )

    assert watch.detect_boundary(state, 0) == UnlockBoundary(Skill.WOODCUTTING, "oak_tree", 10)

    already_unlocked = SegmentWatch(
        goal=watch.goal,
        config=watch.config,
        watch=watch.watch,
        sell_policy=watch.sell_policy,
        start_levels={Skill.WOODCUTTING: 10},
    )
    assert already_unlocked.detect_boundary(state, 0) is None


def test_inputs_depleted_only_fires_for_inputs_present_at_start() -> None:
    catalog = load_default_catalog()
    state = GameState.from_config(catalog, StateConfig(active_action="burn_normal_logs"))
    watch_set = WatchSet(consuming_activity_ids=("burn_normal_logs",))

    fresh = SegmentWatch(ReachGpGoal(10_000), SegmentConfig(), watch_set, SellAllPolicy())
    started_empty = SegmentWatch(
        ReachGpGoal(10_000),
        SegmentConfig(),
        watch_set,
        SellAllPolicy(),
        depleted_at_start=frozenset({"burn_normal_logs"}),
    )

    assert fresh.detect_boundary(state, 0) == InputsDepleted("burn_normal_logs", "normal_logs")
    assert started_empty.detect_boundary(state, 0) is None
