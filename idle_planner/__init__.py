"""Public API for the idle_planner package.

Only symbols imported here are considered part of the stable,
supported external interface.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ----------------------------------------------------------------------
# Game model
# ----------------------------------------------------------------------
from idle_planner.core.domain.catalog import Catalog, load_catalog, load_default_catalog
from idle_planner.core.domain.errors import InteractionError
from idle_planner.core.domain.interactions import (
    BuyUpgrade,
    SellAllPolicy,
    SellExceptPolicy,
    SellItems,
    SwitchActivity,
    apply_interaction,
)
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig

# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------
from idle_planner.core.events.event_bus import EventBus

# ----------------------------------------------------------------------
# Planner API
# ----------------------------------------------------------------------
from idle_planner.solver.config import SegmentConfig, SolverConfig
from idle_planner.solver.executor import (
    PlanExecution,
    SegmentedResult,
    execute_plan,
    execute_segment,
    solve_segment,
    solve_to_goal,
)
from idle_planner.solver.goal import Goal, MultiSkillGoal, ReachGpGoal, ReachSkillLevelGoal
from idle_planner.solver.plan import Plan
from idle_planner.solver.solver import SolverFailed, SolverFailure, SolverResult, SolverSuccess, solve

# ----------------------------------------------------------------------
# Public API definition
# ----------------------------------------------------------------------

__all__ = [
    # Game model
    "Catalog",
    "load_catalog",
    "load_default_catalog",
    "GameState",
    "StateConfig",
    "Skill",
    "InteractionError",
    "SwitchActivity",
    "BuyUpgrade",
    "SellItems",
    "SellAllPolicy",
    "SellExceptPolicy",
    "apply_interaction",

    # Goals
    "Goal",
    "ReachGpGoal",
    "ReachSkillLevelGoal",
    "MultiSkillGoal",

    # Planning
    "SolverConfig",
    "SegmentConfig",
    "solve",
    "SolverResult",
    "SolverSuccess",
    "SolverFailed",
    "SolverFailure",
    "Plan",

    # Execution
    "execute_plan",
    "PlanExecution",
    "solve_segment",
    "execute_segment",
    "solve_to_goal",
    "SegmentedResult",
    "EventBus",

    # Version
    "__version__",
]

# ----------------------------------------------------------------------
# Package version
# ----------------------------------------------------------------------

try:
    __version__ = version("idle-planner")
except PackageNotFoundError:
    __version__ = "0.0.0"
