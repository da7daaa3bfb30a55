from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

from idle_planner.core.domain.catalog import load_catalog, load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState
from idle_planner.core.events.event_bus import EventBus
from idle_planner.core.events.sinks.file_recorder import FileRecorderSink
from idle_planner.core.events.sinks.sink_logging import LoggingEventSink
from idle_planner.runtime.prometheus_metrics import PrometheusMetricsClient
from idle_planner.solver.config import SegmentConfig, SolverConfig
from idle_planner.solver.executor import execute_plan, solve_to_goal
from idle_planner.solver.goal import Goal, MultiSkillGoal, ReachGpGoal, ReachSkillLevelGoal
from idle_planner.solver.profiler import push_solver_profile
from idle_planner.solver.solver import solve

LOGGER = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return json.loads(path.read_text(encoding="utf-8"))


def _parse_skill(name: str) -> Skill:
    try:
        return Skill(name.strip().lower())
    except ValueError:
        raise argparse.ArgumentTypeError(f"unknown skill: {name}") from None


def parse_goal(raw: str) -> Goal:
    """
    Goal syntax:
      gp:N                   reach N effective gp
      skill:NAME:L           reach level L in one skill
      skills:NAME=L,NAME=L   reach every listed level
    """
    kind, _, rest = raw.partition(":")
    try:
        if kind == "gp":
            return ReachGpGoal(float(rest))
        if kind == "skill":
            name, _, level = rest.partition(":")
            return ReachSkillLevelGoal(_parse_skill(name), int(level))
        if kind == "skills":
            levels: dict[Skill, int] = {}
            for part in rest.split(","):
                name, _, level = part.partition("=")
                levels[_parse_skill(name)] = int(level)
            return MultiSkillGoal.of(levels)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid goal {raw!r}: {exc}") from exc
    raise argparse.ArgumentTypeError(f"invalid goal {raw!r}: expected gp:, skill: or skills:")


def _build_event_bus(record: Path | None) -> EventBus:
    bus = EventBus([LoggingEventSink(logging.getLogger("idle_planner.events"), logging.DEBUG)])
    if record is not None:
        bus.register(FileRecorderSink(record))
    return bus


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Plan the fastest sequence of decisions that reaches a goal"
    )

    parser.add_argument(
        "--goal",
        type=parse_goal,
        required=True,
        help="Goal: gp:N, skill:NAME:L or skills:NAME=L,NAME=L.",
    )

    parser.add_argument(
        "--state",
        type=Path,
        default=None,
        help="Path to a starting-state JSON file (fresh state if omitted).",
    )

    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Path to a catalog JSON file (bundled catalog if omitted).",
    )

    parser.add_argument(
        "--solver-config",
        type=Path,
        default=None,
        help="Path to a solver config JSON file.",
    )

    parser.add_argument(
        "--segmented",
        action="store_true",
        help="Plan segment by segment, replanning at each boundary.",
    )

    parser.add_argument(
        "--execute",
        action="store_true",
        help="Execute the plan against the randomized simulation.",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Seed for the randomized simulation.",
    )

    parser.add_argument(
        "--max-nodes",
        type=int,
        default=None,
        help="Search budget in expanded nodes.",
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        default=30,
        help="Steps shown when printing the plan.",
    )

    parser.add_argument(
        "--record",
        type=Path,
        default=None,
        help="Append planner events as JSON lines to this file.",
    )

    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level.",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper())

    # ------------------------------------------------------------------
    # Load inputs
    # ------------------------------------------------------------------

    catalog = load_catalog(args.catalog) if args.catalog else load_default_catalog()
    if args.state is not None:
        state = GameState.from_json_obj(catalog, _load_json(args.state))
    else:
        state = GameState.new(catalog)

    solver_config = (
        SolverConfig.from_json_obj(_load_json(args.solver_config))
        if args.solver_config
        else SolverConfig()
    )

    goal: Goal = args.goal
    rng = random.Random(args.seed)

    with _build_event_bus(args.record) as bus:
        # --------------------------------------------------------------
        # Segmented planning
        # --------------------------------------------------------------

        if args.segmented:
            segmented = solve_to_goal(
                state,
                goal,
                random=rng if args.execute else None,
                segment_config=SegmentConfig(),
                solver_config=solver_config,
                max_expanded_nodes=args.max_nodes,
                event_bus=bus,
            )
            print(segmented.plan.pretty_print(args.max_steps))
            print(
                f"segments={len(segmented.segments)} replans={segmented.replan_count} "
                f"actual_ticks={segmented.actual_ticks} deaths={segmented.total_deaths}"
            )
            if segmented.failure is not None:
                print(f"Error: {segmented.failure.reason}", file=sys.stderr)
                return 1
            return 0

        # --------------------------------------------------------------
        # Single plan
        # --------------------------------------------------------------

        result = solve(
            state,
            goal,
            max_expanded_nodes=args.max_nodes,
            collect_diagnostics=True,
            config=solver_config,
            event_bus=bus,
        )

        if result.profile is not None:
            push_solver_profile(
                result.profile,
                PrometheusMetricsClient(),
                job="idle_planner_solve",
                labels={"goal": goal.describe()},
            )

        if not result.is_success:
            print(f"Error: {result.failure.reason}", file=sys.stderr)
            return 1

        print(result.plan.pretty_print(args.max_steps))
        if args.execute:
            execution = execute_plan(state, result.plan, rng, event_bus=bus)
            print(
                f"planned_ticks={execution.planned_ticks} actual_ticks={execution.actual_ticks} "
                f"deaths={execution.total_deaths} unexpected={len(execution.unexpected_boundaries)}"
            )
        return 0


if __name__ == "__main__":
    sys.exit(main())
