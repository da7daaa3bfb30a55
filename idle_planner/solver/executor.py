"""Executing plans against the real, randomized simulation.

``execute_plan`` replays a plan step by step. ``solve_to_goal`` plans one
segment at a time, executes it (or, without a random source, takes the
projected end state), and replans from wherever execution stopped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from idle_planner.core.domain.errors import InsufficientFundsError, InteractionError
from idle_planner.core.domain.interactions import (
    BuyUpgrade,
    SellItems,
    SwitchActivity,
    apply_interaction,
    effective_credits,
    upgrade_block_reason,
)
from idle_planner.core.domain.simulation import StopReason, consume_ticks
from idle_planner.core.events.events import BoundaryHitEvent, ReplanEvent, SegmentCompletedEvent
from idle_planner.core.events.sinks.null_event_bus import NullEventBus
from idle_planner.solver.boundaries import (
    ActionUnavailable,
    CannotAfford,
    GoalReached,
    HorizonCap,
    InventoryFull,
    InventoryPressure,
    NoProgressPossible,
    PlannedSegmentStop,
    ReplanLimitExceeded,
    SegmentGoal,
    SegmentWatch,
    TimeBudgetExceeded,
    UpgradeAffordable,
)
from idle_planner.solver.candidates import enumerate_candidates
from idle_planner.solver.config import DEFAULT_SEGMENT_CONFIG, DEFAULT_SOLVER_CONFIG
from idle_planner.solver.plan import InteractionStep, MacroStep, Plan, Segment, WaitStep, count_interactions
from idle_planner.solver.solver import SolverFailed, SolverFailure, solve

if TYPE_CHECKING:
    import random as random_module

    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.core.events.event_bus import EventBus
    from idle_planner.solver.boundaries import ReplanBoundary
    from idle_planner.solver.config import SegmentConfig, SolverConfig
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.plan import Step
    from idle_planner.solver.wait_for import WaitFor

LOGGER = logging.getLogger(__name__)


def execution_cap(planned_ticks: int) -> int:
    """Most ticks a planned wait may take in real execution."""
    return planned_ticks * 3 + 1000


# ---------------------------------------------------------------------------
# Running the real simulation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConsumeUntilResult:
    state: GameState
    ticks: int
    deaths: int
    stop_reason: StopReason
    satisfied: bool


def consume_until(
    state: GameState,
    wait_for: WaitFor,
    random: random_module.Random,
    *,
    max_ticks: int,
    stop_when: Callable[[GameState], bool] | None = None,
) -> ConsumeUntilResult:
    """Run the active action until ``wait_for`` holds, ``stop_when`` fires, or ``max_ticks`` pass.

    Time-based conditions run for exactly ``max_ticks``. After a death the
    action that was running is restarted when it still can be.
    """
    restart = state.active_action

    def satisfied(current: GameState) -> bool:
        return not wait_for.is_time_based and wait_for.is_satisfied(current)

    def should_stop(current: GameState) -> bool:
        return satisfied(current) or (stop_when is not None and stop_when(current))

    if should_stop(state):
        return ConsumeUntilResult(state, 0, 0, StopReason.STOP_CONDITION, satisfied(state))

    elapsed = 0
    deaths = 0
    reason = StopReason.COMPLETED
    while elapsed < max_ticks:
        result = consume_ticks(state, max_ticks - elapsed, random, stop_when=should_stop)
        state = result.state
        elapsed += result.ticks
        deaths += result.deaths
        reason = result.stop_reason
        if reason is StopReason.DEATH and restart is not None:
            action = state.action_def(restart)
            if state.can_start(action):
                state = apply_interaction(state, SwitchActivity(restart))
                if should_stop(state):
                    reason = StopReason.STOP_CONDITION
                    break
                continue
        break
    return ConsumeUntilResult(state, elapsed, deaths, reason, satisfied(state))


@dataclass(frozen=True, slots=True)
class _StepOutcome:
    state: GameState
    ticks: int
    deaths: int
    unexpected: ReplanBoundary | None = None
    interrupted: bool = False


def _execute_interaction(state: GameState, step: InteractionStep) -> _StepOutcome:
    interaction = step.interaction
    try:
        return _StepOutcome(apply_interaction(state, interaction), 0, 0)
    except InsufficientFundsError as exc:
        return _StepOutcome(state, 0, 0, CannotAfford(exc.upgrade_id, exc.cost, exc.available))
    except InteractionError as exc:
        target = getattr(interaction, "action_id", None) or getattr(interaction, "upgrade_id", "sell")
        return _StepOutcome(state, 0, 0, ActionUnavailable(target, str(exc)))


def _execute_wait(
    state: GameState,
    wait_for: WaitFor,
    planned_ticks: int,
    expected_action: str | None,
    random: random_module.Random,
    stop_when: Callable[[GameState], bool] | None,
    tick_limit: int | None,
) -> _StepOutcome:
    if state.active_action is None and expected_action is not None:
        action = state.action_def(expected_action)
        if state.can_start(action):
            state = apply_interaction(state, SwitchActivity(expected_action))

    cap = planned_ticks if wait_for.is_time_based else execution_cap(planned_ticks)
    if tick_limit is not None:
        cap = min(cap, tick_limit)
    result = consume_until(state, wait_for, random, max_ticks=cap, stop_when=stop_when)

    unexpected: ReplanBoundary | None = None
    interrupted = False
    if result.stop_reason is StopReason.STOP_CONDITION and not result.satisfied:
        interrupted = True
    elif not wait_for.is_time_based and not result.satisfied:
        if result.stop_reason is StopReason.INVENTORY_FULL:
            unexpected = InventoryFull()
        elif result.stop_reason in (StopReason.IDLE, StopReason.INPUTS_DEPLETED):
            unexpected = ActionUnavailable(expected_action or "-", result.stop_reason.value)
        elif tick_limit is None or result.ticks < tick_limit:
            unexpected = TimeBudgetExceeded(planned_ticks, result.ticks)
    return _StepOutcome(result.state, result.ticks, result.deaths, unexpected, interrupted)


def _execute_steps(
    state: GameState,
    steps: tuple[Step, ...],
    random: random_module.Random,
    stop_when: Callable[[GameState], bool] | None = None,
    tick_limit: int | None = None,
    unexpected: list[ReplanBoundary] | None = None,
) -> _StepOutcome:
    """Run ``steps`` in order; stops early only when ``stop_when`` fires."""
    ticks = 0
    deaths = 0
    for step in steps:
        remaining = None if tick_limit is None else tick_limit - ticks
        if remaining is not None and remaining <= 0:
            return _StepOutcome(state, ticks, deaths, interrupted=True)

        if isinstance(step, InteractionStep):
            outcome = _execute_interaction(state, step)
        elif isinstance(step, WaitStep):
            outcome = _execute_wait(state, step.wait_for, step.ticks, step.expected_action, random, stop_when, remaining)
        else:
            outcome = _execute_macro(state, step, random, stop_when, remaining, unexpected)

        state = outcome.state
        ticks += outcome.ticks
        deaths += outcome.deaths
        if outcome.unexpected is not None:
            LOGGER.warning("unexpected boundary", extra={"boundary": outcome.unexpected.describe()})
            if unexpected is not None:
                unexpected.append(outcome.unexpected)
        if outcome.interrupted:
            return _StepOutcome(state, ticks, deaths, interrupted=True)
    return _StepOutcome(state, ticks, deaths)


def _execute_macro(
    state: GameState,
    step: MacroStep,
    random: random_module.Random,
    stop_when: Callable[[GameState], bool] | None,
    tick_limit: int | None,
    unexpected: list[ReplanBoundary] | None,
) -> _StepOutcome:
    """Replay the expansion, then keep going until the macro's stop condition holds."""
    inner = _execute_steps(state, step.expansion, random, stop_when, tick_limit, unexpected)
    if inner.interrupted or step.wait_for.is_time_based or step.wait_for.is_satisfied(inner.state):
        return inner

    remaining = None if tick_limit is None else tick_limit - inner.ticks
    tail = _execute_wait(
        inner.state,
        step.wait_for,
        max(0, step.ticks - inner.ticks),
        step.final_action,
        random,
        stop_when,
        remaining,
    )
    return _StepOutcome(
        tail.state,
        inner.ticks + tail.ticks,
        inner.deaths + tail.deaths,
        tail.unexpected,
        tail.interrupted,
    )


# ---------------------------------------------------------------------------
# Whole plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlanExecution:
    final_state: GameState
    actual_ticks: int
    planned_ticks: int
    total_deaths: int
    unexpected_boundaries: tuple[ReplanBoundary, ...] = ()


def execute_plan(
    state: GameState,
    plan: Plan,
    random: random_module.Random,
    *,
    event_bus: EventBus | None = None,
) -> PlanExecution:
    """Run every step of ``plan`` against the real simulation.

    Failing steps are recorded as unexpected boundaries and execution goes on
    with the next step; nothing is raised.
    """
    bus = event_bus or NullEventBus()
    unexpected: list[ReplanBoundary] = []
    outcome = _execute_steps(state, plan.steps, random, unexpected=unexpected)
    for index, boundary in enumerate(unexpected):
        bus.emit(BoundaryHitEvent(index, boundary.describe(), boundary.is_expected, outcome.ticks))
    LOGGER.info(
        "plan executed",
        extra={
            "planned_ticks": plan.total_ticks,
            "actual_ticks": outcome.ticks,
            "deaths": outcome.deaths,
            "unexpected": len(unexpected),
        },
    )
    return PlanExecution(
        final_state=outcome.state,
        actual_ticks=outcome.ticks,
        planned_ticks=plan.total_ticks,
        total_deaths=outcome.deaths,
        unexpected_boundaries=tuple(unexpected),
    )


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SegmentResult:
    segment: Segment | None
    watch: SegmentWatch
    terminal_state: GameState
    failure: SolverFailure | None = None


@dataclass(frozen=True, slots=True)
class SegmentExecution:
    final_state: GameState
    boundary_hit: ReplanBoundary
    actual_ticks: int
    deaths: int = 0
    unexpected_boundaries: tuple[ReplanBoundary, ...] = ()


def solve_segment(
    state: GameState,
    goal: Goal,
    *,
    segment_config: SegmentConfig | None = None,
    solver_config: SolverConfig | None = None,
    max_expanded_nodes: int | None = None,
    event_bus: EventBus | None = None,
) -> SegmentResult:
    """Plan from ``state`` toward ``goal`` up to the first watched boundary."""
    seg_cfg = segment_config or DEFAULT_SEGMENT_CONFIG
    sol_cfg = solver_config or DEFAULT_SOLVER_CONFIG
    candidates = enumerate_candidates(state, goal, config=sol_cfg)
    watch = SegmentWatch.build(state, goal, candidates, seg_cfg)

    result = solve(
        state,
        SegmentGoal(goal, watch),
        max_expanded_nodes=max_expanded_nodes,
        config=sol_cfg,
        event_bus=event_bus,
    )
    if isinstance(result, SolverFailed):
        return SegmentResult(None, watch, state, result.failure)

    plan = result.plan
    boundary = watch.detect_boundary(result.terminal_state, plan.total_ticks) or PlannedSegmentStop()
    return SegmentResult(Segment.from_plan(plan, boundary), watch, result.terminal_state)


def execute_segment(
    state: GameState,
    segment: Segment,
    watch: SegmentWatch,
    random: random_module.Random,
) -> SegmentExecution:
    """Execute ``segment`` and report the first boundary that actually held.

    Boundaries are checked after every action completion, so execution can
    stop before the segment's planned end and report a different boundary
    than the planned one.
    """
    elapsed = 0

    def stop_when(current: GameState) -> bool:
        return watch.detect_boundary(current, elapsed) is not None

    unexpected: list[ReplanBoundary] = []
    tick_limit = watch.config.max_segment_ticks
    outcome = _execute_steps(state, segment.steps, random, stop_when, tick_limit, unexpected)
    elapsed = outcome.ticks

    boundary = watch.detect_boundary(outcome.state, elapsed)
    if boundary is None and unexpected:
        boundary = unexpected[0]
    if boundary is None:
        boundary = PlannedSegmentStop(segment.description)
    return SegmentExecution(outcome.state, boundary, outcome.ticks, outcome.deaths, tuple(unexpected))


@dataclass(frozen=True, slots=True)
class SegmentedResult:
    segments: tuple[Segment, ...]
    plan: Plan
    final_state: GameState
    boundaries: tuple[ReplanBoundary, ...]
    replan_count: int
    actual_ticks: int
    total_deaths: int = 0
    failure: SolverFailure | None = None

    @property
    def is_success(self) -> bool:
        return self.failure is None


def _purchase_segment(
    state: GameState,
    boundary: UpgradeAffordable,
    policy: SellPolicy,
) -> tuple[Segment, GameState] | None:
    upgrade = state.catalog.upgrade(boundary.purchase_id)
    if upgrade_block_reason(state, upgrade) is not None:
        return None
    if effective_credits(state, policy) < upgrade.cost:
        return None
    steps: list[Step] = []
    if state.gp < upgrade.cost:
        sell = SellItems(policy)
        state = apply_interaction(state, sell)
        steps.append(InteractionStep(sell))
    buy = BuyUpgrade(upgrade.id)
    state = apply_interaction(state, buy)
    steps.append(InteractionStep(buy))
    segment = Segment(tuple(steps), 0, count_interactions(steps), boundary, f"Buy {upgrade.id}")
    return segment, state


def _sell_segment(state: GameState, boundary: InventoryPressure, policy: SellPolicy) -> tuple[Segment, GameState] | None:
    if state.sell_value(policy.keep) <= 0:
        return None
    sell = SellItems(policy)
    segment = Segment((InteractionStep(sell),), 0, 1, boundary, "Sell to relieve inventory pressure")
    return segment, apply_interaction(state, sell)


def _final_sell_segment(state: GameState, policy: SellPolicy) -> tuple[Segment, GameState]:
    sell = SellItems(policy)
    segment = Segment((InteractionStep(sell),), 0, 1, GoalReached(), "Sell to reach goal")
    return segment, apply_interaction(state, sell)


def solve_to_goal(
    state: GameState,
    goal: Goal,
    *,
    random: random_module.Random | None = None,
    segment_config: SegmentConfig | None = None,
    solver_config: SolverConfig | None = None,
    max_expanded_nodes: int | None = None,
    event_bus: EventBus | None = None,
) -> SegmentedResult:
    """Plan and execute segment by segment until the goal holds.

    Parameters
    ----------
    state:
        Starting snapshot.
    goal:
        Target predicate.
    random:
        Source for real execution. Without one, each segment's projected end
        state is taken as the outcome.
    segment_config, solver_config:
        Boundary switches and search tuning.
    max_expanded_nodes:
        Search budget per segment.
    event_bus:
        Receives segment, boundary and replan events.

    Returns
    -------
    SegmentedResult
        The segments with the stitched plan, the final state, every boundary
        hit, and a failure when the loop could not reach the goal.
    """
    seg_cfg = segment_config or DEFAULT_SEGMENT_CONFIG
    bus = event_bus or NullEventBus()

    segments: list[Segment] = []
    boundaries: list[ReplanBoundary] = []
    current = state
    replans = 0
    actual_ticks = 0
    deaths = 0
    empty_streak = 0
    failure: SolverFailure | None = None

    def fail(boundary: ReplanBoundary) -> SolverFailure:
        boundaries.append(boundary)
        LOGGER.warning("segment loop stopped", extra={"boundary": boundary.describe()})
        bus.emit(BoundaryHitEvent(len(segments), boundary.describe(), boundary.is_expected, actual_ticks))
        return SolverFailure(boundary.describe(), 0, 0, goal.progress(current))

    for index in range(seg_cfg.max_segments):
        if goal.is_satisfied(current):
            if goal.needs_final_sell(current):
                extra, current = _final_sell_segment(current, goal.sell_policy(current))
                segments.append(extra)
            break

        result = solve_segment(
            current,
            goal,
            segment_config=seg_cfg,
            solver_config=solver_config,
            max_expanded_nodes=max_expanded_nodes,
            event_bus=bus,
        )
        if result.segment is None:
            failure = result.failure
            break
        segment = result.segment

        if random is None:
            current = result.terminal_state
            hit = segment.stop_boundary
            ticks = segment.total_ticks
            segment_deaths = 0
        else:
            execution = execute_segment(current, segment, result.watch, random)
            current = execution.final_state
            hit = execution.boundary_hit
            ticks = execution.actual_ticks
            segment_deaths = execution.deaths

        segments.append(segment)
        boundaries.append(hit)
        actual_ticks += ticks
        deaths += segment_deaths
        empty_streak = empty_streak + 1 if not segment.steps else 0
        bus.emit(SegmentCompletedEvent(index, hit.describe(), segment.total_ticks, ticks, segment_deaths))
        if not hit.is_expected:
            LOGGER.warning("unexpected boundary", extra={"segment": index, "boundary": hit.describe()})
            bus.emit(BoundaryHitEvent(index, hit.describe(), False, actual_ticks))

        if isinstance(hit, GoalReached) and goal.is_satisfied(current):
            if goal.needs_final_sell(current):
                extra, current = _final_sell_segment(current, goal.sell_policy(current))
                segments.append(extra)
            break

        synthetic = None
        policy = goal.sell_policy(current)
        if isinstance(hit, UpgradeAffordable):
            synthetic = _purchase_segment(current, hit, policy)
        elif isinstance(hit, InventoryPressure):
            synthetic = _sell_segment(current, hit, policy)
        if synthetic is not None:
            extra, current = synthetic
            segments.append(extra)
            empty_streak = 0

        if empty_streak >= 2:
            failure = fail(NoProgressPossible("two empty segments in a row"))
            break
        if not hit.causes_replan and not isinstance(hit, HorizonCap):
            if not isinstance(hit, GoalReached):
                failure = fail(NoProgressPossible(hit.describe()))
                break

        replans += 1
        LOGGER.info("replan", extra={"segment": index, "reason": hit.describe(), "elapsed_ticks": actual_ticks})
        bus.emit(ReplanEvent(index, hit.describe(), actual_ticks))
    else:
        if not goal.is_satisfied(current):
            failure = fail(ReplanLimitExceeded(seg_cfg.max_segments))

    return SegmentedResult(
        segments=tuple(segments),
        plan=Plan.from_segments(segments),
        final_state=current,
        boundaries=tuple(boundaries),
        replan_count=replans,
        actual_ticks=actual_ticks,
        total_deaths=deaths,
        failure=failure,
    )
