"""Best-first search over (state, elapsed ticks) nodes.

Nodes are ordered by ``(ticks + heuristic, ticks, insertion sequence)`` so the
expansion order, and therefore the plan, is identical for identical inputs.
Every projection goes through the expected-value model; the search never
touches a random source.
"""

from __future__ import annotations

import hashlib
import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from idle_planner.core.domain.interactions import (
    BuyUpgrade,
    SellAllPolicy,
    SellItems,
    SwitchActivity,
    apply_interaction,
    effective_credits,
)
from idle_planner.core.events.events import SolveFinishedEvent
from idle_planner.core.events.sinks.null_event_bus import NullEventBus
from idle_planner.solver.candidates import enumerate_candidates
from idle_planner.solver.config import DEFAULT_SOLVER_CONFIG
from idle_planner.solver.goal import GOAL_EPSILON
from idle_planner.solver.macros import MacroExpansion, MacroExpansionFailure, expand_macro
from idle_planner.solver.next_decision_delta import classify_rate_zero, next_decision_delta
from idle_planner.solver.plan import InteractionStep, MacroStep, Plan, WaitStep
from idle_planner.solver.profiler import NULL_PHASES, SolverProfile
from idle_planner.solver.rates import INF_TICKS, estimate_rates, estimate_rates_for_action
from idle_planner.solver.state_advance import advance

if TYPE_CHECKING:
    from idle_planner.core.domain.state import GameState
    from idle_planner.core.events.event_bus import EventBus
    from idle_planner.solver.config import SolverConfig
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.next_decision_delta import RateZeroReason
    from idle_planner.solver.plan import Step

LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SolverFailure:
    reason: str
    expanded_nodes: int
    enqueued_nodes: int
    best_observed_value: float


@dataclass(frozen=True, slots=True)
class SolverSuccess:
    plan: Plan
    terminal_state: GameState
    profile: SolverProfile | None = None

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class SolverFailed:
    failure: SolverFailure
    rate_zero_reason: RateZeroReason | None = None
    profile: SolverProfile | None = None

    @property
    def is_success(self) -> bool:
        return False


SolverResult = Union[SolverSuccess, SolverFailed]


# ---------------------------------------------------------------------------
# Search internals
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Node:
    state: GameState
    ticks: int
    parent: _Node | None
    steps: tuple[Step, ...]
    deaths: float
    key: bytes


def state_key(state: GameState, goal: Goal, config: SolverConfig) -> bytes:
    """Coarse, deterministic digest used to deduplicate search nodes.

    Buckets: effective credits under a sell-everything policy // gold bucket
    size, the active action, purchased upgrades, and the levels of the goal's
    bucketing skills. Goals with consuming skills also key on the total
    inventory count (exact below the limit, bucketed above it); the count is
    aggregated across item types so multi-input chains do not multiply keys.
    """
    credits = effective_credits(state, SellAllPolicy())
    parts = [
        f"gb:{int(credits // config.gold_bucket_size)}",
        f"act:{state.active_action or '-'}",
        "up:" + ",".join(sorted(state.upgrades)),
    ]
    for skill in sorted(goal.bucket_skills, key=lambda s: s.value):
        parts.append(f"lv:{skill.value}:{state.skill_level(skill)}")
    if goal.consuming_skills:
        total = int(sum(state.inventory.values()))
        if total >= config.inventory_bucket_exact_limit:
            total = total // config.inventory_bucket_size
            parts.append(f"invb:{total}")
        else:
            parts.append(f"inv:{total}")
    return hashlib.blake2b("|".join(parts).encode("utf-8"), digest_size=16).digest()


class _Frontier:
    """Per-key Pareto frontier over (ticks lower, progress higher)."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[bytes, list[tuple[int, float]]] = {}

    def admit(self, key: bytes, ticks: int, progress: float) -> bool:
        entries = self._entries.setdefault(key, [])
        for seen_ticks, seen_progress in entries:
            if seen_ticks <= ticks and seen_progress >= progress - GOAL_EPSILON:
                return False
        entries[:] = [
            (t, p) for t, p in entries
            if not (ticks <= t and progress >= p - GOAL_EPSILON)
        ]
        entries.append((ticks, progress))
        return True


def best_progress_rate(state: GameState, goal: Goal) -> float:
    """Fastest goal progress any unlocked relevant action offers, ignoring inputs."""
    best = 0.0
    for action in sorted(state.catalog.actions, key=lambda a: a.id):
        if not goal.is_skill_relevant(action.skill) or not state.is_unlocked(action):
            continue
        best = max(best, goal.progress_per_tick(state, estimate_rates_for_action(state, action.id)))
    return best


def _plan_steps(node: _Node) -> list[Step]:
    chain: list[tuple[Step, ...]] = []
    current: _Node | None = node
    while current is not None:
        chain.append(current.steps)
        current = current.parent
    steps: list[Step] = []
    for part in reversed(chain):
        steps.extend(part)
    return steps


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def solve(
    state: GameState,
    goal: Goal,
    *,
    max_expanded_nodes: int | None = None,
    collect_diagnostics: bool = False,
    config: SolverConfig | None = None,
    event_bus: EventBus | None = None,
) -> SolverResult:
    """Find a minimal-time plan from ``state`` to ``goal``.

    Parameters
    ----------
    state:
        Starting snapshot; never modified.
    goal:
        Target predicate.
    max_expanded_nodes:
        Search budget; defaults to ``config.max_expanded_nodes``.
    collect_diagnostics:
        Attach a ``SolverProfile`` to the result.
    config:
        Solver configuration.
    event_bus:
        Receives a ``SolveFinishedEvent``.

    Returns
    -------
    SolverResult
        ``SolverSuccess`` with a compressed plan (empty when the goal already
        holds), or ``SolverFailed`` describing why the search stopped.
    """
    cfg = config or DEFAULT_SOLVER_CONFIG
    budget = max_expanded_nodes if max_expanded_nodes is not None else cfg.max_expanded_nodes
    bus = event_bus or NullEventBus()
    profile = SolverProfile() if collect_diagnostics else None
    phases = profile or NULL_PHASES

    LOGGER.info("solve started", extra={"goal": goal.describe(), "max_expanded_nodes": budget})

    def finish(result: SolverResult) -> SolverResult:
        if isinstance(result, SolverSuccess):
            plan = result.plan
            bus.emit(
                SolveFinishedEvent(
                    goal=goal.describe(),
                    success=True,
                    expanded_nodes=plan.expanded_nodes,
                    enqueued_nodes=plan.enqueued_nodes,
                    total_ticks=plan.total_ticks,
                    interaction_count=plan.interaction_count,
                )
            )
            LOGGER.info(
                "solve finished",
                extra={
                    "goal": goal.describe(),
                    "total_ticks": plan.total_ticks,
                    "steps": plan.step_count,
                    "expanded_nodes": plan.expanded_nodes,
                },
            )
        else:
            failure = result.failure
            bus.emit(
                SolveFinishedEvent(
                    goal=goal.describe(),
                    success=False,
                    expanded_nodes=failure.expanded_nodes,
                    enqueued_nodes=failure.enqueued_nodes,
                    total_ticks=0,
                    interaction_count=0,
                    failure_reason=failure.reason,
                )
            )
            LOGGER.info("solve failed", extra={"goal": goal.describe(), "reason": failure.reason})
        return result

    if goal.is_satisfied_at(state, 0):
        return finish(SolverSuccess(Plan.empty(), state, profile))

    best_rate = best_progress_rate(state, goal)
    if best_rate <= 0:
        reason = classify_rate_zero(state, goal)
        text = reason.describe() if reason is not None else "no unlocked action makes progress"
        failure = SolverFailure(f"Heuristic best rate is 0: {text}", 0, 0, goal.progress(state))
        return finish(SolverFailed(failure, reason, profile))

    def heuristic(candidate: GameState) -> int:
        remaining = goal.progress_heuristic(candidate)
        if remaining <= 0:
            return 0
        return math.ceil(remaining / best_rate)

    counter = itertools.count()
    frontier = _Frontier()
    root = _Node(state, 0, None, (), 0.0, state_key(state, goal, cfg))
    frontier.admit(root.key, 0, goal.progress(state))
    queue: list[tuple[int, int, int, _Node]] = [(heuristic(state), 0, next(counter), root)]

    expanded = 0
    enqueued = 1
    best_value = goal.progress(state)
    rate_zero: RateZeroReason | None = None
    macro_failure: MacroExpansionFailure | None = None

    def push(parent: _Node, child_state: GameState, ticks: int, steps: tuple[Step, ...], deaths: float) -> bool:
        nonlocal enqueued
        key = state_key(child_state, goal, cfg)
        if not frontier.admit(key, ticks, goal.progress(child_state)):
            if profile is not None:
                profile.dominated_pruned += 1
            return False
        child = _Node(child_state, ticks, parent, steps, parent.deaths + deaths, key)
        heapq.heappush(queue, (ticks + heuristic(child_state), ticks, next(counter), child))
        enqueued += 1
        if profile is not None:
            profile.max_queue_size = max(profile.max_queue_size, len(queue))
        return True

    while queue:
        _, _, _, node = heapq.heappop(queue)
        current = node.state
        best_value = max(best_value, goal.progress(current))

        if goal.is_satisfied_at(current, node.ticks):
            steps = _plan_steps(node)
            if goal.needs_final_sell(current):
                sell = SellItems(goal.sell_policy(current))
                current = apply_interaction(current, sell)
                steps.append(InteractionStep(sell))
            plan = Plan.from_steps(
                steps,
                expanded_nodes=expanded,
                enqueued_nodes=enqueued,
                expected_deaths=node.deaths,
            ).compress(state.active_action)
            if profile is not None:
                profile.expanded_nodes = expanded
                profile.enqueued_nodes = enqueued
            return finish(SolverSuccess(plan, current, profile))

        expanded += 1
        if expanded > budget:
            LOGGER.warning(
                "solve budget exhausted",
                extra={"goal": goal.describe(), "max_expanded_nodes": budget, "enqueued_nodes": enqueued},
            )
            failure = SolverFailure(
                f"Exceeded max expanded nodes ({budget}): node budget exhausted",
                expanded - 1,
                enqueued,
                best_value,
            )
            if profile is not None:
                profile.expanded_nodes = expanded - 1
                profile.enqueued_nodes = enqueued
            return finish(SolverFailed(failure, rate_zero, profile))

        active_rate = goal.progress_per_tick(current, estimate_rates(current))
        if active_rate > best_rate:
            best_rate = active_rate

        with phases.phase("candidates"):
            candidates = enumerate_candidates(current, goal, config=cfg)

        # Zero-tick interactions.
        with phases.phase("interactions"):
            for action_id in candidates.switch_to_activities:
                switch = SwitchActivity(action_id)
                if push(node, apply_interaction(current, switch), node.ticks, (InteractionStep(switch),), 0.0):
                    if profile is not None:
                        profile.interaction_edges += 1

            for upgrade_id in candidates.buy_upgrades:
                cost = current.catalog.upgrade(upgrade_id).cost
                buy = BuyUpgrade(upgrade_id)
                if current.gp >= cost:
                    buy_steps: tuple[Step, ...] = (InteractionStep(buy),)
                    child = apply_interaction(current, buy)
                elif effective_credits(current, candidates.sell_policy) >= cost:
                    sell = SellItems(candidates.sell_policy)
                    buy_steps = (InteractionStep(sell), InteractionStep(buy))
                    child = apply_interaction(apply_interaction(current, sell), buy)
                else:
                    continue
                if push(node, child, node.ticks, buy_steps, 0.0) and profile is not None:
                    profile.interaction_edges += 1

            if candidates.include_sell_all and current.sell_value(candidates.sell_policy.keep) > 0:
                sell = SellItems(candidates.sell_policy)
                if push(node, apply_interaction(current, sell), node.ticks, (InteractionStep(sell),), 0.0):
                    if profile is not None:
                        profile.interaction_edges += 1

        # Macros.
        with phases.phase("macros"):
            for macro in candidates.macros:
                outcome = expand_macro(current, macro, policy=candidates.sell_policy, config=cfg)
                if isinstance(outcome, MacroExpansionFailure):
                    macro_failure = outcome
                    if profile is not None:
                        profile.macro_failures += 1
                    continue
                if not isinstance(outcome, MacroExpansion):
                    continue
                step = MacroStep(
                    macro=macro,
                    ticks=outcome.ticks,
                    wait_for=outcome.stop,
                    final_action=outcome.final_action,
                    expansion=outcome.steps,
                )
                if push(node, outcome.state, node.ticks + outcome.ticks, (step,), outcome.expected_deaths):
                    if profile is not None:
                        profile.macro_edges += 1

        # Wait.
        with phases.phase("wait"):
            decision = next_decision_delta(current, goal, candidates, elapsed_ticks=node.ticks)
            if decision.delta_ticks >= INF_TICKS:
                if profile is not None:
                    profile.dead_ends += 1
                if decision.rate_zero_reason is not None:
                    rate_zero = decision.rate_zero_reason
            elif decision.delta_ticks > 0:
                projected = advance(current, decision.delta_ticks)
                child_ticks = node.ticks + decision.delta_ticks
                same_key = state_key(projected.state, goal, cfg) == node.key
                stalled = goal.progress(projected.state) <= goal.progress(current) + GOAL_EPSILON
                if same_key and stalled and not goal.is_satisfied_at(projected.state, child_ticks):
                    if profile is not None:
                        profile.same_key_waits_dropped += 1
                else:
                    wait = WaitStep(decision.delta_ticks, decision.wait_for, expected_action=current.active_action)
                    if push(node, projected.state, child_ticks, (wait,), projected.expected_deaths):
                        if profile is not None:
                            profile.wait_edges += 1

    reason = "No path to goal found"
    if macro_failure is not None and macro_failure.missing is not None:
        reason = f"{reason}: {macro_failure.describe()}"
    elif rate_zero is not None:
        reason = f"{reason}: {rate_zero.describe()}"
    if profile is not None:
        profile.expanded_nodes = expanded
        profile.enqueued_nodes = enqueued
    failure = SolverFailure(reason, expanded, enqueued, best_value)
    return finish(SolverFailed(failure, rate_zero, profile))
