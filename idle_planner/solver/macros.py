"""Macro candidates and their expansion into primitive steps.

A macro is a compound decision the search can take in one edge: train a
skill until a stop rule fires, or stock a number of items (recursively
stocking inputs and training locked producers first). Expansion runs against
the expected-value projection, so it is deterministic.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from idle_planner.core.domain.interactions import (
    SellAllPolicy,
    SwitchActivity,
    apply_interaction,
    effective_credits,
)
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import COUNT_EPSILON
from idle_planner.core.domain.xp import MAX_LEVEL, start_xp_for_level
from idle_planner.solver.config import DEFAULT_SOLVER_CONFIG
from idle_planner.solver.plan import InteractionStep, MacroStep, WaitStep
from idle_planner.solver.rates import INF_TICKS, estimate_rates, find_best_action_by_rate
from idle_planner.solver.state_advance import advance
from idle_planner.solver.wait_for import (
    WaitForAnyOf,
    WaitForEffectiveCredits,
    WaitForGoal,
    WaitForInputsDepleted,
    WaitForInventoryAtLeast,
    WaitForMasteryXp,
    WaitForSkillXp,
    WaitReason,
)

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import ActionDef
    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.config import SolverConfig
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.plan import Step
    from idle_planner.solver.rates import Rates
    from idle_planner.solver.wait_for import WaitFor

LOGGER = logging.getLogger(__name__)

# Waits emitted by a single training macro before it gives up.
MAX_MACRO_WAITS = 200
# Stock-then-consume rounds of a consuming training macro.
MAX_CONSUMING_ROUNDS = 200
# Production chain depth considered when ranking consuming actions.
MAX_CHAIN_DEPTH = 8


# ---------------------------------------------------------------------------
# Stop rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StopAtGoal:
    goal: Goal

    def wait_for(self, state: GameState) -> WaitFor:
        return WaitForGoal(self.goal)

    def describe(self) -> str:
        return self.goal.describe()


@dataclass(frozen=True, slots=True)
class StopAtLevel:
    skill: Skill
    level: int

    def wait_for(self, state: GameState) -> WaitForSkillXp:
        return WaitForSkillXp(
            self.skill,
            start_xp_for_level(self.level),
            WaitReason.SKILL_LEVEL,
            label=f"{self.skill} level {self.level}",
        )

    def describe(self) -> str:
        return f"{self.skill} level {self.level}"


@dataclass(frozen=True, slots=True)
class StopAtNextUnlock:
    """Stop at the next level that unlocks an action of ``skill``, or at ``cap_level``."""

    skill: Skill
    cap_level: int = MAX_LEVEL

    def target_level(self, state: GameState) -> int:
        unlock = next_unlock_level(state, self.skill)
        return self.cap_level if unlock is None else min(unlock, self.cap_level)

    def wait_for(self, state: GameState) -> WaitForSkillXp:
        level = self.target_level(state)
        reason = WaitReason.SKILL_LEVEL if level >= self.cap_level else WaitReason.ACTIVITY_UNLOCKS
        return WaitForSkillXp(self.skill, start_xp_for_level(level), reason, label=f"{self.skill} level {level}")

    def describe(self) -> str:
        return f"next {self.skill} unlock (max level {self.cap_level})"


StopRule = Union[StopAtGoal, StopAtLevel, StopAtNextUnlock]


def next_unlock_level(state: GameState, skill: Skill) -> int | None:
    """Lowest unlock level of a still-locked action of ``skill``."""
    level = state.skill_level(skill)
    levels = [a.unlock_level for a in state.catalog.actions_for_skill(skill) if a.unlock_level > level]
    return min(levels) if levels else None


# ---------------------------------------------------------------------------
# Macros
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TrainSkillUntil:
    skill: Skill
    stop: StopRule
    action_id: str | None = None
    watched_upgrades: tuple[str, ...] = ()

    def describe(self) -> str:
        via = f" via {self.action_id}" if self.action_id else ""
        return f"Train {self.skill}{via} until {self.stop.describe()}"


@dataclass(frozen=True, slots=True)
class TrainConsumingSkillUntil:
    """Alternate between stocking inputs and consuming them in batches."""

    skill: Skill
    stop: StopRule
    watched_upgrades: tuple[str, ...] = ()

    def describe(self) -> str:
        return f"Train {self.skill} (stock and consume) until {self.stop.describe()}"


@dataclass(frozen=True, slots=True)
class EnsureStock:
    item_id: str
    target_count: float
    batch_size: float = 1.0
    needed_by: str | None = None

    @property
    def is_batched(self) -> bool:
        return self.batch_size > 1.0 + COUNT_EPSILON

    def describe(self) -> str:
        suffix = f" for {self.needed_by}" if self.needed_by else ""
        return f"Stock {self.target_count:g} x {self.item_id}{suffix}"


MacroCandidate = Union[TrainSkillUntil, TrainConsumingSkillUntil, EnsureStock]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NoUnlockedActionsReason:
    """No action at any level produces ``item_id``, which ``needed_by`` consumes."""

    item_id: str
    needed_by: str | None = None

    def describe(self) -> str:
        if self.needed_by is None:
            return f"no action produces {self.item_id}"
        return f"no action produces {self.item_id} (needed by {self.needed_by})"


@dataclass(frozen=True, slots=True)
class MacroExpansion:
    steps: tuple[Step, ...]
    state: GameState
    ticks: int
    expected_deaths: float
    stop: WaitFor

    @property
    def final_action(self) -> str | None:
        return self.state.active_action


@dataclass(frozen=True, slots=True)
class MacroAlreadySatisfied:
    state: GameState


@dataclass(frozen=True, slots=True)
class MacroNeedsPrerequisite:
    """The producer of an item is locked; ``prerequisite`` unlocks it."""

    prerequisite: MacroCandidate
    producer_id: str


@dataclass(frozen=True, slots=True)
class MacroExpansionFailure:
    reason: str
    missing: NoUnlockedActionsReason | None = None

    def describe(self) -> str:
        return self.reason


MacroOutcome = Union[MacroExpansion, MacroAlreadySatisfied, MacroNeedsPrerequisite, MacroExpansionFailure]
_OUTCOME_TYPES = (MacroExpansion, MacroAlreadySatisfied, MacroNeedsPrerequisite, MacroExpansionFailure)


# ---------------------------------------------------------------------------
# Producer selection
# ---------------------------------------------------------------------------


def best_producer(state: GameState, item_id: str) -> ActionDef | None:
    """Unlocked action producing the most ``item_id`` per tick; ties go to the smaller id."""
    best: ActionDef | None = None
    best_rate = 0.0
    for action in state.catalog.producers_of(item_id):
        if not state.is_unlocked(action):
            continue
        rate = action.expected_output(item_id) / state.duration_ticks(action)
        if rate > best_rate or (rate == best_rate and best is not None and action.id < best.id):
            best, best_rate = action, rate
    return best


def resolve_producer(state: GameState, item_id: str, needed_by: str | None = None) -> ActionDef | MacroOutcome:
    """The producer to use for ``item_id``, or what has to happen first."""
    producer = best_producer(state, item_id)
    if producer is not None:
        return producer

    producers = state.catalog.producers_of(item_id)
    if not producers:
        missing = NoUnlockedActionsReason(item_id, needed_by)
        return MacroExpansionFailure(missing.describe(), missing)

    nearest = min(producers, key=lambda a: (a.unlock_level - state.skill_level(a.skill), a.id))
    stop = StopAtLevel(nearest.skill, nearest.unlock_level)
    prerequisite: MacroCandidate
    if nearest.has_inputs:
        prerequisite = TrainConsumingSkillUntil(nearest.skill, stop)
    else:
        prerequisite = TrainSkillUntil(nearest.skill, stop)
    return MacroNeedsPrerequisite(prerequisite, nearest.id)


def chain_profile(state: GameState, action: ActionDef, skill: Skill, depth: int = 0) -> tuple[float, float] | None:
    """(ticks, ``skill`` xp) per completion of ``action`` including its input chain.

    None when some input has no unlocked producer.
    """
    if depth > MAX_CHAIN_DEPTH:
        return None
    ticks = float(state.duration_ticks(action))
    xp = float(action.xp) if action.skill == skill else 0.0
    for item_id, quantity in sorted(action.inputs.items()):
        producer = best_producer(state, item_id)
        if producer is None:
            return None
        sub = chain_profile(state, producer, skill, depth + 1)
        if sub is None:
            return None
        per_completion = producer.expected_output(item_id)
        ticks += quantity * sub[0] / per_completion
        xp += quantity * sub[1] / per_completion
    return ticks, xp


def best_consuming_action(state: GameState, skill: Skill) -> tuple[ActionDef, float] | None:
    """Unlocked consuming action of ``skill`` with the best chain xp per tick.

    Returns the action and its chain xp per completion.
    """
    best: tuple[ActionDef, float] | None = None
    best_rate = 0.0
    for action in state.catalog.actions_for_skill(skill):
        if not action.has_inputs or not state.is_unlocked(action):
            continue
        profile = chain_profile(state, action, skill)
        if profile is None or profile[1] <= 0:
            continue
        rate = profile[1] / profile[0]
        if rate > best_rate or (rate == best_rate and best is not None and action.id < best[0].id):
            best, best_rate = (action, profile[1]), rate
    return best


def best_training_action(state: GameState, skill: Skill) -> str | None:
    """Startable, input-free action of ``skill`` with the best xp per tick."""
    return find_best_action_by_rate(
        state,
        [a.id for a in state.catalog.actions_for_skill(skill) if not a.has_inputs],
        lambda rates: rates.xp_per_tick(skill),
        can_use=lambda s, action: s.is_unlocked(action),
    )


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------


class _Builder:
    """Accumulates primitive steps while projecting the state forward."""

    __slots__ = ("state", "steps", "ticks", "deaths")

    def __init__(self, state: GameState) -> None:
        self.state = state
        self.steps: list[Step] = []
        self.ticks = 0
        self.deaths = 0.0

    def switch(self, action_id: str) -> None:
        if self.state.active_action == action_id:
            return
        interaction = SwitchActivity(action_id)
        self.state = apply_interaction(self.state, interaction)
        self.steps.append(InteractionStep(interaction))

    def wait(self, ticks: int, wait_for: WaitFor) -> None:
        action = self.state.active_action
        result = advance(self.state, ticks)
        self.state = result.state
        self.ticks += ticks
        self.deaths += result.expected_deaths
        self.steps.append(WaitStep(ticks, wait_for, expected_action=action))

    def drop_partial_inputs(self, action: ActionDef) -> None:
        """Round ``action``'s leftover inputs down to whole items.

        Execution consumes inputs a whole completion at a time, so a stop part
        way through a stack leaves the projection holding a fraction that was
        really used up.
        """
        delta: dict[str, float] = {}
        for item_id in action.inputs:
            count = self.state.count(item_id)
            whole = math.floor(count + COUNT_EPSILON)
            if count - whole > COUNT_EPSILON:
                delta[item_id] = whole - count
        self.state = self.state.with_items(delta)

    def absorb(self, macro: MacroCandidate, sub: _Builder, stop: WaitFor) -> None:
        """Record ``sub``'s work as one nested macro step."""
        self.state = sub.state
        self.ticks += sub.ticks
        self.deaths += sub.deaths
        self.steps.append(
            MacroStep(
                macro=macro,
                ticks=sub.ticks,
                wait_for=stop,
                final_action=sub.state.active_action,
                expansion=tuple(sub.steps),
            )
        )


def expand_macro(
    state: GameState,
    macro: MacroCandidate,
    *,
    policy: SellPolicy | None = None,
    config: SolverConfig | None = None,
) -> MacroOutcome:
    """Expand ``macro`` from ``state`` into primitive steps.

    Parameters
    ----------
    state:
        Starting snapshot.
    macro:
        The compound decision to expand.
    policy:
        Sell policy used when checking whether watched upgrades became
        affordable part-way through.
    config:
        Solver configuration (batch buffer and depth limits).

    Returns
    -------
    MacroOutcome
        ``MacroExpansion`` with the steps and the projected end state,
        ``MacroAlreadySatisfied`` when there is nothing to do, or
        ``MacroExpansionFailure`` with a descriptive reason.
    """
    cfg = config or DEFAULT_SOLVER_CONFIG
    sell_policy = policy or SellAllPolicy()
    builder = _Builder(state)

    if isinstance(macro, EnsureStock):
        if state.count(macro.item_id) + COUNT_EPSILON >= macro.target_count:
            return MacroAlreadySatisfied(state)
        failure = _ensure_stock(builder, macro.item_id, macro.target_count, macro.needed_by, 0, cfg)
        if failure is not None:
            return failure
        stop: WaitFor = WaitForInventoryAtLeast(macro.item_id, macro.target_count)
    else:
        outcome = _expand_training(builder, macro, sell_policy, 0, cfg)
        if isinstance(outcome, _OUTCOME_TYPES):
            return outcome
        stop = outcome

    if not builder.steps:
        return MacroAlreadySatisfied(state)
    return MacroExpansion(
        steps=tuple(builder.steps),
        state=builder.state,
        ticks=builder.ticks,
        expected_deaths=builder.deaths,
        stop=stop,
    )


def _upgrade_waits(state: GameState, upgrade_ids: tuple[str, ...], policy: SellPolicy) -> list[WaitFor]:
    waits: list[WaitFor] = []
    for upgrade_id in upgrade_ids:
        upgrade = state.catalog.upgrade(upgrade_id)
        if state.owns(upgrade_id) or effective_credits(state, policy) >= upgrade.cost:
            continue
        waits.append(WaitForEffectiveCredits(float(upgrade.cost), policy, label=upgrade_id))
    return waits


def _first_hit(state: GameState, conditions: list[WaitFor]) -> WaitFor | None:
    for condition in conditions:
        if not condition.is_time_based and condition.is_satisfied(state):
            return condition
    return None


def _expand_training(
    builder: _Builder,
    macro: TrainSkillUntil | TrainConsumingSkillUntil,
    policy: SellPolicy,
    depth: int,
    config: SolverConfig,
) -> WaitFor | MacroOutcome:
    """Run a training macro into ``builder``; returns the stop that fired."""
    if depth > config.max_macro_depth:
        return MacroExpansionFailure(f"prerequisite depth exceeds {config.max_macro_depth}")

    stop_wait = macro.stop.wait_for(builder.state)
    if stop_wait.is_satisfied(builder.state):
        return MacroAlreadySatisfied(builder.state)
    stops: list[WaitFor] = [stop_wait, *_upgrade_waits(builder.state, macro.watched_upgrades, policy)]

    if isinstance(macro, TrainConsumingSkillUntil):
        return _train_consuming(builder, macro.skill, stop_wait, stops, depth, config)
    return _train_direct(builder, macro, stops)


def _train_direct(builder: _Builder, macro: TrainSkillUntil, stops: list[WaitFor]) -> WaitFor | MacroOutcome:
    action_id = macro.action_id or best_training_action(builder.state, macro.skill)
    if action_id is None:
        return MacroExpansionFailure(f"no unlocked input-free action trains {macro.skill}")
    action = builder.state.action_def(action_id)
    if not builder.state.can_start(action):
        return MacroExpansionFailure(f"cannot start {action_id}")
    builder.switch(action_id)

    for _ in range(MAX_MACRO_WAITS):
        hit = _first_hit(builder.state, stops)
        if hit is not None:
            return hit
        conditions = list(stops)
        if action.thieving is not None:
            # Success chance depends on level and mastery level.
            level = builder.state.skill_level(action.skill)
            if level < MAX_LEVEL:
                conditions.append(WaitForSkillXp(action.skill, start_xp_for_level(level + 1)))
            mastery = builder.state.mastery_level(action.id)
            if mastery < MAX_LEVEL:
                conditions.append(WaitForMasteryXp(action.id, start_xp_for_level(mastery + 1)))
        rates = estimate_rates(builder.state)
        ticks, chosen = _soonest(builder.state, rates, conditions)
        if chosen is None:
            return MacroExpansionFailure(f"no progress toward {stops[0].describe()} with {action_id}")
        builder.wait(ticks, chosen)
    return MacroExpansionFailure(f"{macro.describe()} did not finish within {MAX_MACRO_WAITS} waits")


def _soonest(state: GameState, rates: Rates, conditions: list[WaitFor]) -> tuple[int, WaitFor | None]:
    best_ticks = INF_TICKS
    chosen: WaitFor | None = None
    for condition in conditions:
        ticks = condition.estimate_ticks(state, rates)
        if 0 < ticks < best_ticks:
            best_ticks, chosen = ticks, condition
    return best_ticks, chosen


def _train_consuming(
    builder: _Builder,
    skill: Skill,
    stop_wait: WaitFor,
    stops: list[WaitFor],
    depth: int,
    config: SolverConfig,
) -> WaitFor | MacroOutcome:
    target_xp = stop_wait.target_xp if isinstance(stop_wait, WaitForSkillXp) else None

    for _ in range(MAX_CONSUMING_ROUNDS):
        hit = _first_hit(builder.state, stops)
        if hit is not None:
            return hit

        choice = best_consuming_action(builder.state, skill)
        if choice is None:
            return MacroExpansionFailure(f"no consuming action of {skill} has an obtainable input chain")
        action, chain_xp = choice

        duration = builder.state.duration_ticks(action)
        batch = max(1, config.stock_buffer_ticks // duration)
        if target_xp is not None:
            remaining = target_xp - builder.state.xp(skill)
            batch = min(batch, max(1, math.ceil(remaining / chain_xp - COUNT_EPSILON)))

        for item_id, quantity in sorted(action.inputs.items()):
            failure = _ensure_stock(builder, item_id, batch * quantity, action.id, depth + 1, config)
            if failure is not None:
                return failure
        if _first_hit(builder.state, stops) is not None:
            continue
        if not builder.state.can_start(action):
            return MacroExpansionFailure(f"inputs for {action.id} unavailable after stocking")

        builder.switch(action.id)
        wait = WaitForAnyOf((stop_wait, WaitForInputsDepleted(action.id)))
        ticks = wait.estimate_ticks(builder.state, estimate_rates(builder.state))
        if ticks <= 0 or ticks >= INF_TICKS:
            return MacroExpansionFailure(f"no progress consuming with {action.id}")
        builder.wait(ticks, wait)
        builder.drop_partial_inputs(action)

    return MacroExpansionFailure(f"{skill} training did not finish within {MAX_CONSUMING_ROUNDS} rounds")


def _ensure_stock(
    builder: _Builder,
    item_id: str,
    target_count: float,
    needed_by: str | None,
    depth: int,
    config: SolverConfig,
) -> MacroExpansionFailure | None:
    """Stock ``target_count`` of ``item_id`` in one batched wait.

    Inputs of the producer are stocked first, each as its own batch, and a
    locked producer is unlocked by a nested training macro.
    """
    have = builder.state.count(item_id)
    if have + COUNT_EPSILON >= target_count:
        return None
    if depth > config.max_macro_depth:
        return MacroExpansionFailure(f"prerequisite depth exceeds {config.max_macro_depth} stocking {item_id}")

    resolved = resolve_producer(builder.state, item_id, needed_by)
    if isinstance(resolved, MacroExpansionFailure):
        return resolved
    if isinstance(resolved, MacroNeedsPrerequisite):
        prerequisite = resolved.prerequisite
        if isinstance(prerequisite, EnsureStock):
            return MacroExpansionFailure(f"cannot stock {item_id}: producer needs {prerequisite.describe()}")
        sub = _Builder(builder.state)
        outcome = _expand_training(sub, prerequisite, SellAllPolicy(), depth + 1, config)
        if isinstance(outcome, MacroExpansionFailure):
            return outcome
        if not isinstance(outcome, _OUTCOME_TYPES):
            builder.absorb(prerequisite, sub, outcome)
        producer = builder.state.action_def(resolved.producer_id)
        if not builder.state.is_unlocked(producer):
            return MacroExpansionFailure(f"{resolved.producer_id} still locked after training")
        have = builder.state.count(item_id)
        if have + COUNT_EPSILON >= target_count:
            return None
    else:
        producer = resolved

    deficit = target_count - have
    completions = math.ceil(deficit / producer.expected_output(item_id) - COUNT_EPSILON)
    for input_id, quantity in sorted(producer.inputs.items()):
        failure = _ensure_stock(builder, input_id, completions * quantity, producer.id, depth + 1, config)
        if failure is not None:
            return failure

    if not builder.state.can_start(producer):
        return MacroExpansionFailure(f"cannot start {producer.id} to stock {item_id}")

    mark = len(builder.steps)
    mark_ticks = builder.ticks
    builder.switch(producer.id)
    wait = WaitForInventoryAtLeast(item_id, target_count)
    ticks = wait.estimate_ticks(builder.state, estimate_rates(builder.state))
    if ticks >= INF_TICKS:
        return MacroExpansionFailure(f"{producer.id} makes no net progress on {item_id}")
    if ticks > 0:
        builder.wait(ticks, wait)
        builder.drop_partial_inputs(producer)

    primitives = tuple(builder.steps[mark:])
    del builder.steps[mark:]
    builder.steps.append(
        MacroStep(
            macro=EnsureStock(item_id, target_count, deficit, needed_by),
            ticks=builder.ticks - mark_ticks,
            wait_for=wait,
            final_action=builder.state.active_action,
            expansion=primitives,
        )
    )
    LOGGER.debug("stocked", extra={"item_id": item_id, "target": target_count, "producer": producer.id})
    return None
