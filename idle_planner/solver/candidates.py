"""Candidate enumeration: the bounded set of next decisions for a node.

Ordering is deterministic for identical inputs: every ranking is a stable
sort with the id as the final tie-break.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from idle_planner.core.domain.interactions import effective_credits, upgrade_block_reason
from idle_planner.core.domain.skills import Skill
from idle_planner.solver.config import DEFAULT_SOLVER_CONFIG
from idle_planner.solver.macros import (
    StopAtNextUnlock,
    TrainConsumingSkillUntil,
    TrainSkillUntil,
    best_producer,
    best_training_action,
)
from idle_planner.solver.rates import estimate_rates_for_action
from idle_planner.solver.value_model import DEFAULT_VALUE_MODEL

if TYPE_CHECKING:
    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.config import SolverConfig
    from idle_planner.solver.goal import Goal
    from idle_planner.solver.macros import MacroCandidate


@dataclass(frozen=True, slots=True)
class ActionSummary:
    action_id: str
    skill: Skill
    unlock_level: int
    is_unlocked: bool
    has_inputs: bool
    can_start_now: bool
    gold_rate_per_tick: float
    net_gold_rate_per_tick: float
    xp_rate_per_tick: float


@dataclass(frozen=True, slots=True)
class WatchSet:
    """Conditions that could change the candidate ranking."""

    locked_activity_ids: tuple[str, ...] = ()
    upgrade_ids: tuple[str, ...] = ()
    consuming_activity_ids: tuple[str, ...] = ()
    inventory: bool = False


@dataclass(frozen=True, slots=True)
class Candidates:
    switch_to_activities: tuple[str, ...]
    buy_upgrades: tuple[str, ...]
    include_sell_all: bool
    sell_policy: SellPolicy
    watch: WatchSet
    macros: tuple[MacroCandidate, ...] = ()

    @property
    def has_decisions(self) -> bool:
        return bool(self.switch_to_activities or self.buy_upgrades or self.include_sell_all or self.macros)


def build_action_summaries(state: GameState) -> list[ActionSummary]:
    """One summary per catalog action, sorted by id."""
    summaries: list[ActionSummary] = []
    for action in sorted(state.catalog.actions, key=lambda a: a.id):
        rates = estimate_rates_for_action(state, action.id)
        unlocked = state.is_unlocked(action)
        has_inputs = state.has_inputs_for(action)
        summaries.append(
            ActionSummary(
                action_id=action.id,
                skill=action.skill,
                unlock_level=action.unlock_level,
                is_unlocked=unlocked,
                has_inputs=has_inputs,
                can_start_now=unlocked and has_inputs,
                gold_rate_per_tick=DEFAULT_VALUE_MODEL.value_per_tick(state, rates),
                net_gold_rate_per_tick=DEFAULT_VALUE_MODEL.net_value_per_tick(state, rates),
                xp_rate_per_tick=rates.xp_per_tick(action.skill),
            )
        )
    return summaries


def enumerate_candidates(
    state: GameState,
    goal: Goal,
    *,
    config: SolverConfig | None = None,
) -> Candidates:
    """Propose switches, purchases, a sell flag and macros for ``state``.

    Parameters
    ----------
    state:
        Node state.
    goal:
        The goal being searched for; it ranks activities.
    config:
        Candidate counts and thresholds.

    Returns
    -------
    Candidates
        The decisions plus the watch set of conditions that could change them.
    """
    cfg = config or DEFAULT_SOLVER_CONFIG
    summaries = build_action_summaries(state)
    by_id = {s.action_id: s for s in summaries}

    def rank(summary: ActionSummary) -> float:
        return goal.activity_rate(summary.skill, summary.net_gold_rate_per_tick, summary.xp_rate_per_tick)

    startable = [s for s in summaries if s.can_start_now and rank(s) > 0]
    startable.sort(key=lambda s: (-rank(s), s.action_id))
    switch_to = [s.action_id for s in startable[: cfg.activity_candidate_count]]

    # Consuming actions that cannot start yet pull in the producers of their inputs.
    blocked = [
        s for s in summaries
        if s.is_unlocked and not s.has_inputs and rank(s) > 0
    ]
    blocked.sort(key=lambda s: (-rank(s), s.action_id))
    for summary in blocked[: cfg.activity_candidate_count]:
        action = state.action_def(summary.action_id)
        for item_id in sorted(action.inputs):
            if state.count(item_id) >= action.inputs[item_id]:
                continue
            producer = best_producer(state, item_id)
            if producer is not None and by_id[producer.id].can_start_now:
                switch_to.append(producer.id)

    for producer_id in _consuming_goal_producers(state, goal, cfg):
        switch_to.append(producer_id)

    switch_to = [a for a in dict.fromkeys(switch_to) if a != state.active_action]

    buy, watched_upgrades = _select_upgrades(state, goal, summaries, switch_to, rank, cfg)

    locked = [s for s in summaries if not s.is_unlocked and goal.is_skill_relevant(s.skill)]
    locked.sort(key=lambda s: (s.unlock_level - state.skill_level(s.skill), s.action_id))
    locked_watch = tuple(s.action_id for s in locked[: cfg.locked_watch_count])

    consuming_watch = tuple(
        s.action_id
        for s in summaries
        if s.is_unlocked and state.action_def(s.action_id).has_inputs and goal.is_skill_relevant(s.skill)
    )

    include_sell_all = goal.is_sell_relevant and state.inventory_used_fraction > cfg.inventory_threshold
    sell_policy = goal.sell_policy(state)

    watch = WatchSet(
        locked_activity_ids=locked_watch,
        upgrade_ids=tuple(sorted(set(watched_upgrades) | set(buy))),
        consuming_activity_ids=consuming_watch,
        inventory=include_sell_all,
    )
    pending = tuple(
        u for u in watch.upgrade_ids
        if effective_credits(state, sell_policy) < state.catalog.upgrade(u).cost
    )
    return Candidates(
        switch_to_activities=tuple(switch_to),
        buy_upgrades=tuple(buy),
        include_sell_all=include_sell_all,
        sell_policy=sell_policy,
        watch=watch,
        macros=generate_macros(state, goal, pending),
    )


def _consuming_goal_producers(state: GameState, goal: Goal, config: SolverConfig) -> list[str]:
    """Top producers feeding the unlocked actions of the goal's consuming skills."""
    found: dict[str, float] = {}
    for skill in sorted(goal.consuming_skills, key=lambda s: s.value):
        for action in state.catalog.actions_for_skill(skill):
            if not state.is_unlocked(action):
                continue
            for item_id in sorted(action.inputs):
                producer = best_producer(state, item_id)
                if producer is None or not state.can_start(producer):
                    continue
                rate = producer.expected_output(item_id) / state.duration_ticks(producer)
                found[producer.id] = max(found.get(producer.id, 0.0), rate)
    ranked = sorted(found.items(), key=lambda kv: (-kv[1], kv[0]))
    return [producer_id for producer_id, _ in ranked[: config.consuming_producer_count]]


def _select_upgrades(
    state: GameState,
    goal: Goal,
    summaries: list[ActionSummary],
    candidate_ids: list[str],
    rank: Callable[[ActionSummary], float],
    config: SolverConfig,
) -> tuple[list[str], list[str]]:
    """Buy candidates and watched upgrades.

    An upgrade is watched when it speeds up some relevant candidate activity.
    It is a buy candidate only when the sped-up rate is competitive with the
    best rate available now; buy candidates are ordered by payback ticks.
    """
    considered = set(candidate_ids)
    if state.active_action is not None:
        considered.add(state.active_action)

    best_current = max((rank(s) for s in summaries if s.is_unlocked), default=0.0)

    to_watch: list[str] = []
    competitive: list[tuple[float, str]] = []
    for upgrade in sorted(state.catalog.upgrades, key=lambda u: u.id):
        if not goal.is_skill_relevant(upgrade.skill):
            continue
        if upgrade_block_reason(state, upgrade) is not None:
            continue
        affected = [
            s for s in summaries
            if s.skill == upgrade.skill and s.is_unlocked and s.action_id in considered
        ]
        base = max((rank(s) for s in affected), default=0.0)
        if base <= 0:
            continue
        improved = base / upgrade.duration_multiplier
        gain = improved - base
        if gain <= 0:
            continue
        to_watch.append(upgrade.id)
        if improved < best_current:
            continue
        competitive.append((upgrade.cost / gain, upgrade.id))

    competitive.sort()
    return [upgrade_id for _, upgrade_id in competitive[: config.upgrade_candidate_count]], to_watch


def generate_macros(state: GameState, goal: Goal, watched_upgrades: tuple[str, ...] = ()) -> tuple[MacroCandidate, ...]:
    """Training macros toward each unmet skill target of ``goal``."""
    macros: list[MacroCandidate] = []
    for skill, level in sorted(goal.skill_targets(state).items(), key=lambda kv: kv[0].value):
        relevant = tuple(u for u in watched_upgrades if state.catalog.upgrade(u).skill == skill)
        stop = StopAtNextUnlock(skill, level)
        if skill.is_consuming:
            macros.append(TrainConsumingSkillUntil(skill, stop, relevant))
            continue
        action_id = best_training_action(state, skill)
        if action_id is not None:
            macros.append(TrainSkillUntil(skill, stop, action_id, relevant))
    return tuple(macros)
