"""Planner goals.

A goal is a pure predicate over ``GameState`` plus a distance function used to
order the search. The search only talks to the ``Goal`` interface, so new
variants plug in without touching it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from idle_planner.core.domain.interactions import (
    SellAllPolicy,
    SellExceptPolicy,
    effective_credits,
)
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.xp import MAX_LEVEL, start_xp_for_level
from idle_planner.solver.value_model import DEFAULT_VALUE_MODEL

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import Catalog
    from idle_planner.core.domain.interactions import SellPolicy
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.rates import Rates

# Projected floats may land a hair short of an exact target.
GOAL_EPSILON: float = 1e-6


class Goal(ABC):
    """Common interface of every goal variant."""

    __slots__ = ()

    @abstractmethod
    def is_satisfied(self, state: GameState) -> bool:
        """True once ``state`` meets the goal."""

    @abstractmethod
    def remaining(self, state: GameState) -> float:
        """Distance to the goal in goal units (gp or xp); 0 when satisfied."""

    @abstractmethod
    def progress(self, state: GameState) -> float:
        """Monotone progress measure used for dominance pruning."""

    @abstractmethod
    def progress_per_tick(self, state: GameState, rates: Rates) -> float:
        """Goal units gained per tick under ``rates``."""

    @abstractmethod
    def activity_rate(self, skill: Skill, gold_rate: float, xp_rate: float) -> float:
        """Rank an activity of ``skill`` by how fast it advances this goal."""

    @abstractmethod
    def is_skill_relevant(self, skill: Skill) -> bool: ...

    @property
    @abstractmethod
    def relevant_skills(self) -> frozenset[Skill]: ...

    @abstractmethod
    def describe(self) -> str: ...

    @property
    def consuming_skills(self) -> frozenset[Skill]:
        return frozenset(s for s in self.relevant_skills if s.is_consuming)

    @property
    def bucket_skills(self) -> frozenset[Skill]:
        """Skills whose levels distinguish search states for this goal."""
        return self.relevant_skills

    @property
    def is_sell_relevant(self) -> bool:
        """Whether converting items to gp moves this goal forward."""
        return False

    def sell_policy(self, state: GameState) -> SellPolicy:
        """Keep every item the goal's consuming chains still need."""
        keep = consuming_chain_inputs(state.catalog, self.consuming_skills)
        return SellExceptPolicy(keep=keep) if keep else SellAllPolicy()

    def progress_heuristic(self, state: GameState) -> float:
        return self.remaining(state)

    def is_satisfied_at(self, state: GameState, elapsed_ticks: int) -> bool:
        return self.is_satisfied(state)

    def ticks_until_stop(self, state: GameState, elapsed_ticks: int) -> int | None:
        """Extra time cap imposed by the goal itself (segment horizons)."""
        return None

    def skill_targets(self, state: GameState) -> dict[Skill, int]:
        """Unmet skill-level targets; macros are generated from these."""
        return {}

    def needs_final_sell(self, state: GameState) -> bool:
        """Whether a satisfied ``state`` still has to sell items to hold the goal in gp."""
        return False


def consuming_chain_inputs(catalog: Catalog, skills: frozenset[Skill]) -> frozenset[str]:
    """Items consumed by ``skills``, including inputs of same-skill intermediates."""
    keep: set[str] = set()
    pending: list[str] = []
    for skill in sorted(skills, key=lambda s: s.value):
        for action in catalog.actions_for_skill(skill):
            pending.extend(action.inputs)
    while pending:
        item_id = pending.pop()
        if item_id in keep:
            continue
        keep.add(item_id)
        for producer in catalog.producers_of(item_id):
            if producer.skill in skills:
                pending.extend(producer.inputs)
    return frozenset(keep)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReachGpGoal(Goal):
    """Reach ``target`` effective credits (gp plus sell value of the inventory)."""

    target: float

    def __post_init__(self) -> None:
        if self.target <= 0:
            raise ValueError("target must be > 0")

    def is_satisfied(self, state: GameState) -> bool:
        return effective_credits(state) >= self.target - GOAL_EPSILON

    def remaining(self, state: GameState) -> float:
        return max(0.0, self.target - effective_credits(state))

    def progress(self, state: GameState) -> float:
        return effective_credits(state)

    def progress_per_tick(self, state: GameState, rates: Rates) -> float:
        return DEFAULT_VALUE_MODEL.net_value_per_tick(state, rates)

    def activity_rate(self, skill: Skill, gold_rate: float, xp_rate: float) -> float:
        return gold_rate

    def is_skill_relevant(self, skill: Skill) -> bool:
        return True

    @property
    def relevant_skills(self) -> frozenset[Skill]:
        return frozenset(Skill)

    @property
    def consuming_skills(self) -> frozenset[Skill]:
        return frozenset()

    @property
    def bucket_skills(self) -> frozenset[Skill]:
        return frozenset()

    @property
    def is_sell_relevant(self) -> bool:
        return True

    def sell_policy(self, state: GameState) -> SellPolicy:
        return SellAllPolicy()

    def needs_final_sell(self, state: GameState) -> bool:
        return state.gp < self.target - GOAL_EPSILON

    def describe(self) -> str:
        return f"Reach {self.target:g} GP"


@dataclass(frozen=True, slots=True)
class ReachSkillLevelGoal(Goal):
    skill: Skill
    level: int

    def __post_init__(self) -> None:
        if not 1 <= self.level <= MAX_LEVEL:
            raise ValueError(f"level must be within 1..{MAX_LEVEL}")

    @property
    def target_xp(self) -> int:
        return start_xp_for_level(self.level)

    def is_satisfied(self, state: GameState) -> bool:
        return state.xp(self.skill) >= self.target_xp - GOAL_EPSILON

    def remaining(self, state: GameState) -> float:
        return max(0.0, self.target_xp - state.xp(self.skill))

    def progress(self, state: GameState) -> float:
        return state.xp(self.skill)

    def progress_per_tick(self, state: GameState, rates: Rates) -> float:
        return rates.xp_per_tick(self.skill)

    def activity_rate(self, skill: Skill, gold_rate: float, xp_rate: float) -> float:
        return xp_rate if skill == self.skill else 0.0

    def is_skill_relevant(self, skill: Skill) -> bool:
        return skill == self.skill

    @property
    def relevant_skills(self) -> frozenset[Skill]:
        return frozenset({self.skill})

    def skill_targets(self, state: GameState) -> dict[Skill, int]:
        return {} if self.is_satisfied(state) else {self.skill: self.level}

    def describe(self) -> str:
        return f"Reach {self.skill} level {self.level}"


@dataclass(frozen=True, slots=True)
class MultiSkillGoal(Goal):
    """Every sub-goal must be met; progress is summed across them."""

    subgoals: tuple[ReachSkillLevelGoal, ...]

    def __post_init__(self) -> None:
        if not self.subgoals:
            raise ValueError("subgoals must be non-empty")
        skills = [g.skill for g in self.subgoals]
        if len(set(skills)) != len(skills):
            raise ValueError("subgoals must target distinct skills")

    @classmethod
    def of(cls, levels: dict[Skill, int]) -> MultiSkillGoal:
        return cls(
            subgoals=tuple(
                ReachSkillLevelGoal(skill, level)
                for skill, level in sorted(levels.items(), key=lambda kv: kv[0].value)
            )
        )

    def unsatisfied(self, state: GameState) -> list[ReachSkillLevelGoal]:
        return [g for g in self.subgoals if not g.is_satisfied(state)]

    def is_satisfied(self, state: GameState) -> bool:
        return all(g.is_satisfied(state) for g in self.subgoals)

    def remaining(self, state: GameState) -> float:
        return sum(g.remaining(state) for g in self.subgoals)

    def progress(self, state: GameState) -> float:
        return sum(min(g.progress(state), g.target_xp) for g in self.subgoals)

    def progress_per_tick(self, state: GameState, rates: Rates) -> float:
        return sum(g.progress_per_tick(state, rates) for g in self.unsatisfied(state))

    def activity_rate(self, skill: Skill, gold_rate: float, xp_rate: float) -> float:
        return xp_rate if self.is_skill_relevant(skill) else 0.0

    def is_skill_relevant(self, skill: Skill) -> bool:
        return any(g.skill == skill for g in self.subgoals)

    @property
    def relevant_skills(self) -> frozenset[Skill]:
        return frozenset(g.skill for g in self.subgoals)

    def skill_targets(self, state: GameState) -> dict[Skill, int]:
        return {g.skill: g.level for g in self.unsatisfied(state)}

    def describe(self) -> str:
        return "; ".join(g.describe() for g in self.subgoals)
