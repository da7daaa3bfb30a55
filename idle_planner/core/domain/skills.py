"""Skill identifiers shared by the catalog, the simulation and the planner."""

from __future__ import annotations

from enum import Enum


class Skill(str, Enum):
    WOODCUTTING = "woodcutting"
    FISHING = "fishing"
    MINING = "mining"
    SMITHING = "smithing"
    FIREMAKING = "firemaking"
    THIEVING = "thieving"

    @property
    def is_consuming(self) -> bool:
        """True for skills whose actions burn input items."""
        return self in _CONSUMING_SKILLS

    def __str__(self) -> str:
        return self.value


_CONSUMING_SKILLS: frozenset[Skill] = frozenset({Skill.SMITHING, Skill.FIREMAKING})
