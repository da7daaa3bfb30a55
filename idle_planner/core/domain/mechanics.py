"""Game mechanics shared by the real simulation and the rate estimator.

Both sides must agree on durations and thieving odds, otherwise the
expected-value projection drifts from real execution.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import ActionDef, Catalog
    from idle_planner.core.domain.skills import Skill

MAX_HP: int = 100
STUN_TICKS: int = 30
BASE_STEALTH: int = 40
DEFAULT_INVENTORY_SLOTS: int = 20


def duration_multiplier(catalog: Catalog, purchased: Iterable[str], skill: Skill) -> float:
    """Product of the duration multipliers of purchased upgrades for ``skill``."""
    multiplier = 1.0
    for upgrade_id in sorted(purchased):
        upgrade = catalog.upgrade(upgrade_id)
        if upgrade.skill == skill:
            multiplier *= upgrade.duration_multiplier
    return multiplier


def action_duration_ticks(catalog: Catalog, purchased: Iterable[str], action: ActionDef) -> int:
    """Whole-tick duration of one completion of ``action`` with upgrades applied."""
    return max(1, round(action.duration_ticks * duration_multiplier(catalog, purchased, action.skill)))


def stealth(thieving_level: int, mastery_level: int) -> int:
    return BASE_STEALTH + thieving_level + mastery_level


def thieving_success_chance(stealth_value: int, perception: int) -> float:
    chance = (100.0 + stealth_value) / (100.0 + perception)
    return max(0.0, min(1.0, chance))
