"""Immutable game-state snapshot.

Every transition (interaction, expected-value projection, real execution)
returns a new ``GameState``; maps are copied on write and never mutated in
place. Counts and experience are floats so the expected-value projection can
carry fractional progress; the real simulation only ever stores whole numbers.
"""

# pylint: disable=too-many-instance-attributes,too-many-public-methods
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Annotated, Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from idle_planner.core.domain.mechanics import (
    DEFAULT_INVENTORY_SLOTS,
    MAX_HP,
    action_duration_ticks,
)
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.xp import MAX_LEVEL, level_for_xp, start_xp_for_level

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import ActionDef, Catalog

# Counts below this are treated as absent.
COUNT_EPSILON: float = 1e-9


class StateConfig(BaseModel):
    """JSON-facing description of a starting state."""

    gp: float = Field(default=0.0, ge=0)
    skill_levels: dict[Skill, Annotated[int, Field(ge=1, le=MAX_LEVEL)]] = Field(default_factory=dict)
    inventory: dict[str, Annotated[int, Field(ge=0)]] = Field(default_factory=dict)
    upgrades: list[str] = Field(default_factory=list)
    active_action: str | None = Field(default=None, min_length=1)
    inventory_slots: int = Field(default=DEFAULT_INVENTORY_SLOTS, gt=0)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_json_obj(cls, state_obj: dict[str, Any]) -> StateConfig:
        return cls.model_validate(state_obj)


@dataclass(frozen=True, slots=True)
class GameState:
    """Snapshot of the simulated world."""

    catalog: Catalog = field(compare=False, repr=False)

    gp: float = 0.0
    inventory: Mapping[str, float] = field(default_factory=dict)
    skill_xp: Mapping[Skill, float] = field(default_factory=dict)
    mastery_xp: Mapping[str, float] = field(default_factory=dict)
    upgrades: frozenset[str] = frozenset()

    active_action: str | None = None
    # Ticks spent on the current completion; only the real simulation uses it.
    action_progress: int = 0

    hp: float = float(MAX_HP)
    stun_ticks: int = 0
    inventory_slots: int = DEFAULT_INVENTORY_SLOTS

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(cls, catalog: Catalog, *, gp: float = 0.0, inventory_slots: int = DEFAULT_INVENTORY_SLOTS) -> GameState:
        """A fresh player: level 1 everywhere, empty inventory, idle."""
        return cls(catalog=catalog, gp=gp, inventory_slots=inventory_slots)

    @classmethod
    def from_config(cls, catalog: Catalog, config: StateConfig) -> GameState:
        for item_id in config.inventory:
            catalog.item(item_id)
        for upgrade_id in config.upgrades:
            catalog.upgrade(upgrade_id)
        if config.active_action is not None:
            catalog.action(config.active_action)

        skill_xp: dict[Skill, float] = {}
        for skill, level in config.skill_levels.items():
            if not 1 <= level <= MAX_LEVEL:
                raise ValueError(f"skill level for {skill} must be within 1..{MAX_LEVEL}")
            if level > 1:
                skill_xp[skill] = float(start_xp_for_level(level))

        return cls(
            catalog=catalog,
            gp=float(config.gp),
            inventory={k: float(v) for k, v in config.inventory.items() if v > 0},
            skill_xp=skill_xp,
            upgrades=frozenset(config.upgrades),
            active_action=config.active_action,
            inventory_slots=config.inventory_slots,
        )

    @classmethod
    def from_json_obj(cls, catalog: Catalog, state_obj: dict[str, Any]) -> GameState:
        """Create a GameState from a JSON-compatible StateConfig object."""
        return cls.from_config(catalog, StateConfig.from_json_obj(state_obj))

    def evolve(self, **changes: Any) -> GameState:
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Skills and mastery
    # ------------------------------------------------------------------

    def xp(self, skill: Skill) -> float:
        return self.skill_xp.get(skill, 0.0)

    def skill_level(self, skill: Skill) -> int:
        return level_for_xp(self.xp(skill))

    def mastery(self, action_id: str) -> float:
        return self.mastery_xp.get(action_id, 0.0)

    def mastery_level(self, action_id: str) -> int:
        return level_for_xp(self.mastery(action_id))

    def with_xp(self, skill: Skill, amount: float) -> GameState:
        if amount <= 0:
            return self
        skill_xp = dict(self.skill_xp)
        skill_xp[skill] = skill_xp.get(skill, 0.0) + amount
        return replace(self, skill_xp=skill_xp)

    def with_mastery(self, action_id: str, amount: float) -> GameState:
        if amount <= 0:
            return self
        mastery_xp = dict(self.mastery_xp)
        mastery_xp[action_id] = mastery_xp.get(action_id, 0.0) + amount
        return replace(self, mastery_xp=mastery_xp)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def count(self, item_id: str) -> float:
        return self.inventory.get(item_id, 0.0)

    @property
    def inventory_used(self) -> int:
        """Number of occupied slots (one per distinct item type)."""
        return sum(1 for value in self.inventory.values() if value > COUNT_EPSILON)

    @property
    def free_slots(self) -> int:
        return max(0, self.inventory_slots - self.inventory_used)

    @property
    def inventory_used_fraction(self) -> float:
        if self.inventory_slots <= 0:
            return 0.0
        return self.inventory_used / self.inventory_slots

    def with_items(self, delta: Mapping[str, float]) -> GameState:
        """Return a state with ``delta`` added to (or removed from) the inventory."""
        if not delta:
            return self
        inventory = dict(self.inventory)
        for item_id, amount in delta.items():
            value = inventory.get(item_id, 0.0) + amount
            if value > COUNT_EPSILON:
                inventory[item_id] = value
            else:
                inventory.pop(item_id, None)
        return replace(self, inventory=inventory)

    def sell_value(self, keep: frozenset[str] = frozenset()) -> float:
        """GP obtained by selling every stack not listed in ``keep``."""
        total = 0.0
        for item_id, value in self.inventory.items():
            if item_id in keep:
                continue
            total += value * self.catalog.sell_price(item_id)
        return total

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_def(self, action_id: str) -> ActionDef:
        return self.catalog.action(action_id)

    def is_unlocked(self, action: ActionDef) -> bool:
        return self.skill_level(action.skill) >= action.unlock_level

    def has_inputs_for(self, action: ActionDef, completions: int = 1) -> bool:
        return all(
            self.count(item_id) + COUNT_EPSILON >= quantity * completions
            for item_id, quantity in action.inputs.items()
        )

    def can_start(self, action: ActionDef) -> bool:
        return self.is_unlocked(action) and self.has_inputs_for(action)

    def duration_ticks(self, action: ActionDef) -> int:
        return action_duration_ticks(self.catalog, self.upgrades, action)

    def owns(self, upgrade_id: str) -> bool:
        return upgrade_id in self.upgrades

    @property
    def is_stunned(self) -> bool:
        return self.stun_ticks > 0
