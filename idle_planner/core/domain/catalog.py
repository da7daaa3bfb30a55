"""Static game catalog: items, actions, skill drops and shop upgrades.

The catalog is the read-only registry the planner and the simulation consult
for unlock requirements, durations, input/output tables, sell prices and
upgrade effects. It is an explicit, immutable value: callers pass it around
(usually through ``GameState.catalog``) instead of reading a global registry.
"""

# pylint: disable=missing-class-docstring,missing-function-docstring
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.xp import MAX_LEVEL

DEFAULT_CATALOG_PATH: Path = Path(__file__).resolve().parent.parent / "data" / "default_catalog.json"

# ---------------------------------------------------------------------------
# Leaf definitions
# ---------------------------------------------------------------------------


class ItemDef(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    sell_price: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class OutputDef(BaseModel):
    """One row of an action's output table."""

    item: str = Field(..., min_length=1)
    quantity: int = Field(default=1, gt=0)
    probability: float = Field(default=1.0, gt=0, le=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def expected_quantity(self) -> float:
        return self.quantity * self.probability


class ThievingDef(BaseModel):
    """Hazard parameters of a thieving target."""

    perception: int = Field(..., ge=0)
    max_gold: int = Field(..., ge=1)
    max_hit: int = Field(..., ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


class ActionDef(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    skill: Skill
    unlock_level: int = Field(default=1, ge=1, le=MAX_LEVEL)
    duration_ticks: int = Field(..., gt=0)
    xp: float = Field(..., ge=0)
    mastery_xp: float = Field(default=1.0, ge=0)

    inputs: dict[str, int] = Field(default_factory=dict)
    outputs: list[OutputDef] = Field(default_factory=list)
    thieving: ThievingDef | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_shape(self) -> ActionDef:
        for item_id, quantity in self.inputs.items():
            if quantity <= 0:
                raise ValueError(f"input quantity for {item_id} must be > 0")
        if self.skill == Skill.THIEVING and self.thieving is None:
            raise ValueError("thieving actions require a thieving block")
        if self.skill != Skill.THIEVING and self.thieving is not None:
            raise ValueError("thieving block is only allowed on thieving actions")
        return self

    @property
    def has_inputs(self) -> bool:
        return bool(self.inputs)

    def produces(self, item_id: str) -> bool:
        return any(out.item == item_id for out in self.outputs)

    def expected_output(self, item_id: str) -> float:
        """Expected units of ``item_id`` per completion (action table only)."""
        return sum(out.expected_quantity for out in self.outputs if out.item == item_id)


class SkillDropDef(BaseModel):
    """A drop rolled on every completion of any action of ``skill``."""

    skill: Skill
    item: str = Field(..., min_length=1)
    quantity: int = Field(default=1, gt=0)
    probability: float = Field(..., gt=0, le=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def expected_quantity(self) -> float:
        return self.quantity * self.probability


class UpgradeDef(BaseModel):
    """A one-time shop purchase that shortens every action of one skill."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    skill: Skill
    cost: int = Field(..., gt=0)
    duration_multiplier: float = Field(..., gt=0, lt=1)
    required_level: int = Field(default=1, ge=1, le=MAX_LEVEL)
    requires: str | None = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Catalog(BaseModel):
    items: list[ItemDef]
    actions: list[ActionDef]
    upgrades: list[UpgradeDef] = Field(default_factory=list)
    skill_drops: list[SkillDropDef] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)

    _items: dict[str, ItemDef] = PrivateAttr(default_factory=dict)
    _actions: dict[str, ActionDef] = PrivateAttr(default_factory=dict)
    _upgrades: dict[str, UpgradeDef] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_json_obj(cls, catalog_obj: dict[str, Any]) -> Catalog:
        """Create a Catalog instance from a JSON-compatible object."""
        return cls.model_validate(catalog_obj)

    @model_validator(mode="after")
    def validate_references(self) -> Catalog:
        """Ids must be unique and every reference must resolve."""
        item_ids = _unique_ids("item", [i.id for i in self.items])
        _unique_ids("action", [a.id for a in self.actions])
        upgrade_ids = _unique_ids("upgrade", [u.id for u in self.upgrades])

        for action in self.actions:
            for item_id in action.inputs:
                if item_id not in item_ids:
                    raise ValueError(f"action {action.id} consumes unknown item {item_id}")
            for out in action.outputs:
                if out.item not in item_ids:
                    raise ValueError(f"action {action.id} produces unknown item {out.item}")

        for drop in self.skill_drops:
            if drop.item not in item_ids:
                raise ValueError(f"skill drop references unknown item {drop.item}")

        for upgrade in self.upgrades:
            if upgrade.requires is not None and upgrade.requires not in upgrade_ids:
                raise ValueError(f"upgrade {upgrade.id} requires unknown upgrade {upgrade.requires}")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._items = {i.id: i for i in self.items}
        self._actions = {a.id: a for a in self.actions}
        self._upgrades = {u.id: u for u in self.upgrades}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def item(self, item_id: str) -> ItemDef:
        try:
            return self._items[item_id]
        except KeyError:
            raise KeyError(f"unknown item: {item_id}") from None

    def action(self, action_id: str) -> ActionDef:
        try:
            return self._actions[action_id]
        except KeyError:
            raise KeyError(f"unknown action: {action_id}") from None

    def upgrade(self, upgrade_id: str) -> UpgradeDef:
        try:
            return self._upgrades[upgrade_id]
        except KeyError:
            raise KeyError(f"unknown upgrade: {upgrade_id}") from None

    def has_action(self, action_id: str) -> bool:
        return action_id in self._actions

    def has_upgrade(self, upgrade_id: str) -> bool:
        return upgrade_id in self._upgrades

    def sell_price(self, item_id: str) -> int:
        return self.item(item_id).sell_price

    def actions_for_skill(self, skill: Skill) -> list[ActionDef]:
        """Actions of ``skill`` ordered by unlock level, then id."""
        return sorted(
            (a for a in self.actions if a.skill == skill),
            key=lambda a: (a.unlock_level, a.id),
        )

    def producers_of(self, item_id: str) -> list[ActionDef]:
        """Actions whose output table contains ``item_id``."""
        return sorted(
            (a for a in self.actions if a.produces(item_id)),
            key=lambda a: (a.unlock_level, a.id),
        )

    def consumers_of(self, item_id: str) -> list[ActionDef]:
        return sorted(
            (a for a in self.actions if item_id in a.inputs),
            key=lambda a: (a.unlock_level, a.id),
        )

    def skill_drops_for(self, skill: Skill) -> list[SkillDropDef]:
        return [d for d in self.skill_drops if d.skill == skill]

    def upgrades_for_skill(self, skill: Skill) -> list[UpgradeDef]:
        return sorted(
            (u for u in self.upgrades if u.skill == skill),
            key=lambda u: (u.cost, u.id),
        )


def _unique_ids(kind: str, ids: list[str]) -> set[str]:
    seen: set[str] = set()
    for value in ids:
        if value in seen:
            raise ValueError(f"duplicate {kind} id: {value}")
        seen.add(value)
    return seen


def load_catalog(path: str | Path) -> Catalog:
    """Load and validate a catalog JSON file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    return Catalog.from_json_obj(json.loads(path.read_text(encoding="utf-8")))


@lru_cache(maxsize=1)
def load_default_catalog() -> Catalog:
    """Return the catalog bundled with the package."""
    return load_catalog(DEFAULT_CATALOG_PATH)
