"""Instantaneous player interactions and their pure application."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Union

from idle_planner.core.domain.errors import (
    ActionLockedError,
    InsufficientFundsError,
    MissingInputsError,
    UnknownIdError,
    UpgradeUnavailableError,
)
from idle_planner.core.domain.state import COUNT_EPSILON

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import UpgradeDef
    from idle_planner.core.domain.state import GameState


# ---------------------------------------------------------------------------
# Sell policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SellAllPolicy:
    """Sell every stack."""

    @property
    def keep(self) -> frozenset[str]:
        return frozenset()

    def describe(self) -> str:
        return "sell all"


@dataclass(frozen=True, slots=True)
class SellExceptPolicy:
    """Sell everything except ``keep`` (inputs the goal still needs)."""

    keep: frozenset[str]

    def describe(self) -> str:
        if not self.keep:
            return "sell all"
        return "sell all except " + ", ".join(sorted(self.keep))


SellPolicy = Union[SellAllPolicy, SellExceptPolicy]


def effective_credits(state: GameState, policy: SellPolicy | None = None) -> float:
    """GP available after selling everything ``policy`` allows."""
    keep = policy.keep if policy is not None else frozenset()
    return state.gp + state.sell_value(keep)


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SwitchActivity:
    action_id: str

    def describe(self) -> str:
        return f"Switch to {self.action_id}"


@dataclass(frozen=True, slots=True)
class BuyUpgrade:
    upgrade_id: str

    def describe(self) -> str:
        return f"Buy {self.upgrade_id}"


@dataclass(frozen=True, slots=True)
class SellItems:
    policy: SellPolicy = SellAllPolicy()

    def describe(self) -> str:
        return f"Sell ({self.policy.describe()})"


Interaction = Union[SwitchActivity, BuyUpgrade, SellItems]


def upgrade_block_reason(state: GameState, upgrade: UpgradeDef) -> str | None:
    """Why ``upgrade`` cannot be bought right now, ignoring price; None if it can."""
    if state.owns(upgrade.id):
        return "already purchased"
    if upgrade.requires is not None and not state.owns(upgrade.requires):
        return f"requires {upgrade.requires}"
    level = state.skill_level(upgrade.skill)
    if level < upgrade.required_level:
        return f"requires {upgrade.skill} level {upgrade.required_level} (current {level})"
    return None


def apply_interaction(state: GameState, interaction: Interaction) -> GameState:
    """Apply ``interaction`` and return the new state.

    Raises an ``InteractionError`` subclass when the interaction is invalid for
    ``state``; nothing is clamped.
    """
    if isinstance(interaction, SwitchActivity):
        return _switch_activity(state, interaction.action_id)
    if isinstance(interaction, BuyUpgrade):
        return _buy_upgrade(state, interaction.upgrade_id)
    if isinstance(interaction, SellItems):
        return _sell_items(state, interaction.policy)
    raise TypeError(f"unsupported interaction: {interaction!r}")


def _switch_activity(state: GameState, action_id: str) -> GameState:
    if not state.catalog.has_action(action_id):
        raise UnknownIdError("action", action_id)
    action = state.catalog.action(action_id)

    level = state.skill_level(action.skill)
    if level < action.unlock_level:
        raise ActionLockedError(action_id, action.unlock_level, level)
    for item_id, quantity in sorted(action.inputs.items()):
        if state.count(item_id) + COUNT_EPSILON < quantity:
            raise MissingInputsError(action_id, item_id, quantity, state.count(item_id))

    if state.active_action == action_id:
        return state
    return replace(state, active_action=action_id, action_progress=0)


def _buy_upgrade(state: GameState, upgrade_id: str) -> GameState:
    if not state.catalog.has_upgrade(upgrade_id):
        raise UnknownIdError("upgrade", upgrade_id)
    upgrade = state.catalog.upgrade(upgrade_id)

    reason = upgrade_block_reason(state, upgrade)
    if reason is not None:
        raise UpgradeUnavailableError(upgrade_id, reason)
    if state.gp + COUNT_EPSILON < upgrade.cost:
        raise InsufficientFundsError(upgrade_id, upgrade.cost, state.gp)

    return replace(
        state,
        gp=max(0.0, state.gp - upgrade.cost),
        upgrades=state.upgrades | {upgrade_id},
    )


def _sell_items(state: GameState, policy: SellPolicy) -> GameState:
    keep = policy.keep
    proceeds = state.sell_value(keep)
    inventory = {k: v for k, v in state.inventory.items() if k in keep}
    return replace(state, gp=state.gp + proceeds, inventory=inventory)
