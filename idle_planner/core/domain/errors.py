"""Domain errors raised when an interaction cannot be applied to a state.

These are hard validation errors: the planner only constructs interactions it
has already checked, so hitting one of these from planner code is a bug and is
never clamped or silently ignored.
"""

from __future__ import annotations


class InteractionError(Exception):
    """Base class for invalid interactions."""


class UnknownIdError(InteractionError):
    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"unknown {kind}: {ident}")
        self.kind = kind
        self.ident = ident


class InsufficientFundsError(InteractionError):
    def __init__(self, upgrade_id: str, cost: float, available: float) -> None:
        super().__init__(
            f"cannot afford {upgrade_id}: costs {cost:g} gp, have {available:g} gp"
        )
        self.upgrade_id = upgrade_id
        self.cost = cost
        self.available = available


class ActionLockedError(InteractionError):
    def __init__(self, action_id: str, required_level: int, current_level: int) -> None:
        super().__init__(
            f"{action_id} requires level {required_level} (current {current_level})"
        )
        self.action_id = action_id
        self.required_level = required_level
        self.current_level = current_level


class MissingInputsError(InteractionError):
    def __init__(self, action_id: str, item_id: str, needed: int, available: float) -> None:
        super().__init__(
            f"{action_id} needs {needed} x {item_id}, have {available:g}"
        )
        self.action_id = action_id
        self.item_id = item_id
        self.needed = needed
        self.available = available


class UpgradeUnavailableError(InteractionError):
    def __init__(self, upgrade_id: str, reason: str) -> None:
        super().__init__(f"{upgrade_id} unavailable: {reason}")
        self.upgrade_id = upgrade_id
        self.reason = reason
