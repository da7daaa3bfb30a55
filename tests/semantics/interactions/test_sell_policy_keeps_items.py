"""
Semantic test: selling respects the sell policy.

Invariant:
SellItems converts every non-kept item to gp at its catalog price and leaves
kept items untouched; effective credits equal gp plus that sell value.
"""

from __future__ import annotations

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.interactions import (
    SellAllPolicy,
    SellExceptPolicy,
    SellItems,
    apply_interaction,
    effective_credits,
)
from idle_planner.core.domain.state import GameState


def _state() -> GameState:
    state = GameState.new(load_default_catalog(), gp=5.0)
    return state.with_items({"normal_logs": 10.0, "copper_ore": 4.0})


def test_sell_all_converts_everything() -> None:
    state = _state()
    assert effective_credits(state, SellAllPolicy()) == 5.0 + 10 * 1 + 4 * 2

    sold = apply_interaction(state, SellItems(SellAllPolicy()))

    assert sold.gp == 23.0
    assert sold.inventory_used == 0


def test_sell_except_keeps_listed_items() -> None:
    state = _state()
    policy = SellExceptPolicy(keep=frozenset({"copper_ore"}))

    sold = apply_interaction(state, SellItems(policy))

    assert sold.gp == 15.0
    assert sold.count("copper_ore") == 4.0
    assert sold.count("normal_logs") == 0.0
    assert effective_credits(state, policy) == 15.0
