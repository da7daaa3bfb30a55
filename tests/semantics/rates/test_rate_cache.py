"""
Semantic test: memoized rate estimates.

Invariant:
A cache hit returns the same Rates an uncached estimate computes. Entries are
keyed on the action, its skill and mastery levels and the upgrades, so a
change in any of them misses. Entries never cross catalogs, and the cache
stays within its entry bound.
"""

from __future__ import annotations

import pytest

from idle_planner.core.domain.catalog import load_default_catalog
from idle_planner.core.domain.skills import Skill
from idle_planner.core.domain.state import GameState, StateConfig
from idle_planner.core.domain.xp import start_xp_for_level
from idle_planner.solver.rate_cache import RateCache
from idle_planner.solver.rates import compute_rates_for_action, estimate_rates_for_action


def test_hit_returns_the_computed_rates() -> None:
    cache = RateCache(compute_rates_for_action)
    state = GameState.new(load_default_catalog())

    first = cache.rates_for(state, "normal_tree")
    second = cache.rates_for(state.evolve(gp=500.0), "normal_tree")

    assert second is first
    assert first == compute_rates_for_action(state, "normal_tree")
    assert (cache.hits, cache.misses) == (1, 1)


def test_shared_cache_agrees_with_uncached_estimate() -> None:
    state = GameState.from_config(load_default_catalog(), StateConfig(skill_levels={Skill.THIEVING: 20}))

    assert estimate_rates_for_action(state, "pickpocket_man") == compute_rates_for_action(state, "pickpocket_man")


def test_mastery_level_change_misses() -> None:
    cache = RateCache(compute_rates_for_action)
    state = GameState.new(load_default_catalog())
    mastered = state.with_mastery("pickpocket_man", start_xp_for_level(30))

    novice = cache.rates_for(state, "pickpocket_man")
    expert = cache.rates_for(mastered, "pickpocket_man")

    assert cache.misses == 2
    assert expert.direct_gp_per_tick > novice.direct_gp_per_tick


def test_upgrade_change_misses() -> None:
    cache = RateCache(compute_rates_for_action)
    catalog = load_default_catalog()
    state = GameState.new(catalog)
    upgraded = GameState.from_config(catalog, StateConfig(upgrades=["iron_axe"]))

    base = cache.rates_for(state, "normal_tree")
    faster = cache.rates_for(upgraded, "normal_tree")

    assert cache.misses == 2
    assert faster.xp_per_tick(Skill.WOODCUTTING) > base.xp_per_tick(Skill.WOODCUTTING)


def test_entries_do_not_cross_catalogs() -> None:
    cache = RateCache(compute_rates_for_action)
    catalog = load_default_catalog()
    other = catalog.model_copy()

    cache.rates_for(GameState.new(catalog), "normal_tree")
    cache.rates_for(GameState.new(other), "normal_tree")

    assert cache.misses == 2


def test_least_recently_used_entry_is_evicted() -> None:
    cache = RateCache(compute_rates_for_action, max_entries=2)
    state = GameState.new(load_default_catalog())

    cache.rates_for(state, "normal_tree")
    cache.rates_for(state, "copper_rock")
    cache.rates_for(state, "normal_tree")
    cache.rates_for(state, "shrimp_spot")
    cache.rates_for(state, "normal_tree")

    assert len(cache) == 2
    assert cache.hits == 2
    cache.rates_for(state, "copper_rock")
    assert cache.misses == 4


def test_rejects_non_positive_bound() -> None:
    with pytest.raises(ValueError):
        RateCache(compute_rates_for_action, max_entries=0)
