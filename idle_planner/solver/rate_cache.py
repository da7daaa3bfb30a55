"""
Memoized per-action rate estimates.

A rate estimate for one action reads only the catalog, the action's skill
level, its mastery level and the purchased upgrades. Search nodes share those
inputs far more often than they share a full state, so candidate enumeration,
the search heuristic and macro planning look rates up here instead of
recomputing them at every node.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, Hashable

if TYPE_CHECKING:
    from idle_planner.core.domain.catalog import Catalog
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.rates import Rates

DEFAULT_MAX_ENTRIES = 4096


def rate_key(state: GameState, action_id: str) -> tuple[Hashable, ...]:
    """Everything ``estimate_rates_for_action`` reads besides the catalog."""
    action = state.action_def(action_id)
    return (
        action_id,
        state.skill_level(action.skill),
        state.mastery_level(action_id),
        state.upgrades,
    )


class RateCache:
    """
    Bounded LRU cache of per-action ``Rates``.

    Entries remember the catalog they were computed for, so a cache shared
    between catalogs never returns another catalog's rates.
    """

    def __init__(
        self,
        compute: Callable[[GameState, str], Rates],
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._compute = compute
        self._max_entries = max_entries
        self._entries: OrderedDict[tuple[Hashable, ...], tuple[Catalog, Rates]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def rates_for(self, state: GameState, action_id: str) -> Rates:
        key = (id(state.catalog),) + rate_key(state, action_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] is state.catalog:
                self._entries.move_to_end(key)
                self.hits += 1
                return entry[1]

        rates = self._compute(state, action_id)
        with self._lock:
            self.misses += 1
            self._entries[key] = (state.catalog, rates)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
        return rates

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
