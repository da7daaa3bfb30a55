"""Value models fold a rate vector into one scalar value per tick.

The scalar ranks candidate activities and feeds the search heuristic for
currency goals. It must be monotone in every flow: more of anything valuable
never lowers the score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from idle_planner.core.domain.state import GameState
    from idle_planner.solver.rates import Rates


class ValueModel(Protocol):
    def value_per_tick(self, state: GameState, rates: Rates) -> float:
        """Scalar value of ``rates`` in ``state``."""

    def item_value(self, state: GameState, item_id: str) -> float:
        """Value of one unit of ``item_id``."""


@dataclass(frozen=True, slots=True)
class SellEverythingForGpValueModel:
    """Values every produced item at its catalog sell price."""

    def item_value(self, state: GameState, item_id: str) -> float:
        return float(state.catalog.sell_price(item_id))

    def value_per_tick(self, state: GameState, rates: Rates) -> float:
        value = rates.direct_gp_per_tick
        for item_id, flow in sorted(rates.item_flows_per_tick.items()):
            value += flow * self.item_value(state, item_id)
        return value

    def net_value_per_tick(self, state: GameState, rates: Rates) -> float:
        """Value per tick after paying for consumed inputs at their sell price."""
        cost = sum(
            flow * self.item_value(state, item_id)
            for item_id, flow in sorted(rates.items_consumed_per_tick.items())
        )
        return self.value_per_tick(state, rates) - cost


DEFAULT_VALUE_MODEL = SellEverythingForGpValueModel()
