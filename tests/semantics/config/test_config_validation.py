"""
Semantic test: configuration validation.

Invariant:
Solver and segment configurations reject unknown keys and out-of-range
values at construction, and are immutable once built.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from idle_planner.solver.config import SegmentConfig, SolverConfig


def test_defaults() -> None:
    solver = SolverConfig()
    segment = SegmentConfig()

    assert solver.max_expanded_nodes == 200_000
    assert solver.gold_bucket_size == 50
    assert segment.stop_at_upgrade_affordable
    assert segment.stop_at_unlock_boundary
    assert segment.stop_at_inputs_depleted
    assert not segment.stop_at_inventory_pressure
    assert segment.max_segment_ticks is None


def test_from_json_obj_applies_overrides() -> None:
    config = SegmentConfig.from_json_obj({"max_segment_ticks": 600, "stop_at_inventory_pressure": True})

    assert config.max_segment_ticks == 600
    assert config.stop_at_inventory_pressure


@pytest.mark.parametrize(
    "overrides",
    [
        {"unknown": 1},
        {"max_expanded_nodes": 0},
        {"inventory_threshold": 0.0},
        {"inventory_threshold": 1.1},
        {"max_macro_depth": 0},
    ],
)
def test_solver_config_rejects_invalid(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        SolverConfig.from_json_obj(overrides)


@pytest.mark.parametrize(
    "overrides",
    [
        {"unknown": True},
        {"max_segment_ticks": 0},
        {"max_segments": 0},
        {"inventory_pressure_threshold": 0.0},
    ],
)
def test_segment_config_rejects_invalid(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        SegmentConfig.from_json_obj(overrides)


def test_configs_are_frozen() -> None:
    config = SolverConfig()

    with pytest.raises(ValidationError):
        config.max_expanded_nodes = 5
