"""Solver and segment configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SolverConfig(BaseModel):
    """Tuning knobs for the search and the candidate enumerator."""

    max_expanded_nodes: int = Field(default=200_000, ge=1)

    # Candidate enumeration
    activity_candidate_count: int = Field(default=8, ge=1)
    upgrade_candidate_count: int = Field(default=8, ge=0)
    locked_watch_count: int = Field(default=3, ge=0)
    inventory_threshold: float = Field(default=0.8, gt=0.0, le=1.0)
    consuming_producer_count: int = Field(default=2, ge=0)

    # State bucketing
    gold_bucket_size: int = Field(default=50, ge=1)
    inventory_bucket_exact_limit: int = Field(default=100, ge=1)
    inventory_bucket_size: int = Field(default=10, ge=1)

    # Macro expansion
    stock_buffer_ticks: int = Field(default=3000, ge=1)
    max_macro_depth: int = Field(default=20, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_json_obj(cls, config_obj: dict[str, Any]) -> SolverConfig:
        """Create a SolverConfig instance from a JSON-compatible object."""
        return cls.model_validate(config_obj)


class SegmentConfig(BaseModel):
    """Which boundaries end a segment, and the segment loop limits."""

    stop_at_upgrade_affordable: bool = True
    stop_at_unlock_boundary: bool = True
    stop_at_inputs_depleted: bool = True
    stop_at_inventory_pressure: bool = False
    inventory_pressure_threshold: float = Field(default=0.9, gt=0.0, le=1.0)
    max_segment_ticks: int | None = Field(default=None, ge=1)
    max_segments: int = Field(default=100, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_json_obj(cls, config_obj: dict[str, Any]) -> SegmentConfig:
        """Create a SegmentConfig instance from a JSON-compatible object."""
        return cls.model_validate(config_obj)


DEFAULT_SOLVER_CONFIG = SolverConfig()
DEFAULT_SEGMENT_CONFIG = SegmentConfig()
