"""Schema conformance tests for the JSON-facing Pydantic models.

This test suite validates that the catalog, starting-state and solver
configuration models both accept valid inputs and reject invalid ones in
strict alignment with their corresponding JSON Schemas. The tests are
intentionally verbose and repetitive to ensure full coverage and explicit
failure modes.
"""

# pylint: disable=line-too-long,missing-function-docstring
# pylint: disable=redefined-outer-name,global-statement
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from jsonschema import ValidationError as JsonSchemaValidationError
from jsonschema import validate as jsonschema_validate
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from idle_planner.core.domain.catalog import DEFAULT_CATALOG_PATH, Catalog
from idle_planner.core.domain.state import StateConfig
from idle_planner.solver.config import SolverConfig

SCHEMA_REGISTRY = Registry()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def load_schema(name: str) -> dict:
    """
    Load JSON schema from project root.
    """
    global SCHEMA_REGISTRY

    root = Path(__file__).parent.parent.parent.parent
    schema_path = root / "idle_planner" / "core" / "schemas" / name

    with schema_path.open("r", encoding="utf-8") as f:
        schema = json.load(f)

    schema_id = schema.get("$id")
    if isinstance(schema_id, str) and schema_id:
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        SCHEMA_REGISTRY = SCHEMA_REGISTRY.with_resource(schema_id, resource)

    return schema


def dump_for_jsonschema(model: Any) -> dict:
    """
    Dump a Pydantic model to a JSON-compatible dict for schema validation.
    Excludes None values so optional fields are omitted instead of null.
    """
    return model.model_dump(mode="json", exclude_none=True)


def pydantic_validate(model_type: Any, data: dict[str, Any]) -> Any:
    adapter = TypeAdapter(model_type)
    return adapter.validate_python(data)


def assert_pydantic_then_schema_ok(model_type: Any, data: dict[str, Any], schema: dict[str, Any]) -> dict:
    """
    Validate with Pydantic first, then validate the dumped instance with JSON Schema.
    Returns the dumped instance.
    """
    obj = pydantic_validate(model_type, data)
    instance = dump_for_jsonschema(obj)
    jsonschema_validate(instance=instance, schema=schema, registry=SCHEMA_REGISTRY)
    return instance


def assert_schema_invalid_but_pydantic_rejects(model_type: Any, data: dict[str, Any], schema: dict[str, Any]):
    """
    Ensures Pydantic is at least as strict as the JSON Schema for the given input.
    If schema rejects, Pydantic must reject too (otherwise model is too lax).
    """
    with pytest.raises(JsonSchemaValidationError):
        jsonschema_validate(instance=data, schema=schema, registry=SCHEMA_REGISTRY)

    with pytest.raises(PydanticValidationError):
        pydantic_validate(model_type, data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module", autouse=True)
def _load_common_schema() -> None:
    load_schema("common.schema.json")


@pytest.fixture(scope="module")
def catalog_schema() -> dict:
    return load_schema("catalog.schema.json")


@pytest.fixture(scope="module")
def state_schema() -> dict:
    return load_schema("state.schema.json")


@pytest.fixture(scope="module")
def solver_config_schema() -> dict:
    return load_schema("solver_config.schema.json")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def make_catalog(**action_overrides) -> dict[str, Any]:
    action: dict[str, Any] = {
        "id": "normal_tree",
        "name": "Cut Normal Tree",
        "skill": "woodcutting",
        "duration_ticks": 30,
        "xp": 10,
        "outputs": [{"item": "normal_logs"}],
    }
    action.update(action_overrides)
    return {
        "items": [{"id": "normal_logs", "name": "Normal Logs", "sell_price": 1}],
        "actions": [action],
        "upgrades": [
            {"id": "iron_axe", "name": "Iron Axe", "skill": "woodcutting", "cost": 50, "duration_multiplier": 0.95},
        ],
    }


def make_thieving_action(**overrides) -> dict[str, Any]:
    action: dict[str, Any] = {
        "id": "pickpocket_man",
        "name": "Pickpocket Man",
        "skill": "thieving",
        "duration_ticks": 30,
        "xp": 5,
        "thieving": {"perception": 110, "max_gold": 100, "max_hit": 22},
    }
    action.update(overrides)
    return action


def test_default_catalog_conforms(catalog_schema):
    data = json.loads(DEFAULT_CATALOG_PATH.read_text(encoding="utf-8"))
    jsonschema_validate(instance=data, schema=catalog_schema, registry=SCHEMA_REGISTRY)
    assert_pydantic_then_schema_ok(Catalog, data, catalog_schema)


def test_catalog_valid_minimal(catalog_schema):
    assert_pydantic_then_schema_ok(Catalog, make_catalog(), catalog_schema)


def test_catalog_thieving_action_valid(catalog_schema):
    data = make_catalog()
    data["actions"].append(make_thieving_action())
    assert_pydantic_then_schema_ok(Catalog, data, catalog_schema)


def test_catalog_thieving_action_requires_thieving_block(catalog_schema):
    bad = make_catalog()
    thieving = make_thieving_action()
    thieving.pop("thieving")
    bad["actions"].append(thieving)
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_thieving_block_forbidden_elsewhere(catalog_schema):
    bad = make_catalog(thieving={"perception": 10, "max_gold": 10, "max_hit": 1})
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_duration_exclusive_minimum(catalog_schema):
    bad = make_catalog(duration_ticks=0)
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_unlock_level_bounds(catalog_schema):
    assert_pydantic_then_schema_ok(Catalog, make_catalog(unlock_level=99), catalog_schema)

    bad = make_catalog(unlock_level=100)
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_unknown_skill_rejected(catalog_schema):
    bad = make_catalog(skill="cooking")
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_input_quantity_exclusive_minimum(catalog_schema):
    bad = make_catalog(inputs={"normal_logs": 0})
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_output_probability_bounds(catalog_schema):
    bad = make_catalog(outputs=[{"item": "normal_logs", "probability": 1.5}])
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)

    bad = make_catalog(outputs=[{"item": "normal_logs", "probability": 0}])
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_upgrade_multiplier_must_shorten(catalog_schema):
    bad = make_catalog()
    bad["upgrades"][0]["duration_multiplier"] = 1.0
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)


def test_catalog_rejects_additional_properties(catalog_schema):
    bad = make_catalog(unexpected="x")
    assert_schema_invalid_but_pydantic_rejects(Catalog, bad, catalog_schema)

    data = make_catalog()
    data["unexpected"] = 1
    assert_schema_invalid_but_pydantic_rejects(Catalog, data, catalog_schema)


def test_catalog_dangling_reference_rejected_by_pydantic_only():
    # Cross-references are beyond what the schema expresses.
    bad = make_catalog(outputs=[{"item": "oak_logs"}])
    with pytest.raises(PydanticValidationError):
        pydantic_validate(Catalog, bad)


# ---------------------------------------------------------------------------
# StateConfig
# ---------------------------------------------------------------------------

def make_state(**overrides) -> dict[str, Any]:
    data: dict[str, Any] = {
        "gp": 25,
        "skill_levels": {"woodcutting": 10, "thieving": 3},
        "inventory": {"normal_logs": 4},
        "upgrades": ["iron_axe"],
        "active_action": "normal_tree",
        "inventory_slots": 20,
    }
    data.update(overrides)
    return data


def test_state_valid(state_schema):
    assert_pydantic_then_schema_ok(StateConfig, make_state(), state_schema)


def test_state_empty_is_fresh_player(state_schema):
    instance = assert_pydantic_then_schema_ok(StateConfig, {}, state_schema)
    assert instance["gp"] == 0


def test_state_negative_gp_rejected(state_schema):
    assert_schema_invalid_but_pydantic_rejects(StateConfig, make_state(gp=-1), state_schema)


def test_state_level_bounds(state_schema):
    bad = make_state(skill_levels={"woodcutting": 0})
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)

    bad = make_state(skill_levels={"woodcutting": 100})
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


def test_state_unknown_skill_rejected(state_schema):
    bad = make_state(skill_levels={"cooking": 5})
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


def test_state_negative_inventory_rejected(state_schema):
    bad = make_state(inventory={"normal_logs": -1})
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


def test_state_inventory_slots_exclusive_minimum(state_schema):
    bad = make_state(inventory_slots=0)
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


def test_state_active_action_min_length(state_schema):
    bad = make_state(active_action="")
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


def test_state_rejects_additional_properties(state_schema):
    bad = make_state(unexpected=True)
    assert_schema_invalid_but_pydantic_rejects(StateConfig, bad, state_schema)


# ---------------------------------------------------------------------------
# SolverConfig
# ---------------------------------------------------------------------------

def test_solver_config_defaults_conform(solver_config_schema):
    assert_pydantic_then_schema_ok(SolverConfig, {}, solver_config_schema)


def test_solver_config_overrides_conform(solver_config_schema):
    data = {"max_expanded_nodes": 5000, "gold_bucket_size": 25, "inventory_threshold": 1.0}
    instance = assert_pydantic_then_schema_ok(SolverConfig, data, solver_config_schema)
    assert instance["max_expanded_nodes"] == 5000


def test_solver_config_minimums(solver_config_schema):
    bad = {"max_expanded_nodes": 0}
    assert_schema_invalid_but_pydantic_rejects(SolverConfig, bad, solver_config_schema)

    bad = {"gold_bucket_size": 0}
    assert_schema_invalid_but_pydantic_rejects(SolverConfig, bad, solver_config_schema)


def test_solver_config_inventory_threshold_bounds(solver_config_schema):
    bad = {"inventory_threshold": 0}
    assert_schema_invalid_but_pydantic_rejects(SolverConfig, bad, solver_config_schema)

    bad = {"inventory_threshold": 1.5}
    assert_schema_invalid_but_pydantic_rejects(SolverConfig, bad, solver_config_schema)


def test_solver_config_rejects_additional_properties(solver_config_schema):
    bad = {"unexpected": 1}
    assert_schema_invalid_but_pydantic_rejects(SolverConfig, bad, solver_config_schema)
