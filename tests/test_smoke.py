"""Smoke tests for core fleet modules.

These tests verify basic functionality without deep validation.
Run these first to catch obvious breakage.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pydantic import ValidationError

from fleetcnp.config.loader import config_from_dict, load_config, merge_layers, with_overrides
from fleetcnp.config.schema import Config
from fleetcnp.engine.allocation import StepOutcome
from fleetcnp.simulation.lifecycle import FleetService
from fleetcnp.store import InMemoryStore, SQLiteStore, open_store


class TestConfigLoading:
    """Smoke tests for configuration loading."""

    def test_load_default_config(self):
        """Config loads without errors."""
        config = load_config()
        assert config is not None
        assert isinstance(config, Config)

    def test_config_has_required_sections(self):
        """Config contains all expected sections."""
        config = load_config()
        assert hasattr(config, 'bidding')
        assert hasattr(config, 'costs')
        assert hasattr(config, 'tasks')
        assert hasattr(config, 'agents')
        assert hasattr(config, 'simulation')
        assert hasattr(config, 'store')

    def test_defaults_match_protocol_constants(self):
        """Shipped defaults reproduce the reference thresholds and cost factors."""
        config = load_config()
        assert config.bidding.bidder_kinds == ["worker"]
        assert config.bidding.min_energy_level == 20
        assert config.bidding.min_payload == 0
        assert config.costs.energy_cost_per_distance == 0.5
        assert config.costs.pesticide_per_density == 10.0
        assert config.tasks.field_size == 100
        assert config.agents.worker_payload_capacity == 5000

    def test_yaml_defaults_match_schema_defaults(self):
        """defaults.yaml and the schema's own defaults agree."""
        assert load_config().compute_hash() == Config().compute_hash()

    def test_config_hash_is_deterministic(self):
        """Same config produces same hash."""
        config1 = load_config()
        config2 = load_config()
        assert config1.compute_hash() == config2.compute_hash()

    def test_config_hash_changes_with_parameters(self):
        """Different parameters produce different hashes."""
        changed = config_from_dict({"costs": {"energy_cost_per_distance": 1.0}})
        assert changed.compute_hash() != Config().compute_hash()

    def test_load_config_from_file(self, tmp_path):
        """Partial YAML files fill in remaining sections from defaults."""
        path = tmp_path / "fleet.yaml"
        path.write_text("bidding:\n  min_energy_level: 40\n")
        config = load_config(path)
        assert config.bidding.min_energy_level == 40
        assert config.costs.pesticide_per_density == 10.0

    def test_invalid_ranges_rejected(self):
        """Inverted generation ranges fail validation."""
        with pytest.raises(ValidationError):
            config_from_dict({"tasks": {"priority_min": 8, "priority_max": 2}})

    def test_empty_bidder_kinds_rejected(self):
        """At least one agent kind must be allowed to bid."""
        with pytest.raises(ValidationError):
            config_from_dict({"bidding": {"bidder_kinds": []}})


class TestConfigLayering:
    """User settings are layered over the packaged defaults."""

    def test_nested_sections_merge_key_by_key(self):
        base = {"costs": {"max_energy": 100, "energy_cost_per_distance": 0.5}, "store": {"backend": "memory"}}
        merged = merge_layers(base, {"costs": {"energy_cost_per_distance": 2.0}})
        assert merged == {"costs": {"max_energy": 100, "energy_cost_per_distance": 2.0}, "store": {"backend": "memory"}}
        assert base["costs"]["energy_cost_per_distance"] == 0.5

    def test_lists_are_replaced(self):
        merged = merge_layers({"bidding": {"bidder_kinds": ["worker"]}}, {"bidding": {"bidder_kinds": ["scout"]}})
        assert merged["bidding"]["bidder_kinds"] == ["scout"]

    def test_empty_user_file_means_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path).compute_hash() == load_config().compute_hash()

    def test_dict_overrides_keep_other_defaults(self):
        config = config_from_dict({"tasks": {"default_count": 3}})
        assert config.tasks.default_count == 3
        assert config.tasks.field_size == 100
        assert config.bidding.min_energy_level == 20

    def test_dotted_overrides(self):
        base = load_config()
        config = with_overrides(base, {"simulation.random_seed": 7, "store.backend": "sqlite"})
        assert config.simulation.random_seed == 7
        assert config.store.backend == "sqlite"
        assert base.simulation.random_seed is None
        assert base.store.backend == "memory"

    @pytest.mark.parametrize("key", ["simulation", "simulation.nope", "nope.random_seed"])
    def test_unknown_dotted_key(self, key):
        with pytest.raises(ValueError):
            with_overrides(load_config(), {key: 1})

    def test_dotted_override_is_validated(self):
        with pytest.raises(ValidationError):
            with_overrides(load_config(), {"store.backend": "postgres"})


class TestStoreSelection:
    """Smoke tests for backend selection."""

    def test_default_backend_is_memory(self):
        """Default config opens an in-memory store."""
        assert isinstance(open_store(Config()), InMemoryStore)

    def test_sqlite_backend(self, tmp_path):
        """SQLite backend is created at the configured path."""
        config = config_from_dict({"store": {"backend": "sqlite", "sqlite_path": str(tmp_path / "f.db")}})
        store = open_store(config)
        assert isinstance(store, SQLiteStore)
        assert (tmp_path / "f.db").exists()


class TestServiceSmoke:
    """Smoke test of one full step through the public surface."""

    def test_single_step(self):
        """A worker and a one-task simulation produce a completed step."""
        service = FleetService(InMemoryStore(), config_from_dict({"simulation": {"random_seed": 1}}))
        service.create_agent("worker", "Worker 1")
        sim_id = service.create_simulation("Smoke", 1)["id"]

        result = service.step(sim_id)

        assert result.message == StepOutcome.STEP_COMPLETED
        assert result.to_dict()["message"] == "Step completed"
