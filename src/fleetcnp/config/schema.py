"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Bidding(BaseModel):
    """Bidding participation policy (who may answer a task announcement)."""
    bidder_kinds: List[Literal["scout", "worker"]] = Field(
        default_factory=lambda: ["worker"],
        description="Agent kinds allowed to bid (scouts are excluded by default)"
    )
    min_energy_level: int = Field(
        default=20, ge=0, le=100,
        description="Agents must have strictly more energy than this to bid"
    )
    min_payload: int = Field(
        default=0, ge=0,
        description="Agents must carry strictly more payload (ml) than this to bid"
    )

    @field_validator("bidder_kinds")
    @classmethod
    def validate_bidder_kinds(cls, v):
        """Ensure at least one kind may bid and kinds are unique."""
        if not v:
            raise ValueError("bidder_kinds must name at least one agent kind")
        if len(set(v)) != len(v):
            raise ValueError("bidder_kinds must not contain duplicates")
        return v


class Costs(BaseModel):
    """Resource cost model applied at settlement."""
    energy_cost_per_distance: float = Field(
        default=0.5, ge=0,
        description="Energy points consumed per unit of distance travelled"
    )
    pesticide_per_density: float = Field(
        default=10.0, ge=0,
        description="Pesticide ml consumed per point of infestation density"
    )
    max_energy: int = Field(default=100, gt=0, description="Full energy level")


class TaskGeneration(BaseModel):
    """Random task generation for new simulations."""
    field_size: int = Field(default=100, gt=0, description="Field is [0, field_size) on both axes")
    priority_min: int = Field(default=1, ge=1, le=10, description="Lowest generated priority")
    priority_max: int = Field(default=10, ge=1, le=10, description="Highest generated priority")
    density_min: int = Field(default=0, ge=0, le=100, description="Lowest generated infestation density")
    density_max: int = Field(default=100, ge=0, le=100, description="Highest generated infestation density")
    default_count: int = Field(default=10, ge=1, description="Task count when the caller omits one")

    @model_validator(mode='after')
    def validate_ranges(self):
        """Ensure min <= max for generated ranges."""
        if self.priority_min > self.priority_max:
            raise ValueError(
                f"priority_min ({self.priority_min}) must not exceed priority_max ({self.priority_max})"
            )
        if self.density_min > self.density_max:
            raise ValueError(
                f"density_min ({self.density_min}) must not exceed density_max ({self.density_max})"
            )
        return self


class AgentDefaults(BaseModel):
    """Defaults applied when agents are created."""
    worker_payload_capacity: int = Field(default=5000, ge=0, description="Worker tank size (ml)")
    scout_payload_capacity: int = Field(default=0, ge=0, description="Scout payload capacity (ml)")
    initial_energy: int = Field(default=100, ge=0, le=100, description="Energy at creation")
    start_x: int = Field(default=0, ge=0, description="Initial x position")
    start_y: int = Field(default=0, ge=0, description="Initial y position")


class Simulation(BaseModel):
    """Simulation control parameters."""
    random_seed: Optional[int] = Field(default=None, description="Seed for task generation (None = entropy)")
    step_interval_seconds: float = Field(
        default=1.0, ge=0,
        description="Delay between steps when a caller drives a timed run"
    )
    max_steps: int = Field(default=1000, gt=0, description="Upper bound on steps in one runner invocation")
    check_invariants: bool = Field(default=True, description="Run sanity checks after every runner step")


class Store(BaseModel):
    """Record store backend selection."""
    backend: Literal["memory", "sqlite"] = Field(default="memory", description="Record store backend")
    sqlite_path: str = Field(default="fleet.db", description="SQLite database file")
    timeout_seconds: float = Field(default=5.0, gt=0, description="SQLite lock wait timeout")


class Config(BaseModel):
    """Complete configuration for the fleet workbench."""
    bidding: Bidding = Field(default_factory=Bidding)
    costs: Costs = Field(default_factory=Costs)
    tasks: TaskGeneration = Field(default_factory=TaskGeneration)
    agents: AgentDefaults = Field(default_factory=AgentDefaults)
    simulation: Simulation = Field(default_factory=Simulation)
    store: Store = Field(default_factory=Store)

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**(data or {}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
