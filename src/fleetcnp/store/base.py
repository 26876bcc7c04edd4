"""Abstract record store consumed by the engine.

The engine only needs create, list, get-by-id, partial update-by-id, and
delete-by-id per entity, plus task lookups by simulation and bid lookups by
task. Every operation raises ``StoreUnavailable`` when the backing store
cannot be reached.

Records returned by a store are detached copies. Callers change persisted
state only through ``update_*`` calls.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type

from ..engine.records import (
    Agent,
    AgentKind,
    AgentStatus,
    Bid,
    SimulationRun,
    SimulationStatus,
    Task,
    TaskKind,
    TaskStatus,
)

# Writable fields per entity (id and creation stamps are store-managed)
AGENT_FIELDS = frozenset({
    "kind", "name", "status", "position_x", "position_y",
    "energy_level", "payload_capacity", "current_payload",
})
TASK_FIELDS = frozenset({
    "simulation_id", "kind", "priority", "status", "area_x", "area_y",
    "infestation_density", "assigned_agent_id", "completed_at",
})
BID_FIELDS = frozenset({"task_id", "agent_id", "bid_value"})
SIMULATION_FIELDS = frozenset({
    "name", "status", "total_tasks", "completed_tasks", "total_energy_used",
    "total_pesticide_used", "end_time",
})

ENUM_FIELDS: Dict[Type, Dict[str, Type]] = {
    Agent: {"kind": AgentKind, "status": AgentStatus},
    Task: {"kind": TaskKind, "status": TaskStatus},
    Bid: {},
    SimulationRun: {"status": SimulationStatus},
}


def normalize_fields(record_type: Type, fields: Dict[str, Any], allowed: frozenset) -> Dict[str, Any]:
    """
    Validate field names and coerce enum-valued fields.

    Args:
        record_type: Dataclass the fields belong to
        fields: Field values supplied by the caller
        allowed: Writable field names for this record type

    Returns:
        New dict with enum fields converted to their enum members

    Raises:
        ValueError: If an unknown field or enum value is supplied
    """
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {record_type.__name__} field(s): {', '.join(sorted(unknown))}")
    enums = ENUM_FIELDS.get(record_type, {})
    normalized = dict(fields)
    for name, enum_type in enums.items():
        if name in normalized and normalized[name] is not None:
            normalized[name] = enum_type(normalized[name])
    return normalized


class RecordStore(ABC):
    """Persistence boundary for agents, tasks, bids, and simulation runs."""

    # Agents

    @abstractmethod
    def create_agent(self, **fields: Any) -> Agent:
        """Persist a new agent and return it with its assigned id."""

    @abstractmethod
    def list_agents(self) -> List[Agent]:
        """All agents in ascending id order."""

    @abstractmethod
    def get_agent(self, agent_id: int) -> Optional[Agent]:
        ...

    @abstractmethod
    def update_agent(self, agent_id: int, **fields: Any) -> Optional[Agent]:
        """Apply a partial update. Returns None if the agent does not exist."""

    @abstractmethod
    def delete_agent(self, agent_id: int) -> bool:
        ...

    # Tasks

    @abstractmethod
    def create_task(self, **fields: Any) -> Task:
        ...

    @abstractmethod
    def list_tasks(self) -> List[Task]:
        ...

    @abstractmethod
    def list_tasks_by_simulation(self, simulation_id: int) -> List[Task]:
        ...

    @abstractmethod
    def list_pending_tasks(self, simulation_id: int) -> List[Task]:
        """Tasks of one simulation whose status is pending, in ascending id order."""

    @abstractmethod
    def get_task(self, task_id: int) -> Optional[Task]:
        ...

    @abstractmethod
    def update_task(self, task_id: int, **fields: Any) -> Optional[Task]:
        ...

    @abstractmethod
    def delete_task(self, task_id: int) -> bool:
        ...

    # Bids

    @abstractmethod
    def create_bid(self, **fields: Any) -> Bid:
        ...

    @abstractmethod
    def list_bids_by_task(self, task_id: int) -> List[Bid]:
        """Bids for one task in creation order."""

    # Simulations

    @abstractmethod
    def create_simulation(self, **fields: Any) -> SimulationRun:
        ...

    @abstractmethod
    def list_simulations(self) -> List[SimulationRun]:
        """All runs, newest first."""

    @abstractmethod
    def get_simulation(self, simulation_id: int) -> Optional[SimulationRun]:
        ...

    @abstractmethod
    def update_simulation(self, simulation_id: int, **fields: Any) -> Optional[SimulationRun]:
        ...

    @abstractmethod
    def delete_simulation(self, simulation_id: int) -> bool:
        ...

    def close(self) -> None:
        """Release backend resources. No-op by default."""
