"""Simulation lifecycle - the caller-facing surface of the engine.

``FleetService`` owns no simulation state. It validates caller input, seeds
new runs with randomized pending tasks, manages the agent roster, and
delegates each step to the allocation cycle.

Steps for one simulation are serialized with a per-simulation lock, which
closes the lost-update window on the aggregate row for callers sharing one
service instance. Separate processes sharing a store are not covered.
"""

import logging
import threading
from typing import Dict, List, Optional

import numpy as np

from ..config.schema import Config
from ..engine.allocation import StepResult, run_allocation_step
from ..engine.records import (
    Agent,
    AgentKind,
    AgentStatus,
    SimulationRun,
    SimulationStatus,
    Task,
    TaskKind,
    TaskStatus,
)
from ..errors import InvalidInput, RecordNotFound
from ..store.base import RecordStore

logger = logging.getLogger(__name__)


class FleetService:
    """Create, inspect, and step simulations against a record store."""

    def __init__(self, store: RecordStore, config: Optional[Config] = None, rng: Optional[np.random.Generator] = None):
        """
        Initialize fleet service.

        Args:
            store: Record store holding agents, tasks, bids, and runs
            config: Engine configuration (defaults when omitted)
            rng: Random generator for task generation (seeded from config when omitted)
        """
        self.store = store
        self.config = config or Config()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.simulation.random_seed)
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _simulation_lock(self, simulation_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(simulation_id)
            if lock is None:
                lock = self._locks[simulation_id] = threading.Lock()
            return lock

    # Simulations

    def create_simulation(self, name: str, task_count: Optional[int] = None) -> Dict[str, int]:
        """
        Create a running simulation seeded with randomized pending spray tasks.

        Args:
            name: Display name
            task_count: Number of tasks to generate (config default when omitted)

        Returns:
            {"id": new simulation id}

        Raises:
            InvalidInput: If the name is blank or task_count < 1
        """
        if task_count is None:
            task_count = self.config.tasks.default_count
        if isinstance(task_count, bool) or not isinstance(task_count, (int, np.integer)):
            raise InvalidInput(f"task_count must be an integer, got {task_count!r}")
        if task_count < 1:
            raise InvalidInput(f"task_count must be at least 1, got {task_count}")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Simulation name must be a non-empty string")

        sim = self.store.create_simulation(
            name=name,
            status=SimulationStatus.RUNNING,
            total_tasks=int(task_count),
            completed_tasks=0,
            total_energy_used=0,
            total_pesticide_used=0,
        )

        gen = self.config.tasks
        areas = self.rng.integers(0, gen.field_size, size=(task_count, 2))
        priorities = self.rng.integers(gen.priority_min, gen.priority_max, size=task_count, endpoint=True)
        densities = self.rng.integers(gen.density_min, gen.density_max, size=task_count, endpoint=True)
        for i in range(task_count):
            self.store.create_task(
                simulation_id=sim.id,
                kind=TaskKind.SPRAY,
                status=TaskStatus.PENDING,
                priority=int(priorities[i]),
                area_x=int(areas[i, 0]),
                area_y=int(areas[i, 1]),
                infestation_density=int(densities[i]),
            )

        logger.info("Created simulation %s (%r) with %d tasks", sim.id, name, task_count)
        return {"id": sim.id}

    def list_simulations(self) -> List[SimulationRun]:
        """All simulations, newest first."""
        return self.store.list_simulations()

    def get_simulation(self, simulation_id: int) -> Optional[SimulationRun]:
        return self.store.get_simulation(simulation_id)

    def get_tasks(self, simulation_id: int) -> List[Task]:
        """All tasks of a simulation in id order."""
        return sorted(self.store.list_tasks_by_simulation(simulation_id), key=lambda t: t.id)

    def step(self, simulation_id: int) -> StepResult:
        """Process at most one task of the simulation."""
        with self._simulation_lock(simulation_id):
            result = run_allocation_step(self.store, simulation_id, self.config)
        if result.settlement is not None and result.settlement.simulation_completed:
            # A completed run has no pending tasks left, so later steps are no-ops
            with self._locks_guard:
                self._locks.pop(simulation_id, None)
        logger.debug("Step on simulation %s: %s", simulation_id, result.message.value)
        return result

    def pause_simulation(self, simulation_id: int) -> SimulationRun:
        """Mark a running simulation paused. Completed runs are returned unchanged."""
        return self._set_status(simulation_id, SimulationStatus.PAUSED)

    def resume_simulation(self, simulation_id: int) -> SimulationRun:
        """Mark a paused simulation running. Completed runs are returned unchanged."""
        return self._set_status(simulation_id, SimulationStatus.RUNNING)

    def _set_status(self, simulation_id: int, status: SimulationStatus) -> SimulationRun:
        sim = self.store.get_simulation(simulation_id)
        if sim is None:
            raise RecordNotFound(f"Simulation {simulation_id} not found")
        if sim.status == SimulationStatus.COMPLETED or sim.status == status:
            return sim
        updated = self.store.update_simulation(simulation_id, status=status)
        if updated is None:
            raise RecordNotFound(f"Simulation {simulation_id} not found")
        logger.info("Simulation %s is now %s", simulation_id, status.value)
        return updated

    # Agents

    def create_agent(self, kind: str, name: str, payload_capacity: Optional[int] = None) -> Agent:
        """
        Add an agent to the fleet with full energy.

        Workers start with a full tank; scouts carry nothing.

        Args:
            kind: "worker" or "scout"
            name: Display name
            payload_capacity: Tank size in ml (kind default when omitted or zero)

        Raises:
            InvalidInput: If kind, name, or capacity is invalid
        """
        try:
            kind = AgentKind(kind)
        except ValueError as exc:
            raise InvalidInput(f"Unknown agent kind: {kind!r}") from exc
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Agent name must be a non-empty string")
        if payload_capacity is not None:
            if isinstance(payload_capacity, bool) or not isinstance(payload_capacity, (int, np.integer)):
                raise InvalidInput(f"payload_capacity must be an integer, got {payload_capacity!r}")
            if payload_capacity < 0:
                raise InvalidInput(f"payload_capacity must be non-negative, got {payload_capacity}")

        defaults = self.config.agents
        if not payload_capacity:
            payload_capacity = (
                defaults.worker_payload_capacity if kind == AgentKind.WORKER
                else defaults.scout_payload_capacity
            )
        current_payload = payload_capacity if kind == AgentKind.WORKER else 0

        agent = self.store.create_agent(
            kind=kind,
            name=name,
            status=AgentStatus.IDLE,
            position_x=defaults.start_x,
            position_y=defaults.start_y,
            energy_level=defaults.initial_energy,
            payload_capacity=int(payload_capacity),
            current_payload=int(current_payload),
        )
        logger.info("Created %s agent %s (%r)", kind.value, agent.id, name)
        return agent

    def list_agents(self) -> List[Agent]:
        return self.store.list_agents()

    def delete_agent(self, agent_id: int) -> bool:
        """Remove an agent from future bidding. Historical bids and tasks are untouched."""
        deleted = self.store.delete_agent(agent_id)
        if deleted:
            logger.info("Deleted agent %s", agent_id)
        return deleted
