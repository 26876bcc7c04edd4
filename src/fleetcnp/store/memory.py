"""In-process record store backed by dictionaries."""

import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional

from ..engine.records import (
    Agent,
    Bid,
    SimulationRun,
    Task,
    TaskStatus,
    utcnow,
)
from ..errors import StoreUnavailable
from .base import (
    AGENT_FIELDS,
    BID_FIELDS,
    SIMULATION_FIELDS,
    TASK_FIELDS,
    RecordStore,
    normalize_fields,
)


class InMemoryStore(RecordStore):
    """Dictionary-backed store with autoincrement ids.

    Each table keeps insertion order, so listings come back in ascending id
    order. A single lock guards all tables; it protects the dictionaries,
    not multi-call sequences made by the engine.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._available = True
        self._agents: Dict[int, Agent] = {}
        self._tasks: Dict[int, Task] = {}
        self._bids: Dict[int, Bid] = {}
        self._simulations: Dict[int, SimulationRun] = {}
        self._next_ids = {"agents": 1, "tasks": 1, "bids": 1, "simulations": 1}

    def set_available(self, available: bool) -> None:
        """Simulate losing (or regaining) the backing store."""
        self._available = available

    def _check(self) -> None:
        if not self._available:
            raise StoreUnavailable("In-memory store is marked unavailable")

    def _allocate_id(self, table: str) -> int:
        new_id = self._next_ids[table]
        self._next_ids[table] = new_id + 1
        return new_id

    # Agents

    def create_agent(self, **fields: Any) -> Agent:
        fields = normalize_fields(Agent, fields, AGENT_FIELDS)
        with self._lock:
            self._check()
            now = utcnow()
            agent = Agent(id=self._allocate_id("agents"), created_at=now, updated_at=now, **fields)
            self._agents[agent.id] = agent
            return replace(agent)

    def list_agents(self) -> List[Agent]:
        with self._lock:
            self._check()
            return [replace(a) for a in self._agents.values()]

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        with self._lock:
            self._check()
            agent = self._agents.get(agent_id)
            return replace(agent) if agent is not None else None

    def update_agent(self, agent_id: int, **fields: Any) -> Optional[Agent]:
        fields = normalize_fields(Agent, fields, AGENT_FIELDS)
        with self._lock:
            self._check()
            agent = self._agents.get(agent_id)
            if agent is None:
                return None
            updated = replace(agent, updated_at=utcnow(), **fields)
            self._agents[agent_id] = updated
            return replace(updated)

    def delete_agent(self, agent_id: int) -> bool:
        with self._lock:
            self._check()
            return self._agents.pop(agent_id, None) is not None

    # Tasks

    def create_task(self, **fields: Any) -> Task:
        fields = normalize_fields(Task, fields, TASK_FIELDS)
        with self._lock:
            self._check()
            task = Task(id=self._allocate_id("tasks"), created_at=utcnow(), **fields)
            self._tasks[task.id] = task
            return replace(task)

    def list_tasks(self) -> List[Task]:
        with self._lock:
            self._check()
            return [replace(t) for t in self._tasks.values()]

    def list_tasks_by_simulation(self, simulation_id: int) -> List[Task]:
        with self._lock:
            self._check()
            return [replace(t) for t in self._tasks.values() if t.simulation_id == simulation_id]

    def list_pending_tasks(self, simulation_id: int) -> List[Task]:
        with self._lock:
            self._check()
            return [
                replace(t) for t in self._tasks.values()
                if t.simulation_id == simulation_id and t.status == TaskStatus.PENDING
            ]

    def get_task(self, task_id: int) -> Optional[Task]:
        with self._lock:
            self._check()
            task = self._tasks.get(task_id)
            return replace(task) if task is not None else None

    def update_task(self, task_id: int, **fields: Any) -> Optional[Task]:
        fields = normalize_fields(Task, fields, TASK_FIELDS)
        with self._lock:
            self._check()
            task = self._tasks.get(task_id)
            if task is None:
                return None
            updated = replace(task, **fields)
            self._tasks[task_id] = updated
            return replace(updated)

    def delete_task(self, task_id: int) -> bool:
        with self._lock:
            self._check()
            return self._tasks.pop(task_id, None) is not None

    # Bids

    def create_bid(self, **fields: Any) -> Bid:
        fields = normalize_fields(Bid, fields, BID_FIELDS)
        with self._lock:
            self._check()
            bid = Bid(id=self._allocate_id("bids"), timestamp=utcnow(), **fields)
            self._bids[bid.id] = bid
            return replace(bid)

    def list_bids_by_task(self, task_id: int) -> List[Bid]:
        with self._lock:
            self._check()
            return [replace(b) for b in self._bids.values() if b.task_id == task_id]

    # Simulations

    def create_simulation(self, **fields: Any) -> SimulationRun:
        fields = normalize_fields(SimulationRun, fields, SIMULATION_FIELDS)
        with self._lock:
            self._check()
            sim = SimulationRun(id=self._allocate_id("simulations"), start_time=utcnow(), **fields)
            self._simulations[sim.id] = sim
            return replace(sim)

    def list_simulations(self) -> List[SimulationRun]:
        with self._lock:
            self._check()
            runs = sorted(self._simulations.values(), key=lambda s: (s.start_time, s.id), reverse=True)
            return [replace(s) for s in runs]

    def get_simulation(self, simulation_id: int) -> Optional[SimulationRun]:
        with self._lock:
            self._check()
            sim = self._simulations.get(simulation_id)
            return replace(sim) if sim is not None else None

    def update_simulation(self, simulation_id: int, **fields: Any) -> Optional[SimulationRun]:
        fields = normalize_fields(SimulationRun, fields, SIMULATION_FIELDS)
        with self._lock:
            self._check()
            sim = self._simulations.get(simulation_id)
            if sim is None:
                return None
            updated = replace(sim, **fields)
            self._simulations[simulation_id] = updated
            return replace(updated)

    def delete_simulation(self, simulation_id: int) -> bool:
        with self._lock:
            self._check()
            return self._simulations.pop(simulation_id, None) is not None
