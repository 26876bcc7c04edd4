"""Record types shared by the allocation and settlement engines.

The engine never owns these records between steps. Each step reads them
wholesale from the record store and writes back targeted field updates.

Task lifecycle:
    pending -> bidding -> assigned -> completed
    bidding -> pending  (rollback when no bids arrive)
    in_progress is a valid status that current transitions never produce.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple


class AgentKind(str, Enum):
    """Fleet unit kind."""
    SCOUT = "scout"  # Ground robot
    WORKER = "worker"  # Aerial spraying drone


class AgentStatus(str, Enum):
    """Operational state of an agent."""
    IDLE = "idle"
    MOVING = "moving"
    WORKING = "working"
    CHARGING = "charging"


class TaskKind(str, Enum):
    """Kind of spatial work."""
    SPRAY = "spray"
    INSPECT = "inspect"


class TaskStatus(str, Enum):
    """Task lifecycle status."""
    PENDING = "pending"
    BIDDING = "bidding"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Statuses that require assigned_agent_id to be set
ASSIGNED_STATUSES = frozenset({TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED})


class SimulationStatus(str, Enum):
    """Simulation run status."""
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


def utcnow() -> datetime:
    """Timezone-aware current time used for every record timestamp."""
    return datetime.now(timezone.utc)


def euclidean_distance(ax: float, ay: float, bx: float, by: float) -> float:
    """Straight-line distance between two field points."""
    return math.sqrt((ax - bx) ** 2 + (ay - by) ** 2)


@dataclass
class Agent:
    """A fleet unit.

    Invariants:
    - 0 <= energy_level <= 100
    - 0 <= current_payload <= payload_capacity
    """
    id: int
    kind: AgentKind
    name: str
    status: AgentStatus = AgentStatus.IDLE
    position_x: int = 0
    position_y: int = 0
    energy_level: int = 100  # 0-100
    payload_capacity: int = 0  # ml
    current_payload: int = 0  # ml
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def position(self) -> Tuple[int, int]:
        return (self.position_x, self.position_y)


@dataclass
class Task:
    """A unit of spatial work belonging to one simulation."""
    id: int
    simulation_id: int
    kind: TaskKind
    area_x: int  # [0, field_size)
    area_y: int  # [0, field_size)
    priority: int = 1  # 1-10, informational only
    status: TaskStatus = TaskStatus.PENDING
    infestation_density: int = 0  # 0-100, drives pesticide cost
    assigned_agent_id: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def area(self) -> Tuple[int, int]:
        return (self.area_x, self.area_y)

    def distance_from(self, agent: Agent) -> float:
        """Distance from an agent's current position to this task's area."""
        return euclidean_distance(agent.position_x, agent.position_y, self.area_x, self.area_y)


@dataclass
class Bid:
    """One agent's offer for one task. Lower bid_value is more favorable."""
    id: int
    task_id: int
    agent_id: int
    bid_value: int
    timestamp: Optional[datetime] = None


@dataclass
class SimulationRun:
    """Aggregate run context.

    Invariants:
    - 0 <= completed_tasks <= total_tasks
    - total_energy_used and total_pesticide_used never decrease
    """
    id: int
    name: str
    status: SimulationStatus = SimulationStatus.RUNNING
    total_tasks: int = 0
    completed_tasks: int = 0
    total_energy_used: int = 0
    total_pesticide_used: int = 0  # ml
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def progress(self) -> float:
        """Fraction of tasks completed."""
        if self.total_tasks <= 0:
            return 0.0
        return self.completed_tasks / self.total_tasks
