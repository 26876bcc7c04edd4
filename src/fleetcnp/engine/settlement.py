"""Execution & Settlement - Apply the resource consequences of an award.

Settlement runs in the same step as allocation. There is no modeled
execution time, so the task goes straight from assigned to completed.

Cost model:
    distance       = |agent position - task area|
    energy_cost    = floor(distance * energy_cost_per_distance)
    pesticide_used = floor(infestation_density * pesticide_per_density)

Agent energy and payload are clamped at zero.

The simulation aggregate update re-reads the run before writing. The
read-then-write is not atomic: two concurrent settlements against one run
can lose an increment. Callers that step one simulation from several threads
must serialize those steps (``FleetService`` does).
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config.schema import Config, Costs
from ..store.base import RecordStore
from .records import Agent, AgentStatus, SimulationStatus, Task, TaskStatus, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SettlementCost:
    """Deterministic resource cost of an agent performing a task."""
    distance: float
    energy_cost: int
    pesticide_used: int  # ml


@dataclass
class Settlement:
    """Outcome of settling one task."""
    task_id: int
    agent_id: int
    cost: SettlementCost
    energy_after: int
    payload_after: int
    settled_at: datetime
    simulation_completed: bool = False  # True when this settlement finished the run


def compute_settlement_cost(agent: Agent, task: Task, costs: Costs) -> SettlementCost:
    """
    Compute the cost of an agent flying to and treating a task area.

    Args:
        agent: Winning agent (position before relocation)
        task: Awarded task
        costs: Cost model parameters

    Returns:
        SettlementCost with floor-rounded integer costs
    """
    distance = task.distance_from(agent)
    return SettlementCost(
        distance=distance,
        energy_cost=math.floor(distance * costs.energy_cost_per_distance),
        pesticide_used=math.floor(task.infestation_density * costs.pesticide_per_density),
    )


def settle_task(
    store: RecordStore,
    task: Task,
    winning_agent: Agent,
    simulation_id: int,
    config: Optional[Config] = None
) -> Settlement:
    """
    Apply an award: move and deplete the agent, complete the task, fold costs into the run.

    Args:
        store: Record store
        task: Awarded task
        winning_agent: Agent that won the task, freshly read from the store
        simulation_id: Run the task belongs to
        config: Engine configuration (defaults when omitted)

    Returns:
        Settlement describing the applied changes
    """
    config = config or Config()
    cost = compute_settlement_cost(winning_agent, task, config.costs)
    energy_after = max(0, winning_agent.energy_level - cost.energy_cost)
    payload_after = max(0, winning_agent.current_payload - cost.pesticide_used)

    store.update_agent(
        winning_agent.id,
        status=AgentStatus.WORKING,
        position_x=task.area_x,
        position_y=task.area_y,
        energy_level=energy_after,
        current_payload=payload_after,
    )

    settled_at = utcnow()
    store.update_task(task.id, status=TaskStatus.COMPLETED, completed_at=settled_at)

    simulation_completed = False
    sim = store.get_simulation(simulation_id)
    if sim is None:
        logger.warning(
            "Simulation %s vanished before settling task %s; aggregates not updated",
            simulation_id, task.id
        )
    else:
        completed_tasks = sim.completed_tasks + 1
        updates = {
            "completed_tasks": completed_tasks,
            "total_energy_used": sim.total_energy_used + cost.energy_cost,
            "total_pesticide_used": sim.total_pesticide_used + cost.pesticide_used,
        }
        if completed_tasks >= sim.total_tasks and sim.status != SimulationStatus.COMPLETED:
            updates["status"] = SimulationStatus.COMPLETED
            updates["end_time"] = settled_at
            simulation_completed = True
        store.update_simulation(simulation_id, **updates)

    logger.info(
        "Settled task %s with agent %s: distance=%.2f energy_cost=%d pesticide_used=%d",
        task.id, winning_agent.id, cost.distance, cost.energy_cost, cost.pesticide_used
    )
    if simulation_completed:
        logger.info("Simulation %s completed all %d tasks", simulation_id, sim.total_tasks)

    return Settlement(
        task_id=task.id,
        agent_id=winning_agent.id,
        cost=cost,
        energy_after=energy_after,
        payload_after=payload_after,
        settled_at=settled_at,
        simulation_completed=simulation_completed,
    )
