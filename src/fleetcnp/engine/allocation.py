"""Allocation Cycle - One Contract Net round per step.

A step announces a single pending task, collects one bid from every eligible
agent, awards the task to the lowest bid, and hands the award to settlement.

Bid value (lower is better):
    bid = floor(distance(agent, task) + (max_energy - energy_level))

Empty pending sets and missing bidders are normal outcomes, returned as
``StepOutcome`` values rather than raised.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..config.schema import Bidding, Config
from ..store.base import RecordStore
from .records import Agent, AgentKind, Bid, Task, TaskStatus
from .settlement import Settlement, settle_task

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    """Step result messages. Values are part of the public contract."""
    NO_PENDING_TASKS = "No pending tasks"
    NO_TASKS_AVAILABLE = "No tasks available"
    NO_BIDS_RECEIVED = "No bids received"
    STEP_COMPLETED = "Step completed"


@dataclass
class StepResult:
    """Result of one allocation step."""
    message: StepOutcome
    task_id: Optional[int] = None
    assigned_to: Optional[int] = None
    bids: int = 0  # Bids recorded this step
    settlement: Optional[Settlement] = None  # None when settlement was skipped

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing payload: message plus taskId/assignedTo when a task was awarded."""
        payload: Dict[str, Any] = {"message": self.message.value}
        if self.task_id is not None:
            payload["taskId"] = self.task_id
        if self.assigned_to is not None:
            payload["assignedTo"] = self.assigned_to
        return payload


def is_eligible_bidder(agent: Agent, policy: Bidding) -> bool:
    """
    Bidding participation predicate.

    An agent may bid iff its kind is listed in the policy and it has energy
    and payload strictly above the policy thresholds.
    """
    return (
        AgentKind(agent.kind).value in policy.bidder_kinds
        and agent.energy_level > policy.min_energy_level
        and agent.current_payload > policy.min_payload
    )


def compute_bid_value(agent: Agent, task: Task, max_energy: int = 100) -> int:
    """Bid rewarding proximity and remaining energy. Lower is better."""
    return math.floor(task.distance_from(agent) + (max_energy - agent.energy_level))


def select_winning_bid(bids: Sequence[Bid]) -> Optional[Bid]:
    """Strictly lowest bid value wins; ties go to the first bid encountered."""
    best: Optional[Bid] = None
    for bid in bids:
        if best is None or bid.bid_value < best.bid_value:
            best = bid
    return best


def select_task(pending: Sequence[Task]) -> Optional[Task]:
    """Pick the pending task with the lowest id."""
    if not pending:
        return None
    return min(pending, key=lambda t: t.id)


def collect_bids(store: RecordStore, task: Task, agents: Sequence[Agent], config: Config) -> List[Bid]:
    """
    Record one bid per eligible agent, in roster order.

    Args:
        store: Record store
        task: Task under announcement
        agents: Full roster read at the start of the step
        config: Engine configuration

    Returns:
        Bids recorded in this round
    """
    bids = []
    for agent in agents:
        if not is_eligible_bidder(agent, config.bidding):
            continue
        bid_value = compute_bid_value(agent, task, config.costs.max_energy)
        bids.append(store.create_bid(task_id=task.id, agent_id=agent.id, bid_value=bid_value))
        logger.debug("Agent %s bid %d on task %s", agent.id, bid_value, task.id)
    return bids


def run_allocation_step(store: RecordStore, simulation_id: int, config: Optional[Config] = None) -> StepResult:
    """
    Run one announce/bid/award/settle cycle for a simulation.

    Args:
        store: Record store
        simulation_id: Simulation to progress
        config: Engine configuration (defaults when omitted)

    Returns:
        StepResult; STEP_COMPLETED carries task_id and assigned_to
    """
    config = config or Config()

    agents = sorted(store.list_agents(), key=lambda a: a.id)
    pending = store.list_pending_tasks(simulation_id)
    if not pending:
        return StepResult(message=StepOutcome.NO_PENDING_TASKS)

    task = select_task(pending)

    # Announcement
    announced = store.update_task(task.id, status=TaskStatus.BIDDING)
    if announced is None:
        logger.warning("Task %s disappeared before announcement", task.id)
        return StepResult(message=StepOutcome.NO_TASKS_AVAILABLE)
    logger.debug("Announced task %s of simulation %s to %d agents", task.id, simulation_id, len(agents))

    bids = collect_bids(store, task, agents, config)
    if not bids:
        store.update_task(task.id, status=TaskStatus.PENDING)
        logger.info("No bids for task %s; returned to pending", task.id)
        return StepResult(message=StepOutcome.NO_BIDS_RECEIVED)

    best = select_winning_bid(bids)

    # Award
    store.update_task(task.id, status=TaskStatus.ASSIGNED, assigned_agent_id=best.agent_id)
    logger.debug("Awarded task %s to agent %s (bid %d of %d)", task.id, best.agent_id, best.bid_value, len(bids))

    result = StepResult(
        message=StepOutcome.STEP_COMPLETED,
        task_id=task.id,
        assigned_to=best.agent_id,
        bids=len(bids),
    )

    winner = store.get_agent(best.agent_id)
    if winner is None:
        logger.warning(
            "Agent %s vanished after winning task %s; settlement skipped, task left assigned",
            best.agent_id, task.id
        )
        return result

    result.settlement = settle_task(store, task, winner, simulation_id, config)
    return result
