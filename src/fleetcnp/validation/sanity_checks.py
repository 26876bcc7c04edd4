"""Sanity checks for fleet records and simulation aggregates."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.schema import Config
from ..engine.records import ASSIGNED_STATUSES, Agent, AgentKind, SimulationRun, Task, TaskStatus
from ..store.base import RecordStore


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "agent", "task", "aggregate"
    message: str
    details: Optional[str] = None


class SanityChecker:
    """Run invariant checks on agents, tasks, and simulation runs."""

    def __init__(self, config: Optional[Config] = None):
        """Initialize with configuration."""
        self.config = config or Config()

    def check_agent(self, agent: Agent) -> List[ValidationWarning]:
        """
        Check resource bounds of one agent.

        Returns:
            List of validation warnings
        """
        warnings = []
        max_energy = self.config.costs.max_energy

        if not 0 <= agent.energy_level <= max_energy:
            warnings.append(ValidationWarning(
                severity="error",
                category="agent",
                message=f"Agent {agent.id} energy out of bounds",
                details=f"energy_level={agent.energy_level}, allowed [0, {max_energy}]"
            ))

        if agent.current_payload < 0 or agent.current_payload > agent.payload_capacity:
            warnings.append(ValidationWarning(
                severity="error",
                category="agent",
                message=f"Agent {agent.id} payload out of bounds",
                details=f"current_payload={agent.current_payload}, capacity={agent.payload_capacity}"
            ))

        if (
            agent.energy_level <= self.config.bidding.min_energy_level
            and AgentKind(agent.kind).value in self.config.bidding.bidder_kinds
        ):
            warnings.append(ValidationWarning(
                severity="warning",
                category="agent",
                message=f"Agent {agent.id} is too depleted to bid",
                details=f"energy_level={agent.energy_level}"
            ))

        return warnings

    def check_task(self, task: Task) -> List[ValidationWarning]:
        """Check assignment and completion bookkeeping of one task."""
        warnings = []
        status = TaskStatus(task.status)

        has_agent = task.assigned_agent_id is not None
        if has_agent != (status in ASSIGNED_STATUSES):
            warnings.append(ValidationWarning(
                severity="error",
                category="task",
                message=f"Task {task.id} assignment does not match status",
                details=f"status={status.value}, assigned_agent_id={task.assigned_agent_id}"
            ))

        if (task.completed_at is not None) != (status == TaskStatus.COMPLETED):
            warnings.append(ValidationWarning(
                severity="error",
                category="task",
                message=f"Task {task.id} completion timestamp does not match status",
                details=f"status={status.value}, completed_at={task.completed_at}"
            ))

        if status == TaskStatus.BIDDING:
            warnings.append(ValidationWarning(
                severity="warning",
                category="task",
                message=f"Task {task.id} is stuck in bidding",
                details="A step was interrupted between announcement and award"
            ))

        return warnings

    def check_simulation(self, sim: SimulationRun, tasks: Optional[Sequence[Task]] = None) -> List[ValidationWarning]:
        """Check counters of one run, optionally against its task list."""
        warnings = []

        if not 0 <= sim.completed_tasks <= sim.total_tasks:
            warnings.append(ValidationWarning(
                severity="error",
                category="aggregate",
                message=f"Simulation {sim.id} completed count out of bounds",
                details=f"completed_tasks={sim.completed_tasks}, total_tasks={sim.total_tasks}"
            ))

        if sim.total_energy_used < 0 or sim.total_pesticide_used < 0:
            warnings.append(ValidationWarning(
                severity="error",
                category="aggregate",
                message=f"Simulation {sim.id} has negative resource totals",
                details=f"energy={sim.total_energy_used}, pesticide={sim.total_pesticide_used}"
            ))

        if tasks is not None:
            completed = sum(1 for t in tasks if TaskStatus(t.status) == TaskStatus.COMPLETED)
            if completed != sim.completed_tasks:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="aggregate",
                    message=f"Simulation {sim.id} completed count differs from task records",
                    details=f"counter={sim.completed_tasks}, completed task records={completed}"
                ))

        return warnings

    def check_progression(self, before: SimulationRun, after: SimulationRun) -> List[ValidationWarning]:
        """Check that aggregate counters never move backwards between snapshots."""
        warnings = []
        for name in ("completed_tasks", "total_energy_used", "total_pesticide_used"):
            old, new = getattr(before, name), getattr(after, name)
            if new < old:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="aggregate",
                    message=f"Simulation {after.id} {name} decreased",
                    details=f"{old} -> {new}"
                ))
        return warnings


def validate_simulation(store: RecordStore, simulation_id: int, config: Optional[Config] = None) -> List[ValidationWarning]:
    """
    Validate a run, its tasks, and the whole agent roster.

    Args:
        store: Record store
        simulation_id: Run to validate
        config: Engine configuration

    Returns:
        List of all validation warnings
    """
    checker = SanityChecker(config)
    warnings = []

    sim = store.get_simulation(simulation_id)
    tasks = store.list_tasks_by_simulation(simulation_id)
    if sim is None:
        warnings.append(ValidationWarning(
            severity="error",
            category="aggregate",
            message=f"Simulation {simulation_id} not found"
        ))
    else:
        warnings.extend(checker.check_simulation(sim, tasks))

    for task in tasks:
        warnings.extend(checker.check_task(task))

    for agent in store.list_agents():
        warnings.extend(checker.check_agent(agent))

    return warnings
