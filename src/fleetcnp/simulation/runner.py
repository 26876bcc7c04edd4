"""Simulation runner - Drive repeated steps until a run stops making progress.

The engine has no internal timer. This runner replaces a client-side polling
loop: it calls ``FleetService.step`` at a fixed cadence and records what
happened.

Stop conditions:
- No pending tasks remain
- A step received no bids (agents never recharge, so the fleet is exhausted)
- The simulation was paused or completed by another caller
- The simulation no longer exists
- max_steps reached
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..engine.allocation import StepOutcome, StepResult
from ..engine.records import SimulationRun, SimulationStatus
from ..validation.sanity_checks import SanityChecker, ValidationWarning, validate_simulation
from .lifecycle import FleetService

logger = logging.getLogger(__name__)


class StopReason(Enum):
    """Why a run loop ended."""
    NO_PENDING_TASKS = "no_pending_tasks"
    FLEET_EXHAUSTED = "fleet_exhausted"
    PAUSED = "paused"
    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    MAX_STEPS = "max_steps"
    STOPPED = "stopped"  # Caller stopped stepping a run that could continue


@dataclass
class RunResult:
    """Complete run-loop result."""
    simulation_id: int
    steps: List[StepResult]
    snapshots: List[SimulationRun]  # Aggregate row before the first step and after each step
    stop_reason: StopReason
    invariant_errors: List[ValidationWarning] = field(default_factory=list)

    @property
    def final(self) -> Optional[SimulationRun]:
        return self.snapshots[-1] if self.snapshots else None

    @property
    def tasks_completed(self) -> int:
        """Tasks settled during this run loop."""
        return sum(1 for s in self.steps if s.settlement is not None)


def stop_reason_for(sim: Optional[SimulationRun], last_step: Optional[StepResult] = None) -> StopReason:
    """
    Classify where an externally driven run currently stands.

    Used when steps come from a UI timer rather than ``SimulationRunner``.
    Run status takes precedence over the outcome of the last step.
    """
    if sim is None:
        return StopReason.NOT_FOUND
    if sim.status == SimulationStatus.COMPLETED:
        return StopReason.COMPLETED
    if sim.status == SimulationStatus.PAUSED:
        return StopReason.PAUSED
    if last_step is not None:
        if last_step.message == StepOutcome.NO_PENDING_TASKS:
            return StopReason.NO_PENDING_TASKS
        if last_step.message == StepOutcome.NO_BIDS_RECEIVED:
            return StopReason.FLEET_EXHAUSTED
    return StopReason.STOPPED


class SimulationRunner:
    """Repeatedly step one simulation."""

    def __init__(self, service: FleetService):
        """
        Initialize simulation runner.

        Args:
            service: Fleet service to step through
        """
        self.service = service
        self.config = service.config
        self.checker = SanityChecker(self.config)

    def run(
        self,
        simulation_id: int,
        max_steps: Optional[int] = None,
        interval_seconds: float = 0.0
    ) -> RunResult:
        """
        Step a simulation until it stops making progress.

        Args:
            simulation_id: Simulation to drive
            max_steps: Step budget (config default when omitted)
            interval_seconds: Sleep between steps

        Returns:
            Run result with step history and aggregate snapshots
        """
        if max_steps is None:
            max_steps = self.config.simulation.max_steps

        steps: List[StepResult] = []
        snapshots: List[SimulationRun] = []
        invariant_errors: List[ValidationWarning] = []

        sim = self.service.get_simulation(simulation_id)
        if sim is None:
            return RunResult(simulation_id, steps, snapshots, StopReason.NOT_FOUND)
        snapshots.append(sim)

        stop_reason = StopReason.MAX_STEPS
        while len(steps) < max_steps:
            if sim.status == SimulationStatus.PAUSED:
                stop_reason = StopReason.PAUSED
                break
            if sim.status == SimulationStatus.COMPLETED:
                stop_reason = StopReason.COMPLETED
                break

            result = self.service.step(simulation_id)
            steps.append(result)

            previous = sim
            sim = self.service.get_simulation(simulation_id)
            if sim is None:
                stop_reason = StopReason.NOT_FOUND
                break
            snapshots.append(sim)

            if self.config.simulation.check_invariants:
                found = self.checker.check_progression(previous, sim)
                found.extend(validate_simulation(self.service.store, simulation_id, self.config))
                invariant_errors.extend(w for w in found if w.severity == "error")

            if result.message == StepOutcome.NO_PENDING_TASKS:
                stop_reason = StopReason.NO_PENDING_TASKS
                break
            if result.message == StepOutcome.NO_BIDS_RECEIVED:
                stop_reason = StopReason.FLEET_EXHAUSTED
                break

            if interval_seconds > 0:
                time.sleep(interval_seconds)
        else:
            # Budget spent; a completion on the last step still counts as completed
            if sim.status == SimulationStatus.COMPLETED:
                stop_reason = StopReason.COMPLETED

        logger.info(
            "Run loop on simulation %s stopped after %d steps: %s",
            simulation_id, len(steps), stop_reason.value
        )
        return RunResult(
            simulation_id=simulation_id,
            steps=steps,
            snapshots=snapshots,
            stop_reason=stop_reason,
            invariant_errors=invariant_errors,
        )
