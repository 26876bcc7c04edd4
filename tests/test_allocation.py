"""Tests for the Contract Net allocation cycle.

These tests verify:
- The eligibility predicate and bid formula
- Winner selection and tie-breaking
- No-op steps, rollback on zero bids, and the vanished-winner path
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fleetcnp.config.loader import config_from_dict
from fleetcnp.config.schema import Bidding, Config
from fleetcnp.engine.allocation import (
    StepOutcome,
    StepResult,
    compute_bid_value,
    is_eligible_bidder,
    run_allocation_step,
    select_task,
    select_winning_bid,
)
from fleetcnp.engine.records import (
    Agent,
    AgentKind,
    AgentStatus,
    Bid,
    Task,
    TaskKind,
    TaskStatus,
)
from fleetcnp.errors import StoreUnavailable
from fleetcnp.store.memory import InMemoryStore


def make_worker(store, x=0, y=0, energy=100, payload=5000, capacity=5000, name="Worker"):
    return store.create_agent(
        kind=AgentKind.WORKER, name=name, position_x=x, position_y=y,
        energy_level=energy, payload_capacity=capacity, current_payload=payload,
    )


def make_scout(store, x=0, y=0, name="Scout"):
    return store.create_agent(kind=AgentKind.SCOUT, name=name, position_x=x, position_y=y)


def make_simulation(store, tasks):
    """Create a run holding the given (x, y, density) tasks."""
    sim = store.create_simulation(name="Test", total_tasks=len(tasks))
    created = [
        store.create_task(
            simulation_id=sim.id, kind=TaskKind.SPRAY, area_x=x, area_y=y, infestation_density=density,
        )
        for x, y, density in tasks
    ]
    return sim, created


class TestEligibility:
    """Tests for the bidding participation predicate."""

    policy = Bidding()

    def _agent(self, **overrides):
        fields = dict(id=1, kind=AgentKind.WORKER, name="w", energy_level=100,
                      payload_capacity=5000, current_payload=5000)
        fields.update(overrides)
        return Agent(**fields)

    def test_full_worker_is_eligible(self):
        """A fresh worker may bid."""
        assert is_eligible_bidder(self._agent(), self.policy)

    def test_scout_is_never_eligible(self):
        """Scouts do not bid under the default policy."""
        assert not is_eligible_bidder(self._agent(kind=AgentKind.SCOUT), self.policy)

    @pytest.mark.parametrize("energy,expected", [(20, False), (21, True), (0, False)])
    def test_energy_threshold_is_strict(self, energy, expected):
        """Energy must be strictly above 20."""
        assert is_eligible_bidder(self._agent(energy_level=energy), self.policy) is expected

    def test_empty_tank_is_ineligible(self):
        """Payload must be strictly above zero."""
        assert not is_eligible_bidder(self._agent(current_payload=0), self.policy)

    def test_policy_can_admit_scouts(self):
        """Bidder kinds are configurable."""
        policy = Bidding(bidder_kinds=["worker", "scout"])
        assert is_eligible_bidder(self._agent(kind=AgentKind.SCOUT), policy)


class TestBidValue:
    """Tests for the bid formula."""

    def test_bid_is_distance_plus_energy_deficit(self):
        """floor(distance + (100 - energy))."""
        agent = Agent(id=1, kind=AgentKind.WORKER, name="w", position_x=0, position_y=0, energy_level=90)
        task = Task(id=1, simulation_id=1, kind=TaskKind.SPRAY, area_x=3, area_y=4)
        assert compute_bid_value(agent, task) == 15

    def test_bid_is_floored(self):
        """Fractional distances round down."""
        agent = Agent(id=1, kind=AgentKind.WORKER, name="w", energy_level=100)
        task = Task(id=1, simulation_id=1, kind=TaskKind.SPRAY, area_x=10, area_y=10)
        assert compute_bid_value(agent, task) == 14  # 14.142...

    def test_zero_distance_full_energy_bids_zero(self):
        """Co-located full agent makes the best possible bid."""
        agent = Agent(id=1, kind=AgentKind.WORKER, name="w", position_x=5, position_y=5)
        task = Task(id=1, simulation_id=1, kind=TaskKind.SPRAY, area_x=5, area_y=5)
        assert compute_bid_value(agent, task) == 0


class TestSelection:
    """Tests for task and winner selection."""

    def test_lowest_bid_wins(self):
        """Strictly lowest value is selected."""
        bids = [Bid(id=1, task_id=1, agent_id=1, bid_value=30),
                Bid(id=2, task_id=1, agent_id=2, bid_value=10),
                Bid(id=3, task_id=1, agent_id=3, bid_value=20)]
        assert select_winning_bid(bids).agent_id == 2

    def test_tie_goes_to_first_bid(self):
        """Equal values keep the first encountered bid."""
        bids = [Bid(id=1, task_id=1, agent_id=7, bid_value=10),
                Bid(id=2, task_id=1, agent_id=3, bid_value=10)]
        assert select_winning_bid(bids).agent_id == 7

    def test_no_bids_no_winner(self):
        assert select_winning_bid([]) is None

    def test_task_with_lowest_id_is_selected(self):
        """Task choice does not depend on store order."""
        tasks = [Task(id=9, simulation_id=1, kind=TaskKind.SPRAY, area_x=0, area_y=0),
                 Task(id=4, simulation_id=1, kind=TaskKind.SPRAY, area_x=0, area_y=0)]
        assert select_task(tasks).id == 4


class TestAllocationStep:
    """Tests for run_allocation_step against an in-memory store."""

    def test_no_pending_tasks_mutates_nothing(self):
        """Stepping a simulation with no pending tasks is a no-op."""
        store = InMemoryStore()
        make_worker(store)
        sim = store.create_simulation(name="Empty", total_tasks=0)
        agents_before = store.list_agents()
        sim_before = store.get_simulation(sim.id)

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.NO_PENDING_TASKS
        assert result.to_dict() == {"message": "No pending tasks"}
        assert store.list_agents() == agents_before
        assert store.get_simulation(sim.id) == sim_before

    def test_unknown_simulation_reports_no_pending_tasks(self):
        """A missing simulation has no pending tasks."""
        assert run_allocation_step(InMemoryStore(), 404).message == StepOutcome.NO_PENDING_TASKS

    def test_no_agents_rolls_back(self):
        """Without agents the task returns to pending."""
        store = InMemoryStore()
        sim, (task,) = make_simulation(store, [(50, 50, 10)])

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.NO_BIDS_RECEIVED
        assert result.to_dict() == {"message": "No bids received"}
        after = store.get_task(task.id)
        assert after.status == TaskStatus.PENDING
        assert after.assigned_agent_id is None
        assert after == task

    def test_no_eligible_agents_rolls_back(self):
        """Scouts, tired workers, and empty workers produce no bids."""
        store = InMemoryStore()
        make_scout(store)
        make_worker(store, energy=20)
        make_worker(store, payload=0)
        sim, (task,) = make_simulation(store, [(10, 10, 10)])
        agents_before = store.list_agents()

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.NO_BIDS_RECEIVED
        assert store.get_task(task.id).status == TaskStatus.PENDING
        assert store.list_bids_by_task(task.id) == []
        assert store.list_agents() == agents_before
        assert store.get_simulation(sim.id).completed_tasks == 0

    def test_nearer_agent_wins(self):
        """Equal energy: the closer worker has the lower bid."""
        store = InMemoryStore()
        near = make_worker(store, 0, 0, name="Near")
        far = make_worker(store, 10, 10, name="Far")
        sim, (task,) = make_simulation(store, [(0, 0, 5)])

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.STEP_COMPLETED
        assert result.assigned_to == near.id
        assert result.task_id == task.id
        assert result.to_dict() == {"message": "Step completed", "taskId": task.id, "assignedTo": near.id}
        bids = {b.agent_id: b.bid_value for b in store.list_bids_by_task(task.id)}
        assert bids == {near.id: 0, far.id: 14}

    def test_fresher_agent_beats_closer_tired_agent(self):
        """Energy deficit counts against a bid."""
        store = InMemoryStore()
        tired = make_worker(store, 0, 0, energy=50)
        fresh = make_worker(store, 6, 8, energy=100)  # distance 10
        sim, _ = make_simulation(store, [(0, 0, 5)])

        result = run_allocation_step(store, sim.id)

        assert result.assigned_to == fresh.id
        assert store.get_agent(tired.id).energy_level == 50

    def test_equal_bids_go_to_lower_id(self):
        """Roster order breaks ties."""
        store = InMemoryStore()
        first = make_worker(store, 5, 5)
        make_worker(store, 5, 5)
        sim, _ = make_simulation(store, [(0, 0, 5)])

        assert run_allocation_step(store, sim.id).assigned_to == first.id

    def test_one_bid_per_eligible_agent(self):
        """Every eligible agent bids exactly once; ineligible agents do not."""
        store = InMemoryStore()
        make_worker(store)
        make_worker(store, 20, 20)
        make_scout(store)
        sim, (task,) = make_simulation(store, [(1, 1, 5)])

        result = run_allocation_step(store, sim.id)

        assert result.bids == 2
        assert len(store.list_bids_by_task(task.id)) == 2

    def test_lowest_id_pending_task_processed_first(self):
        """Tasks are served in id order."""
        store = InMemoryStore()
        make_worker(store)
        sim, tasks = make_simulation(store, [(1, 1, 1), (2, 2, 1), (3, 3, 1)])

        ids = [run_allocation_step(store, sim.id).task_id for _ in range(3)]

        assert ids == [t.id for t in tasks]

    def test_other_simulations_untouched(self):
        """A step only touches tasks of its own simulation."""
        store = InMemoryStore()
        make_worker(store)
        sim_a, _ = make_simulation(store, [(1, 1, 1)])
        sim_b, (task_b,) = make_simulation(store, [(2, 2, 1)])

        run_allocation_step(store, sim_a.id)

        assert store.get_task(task_b.id).status == TaskStatus.PENDING
        assert store.get_simulation(sim_b.id).completed_tasks == 0

    def test_scouts_bid_when_policy_allows(self):
        """A config admitting scouts lets a scout with payload win."""
        store = InMemoryStore()
        scout = store.create_agent(kind=AgentKind.SCOUT, name="s", payload_capacity=100, current_payload=100)
        sim, _ = make_simulation(store, [(0, 0, 1)])
        config = config_from_dict({"bidding": {"bidder_kinds": ["worker", "scout"]}})

        assert run_allocation_step(store, sim.id, config).assigned_to == scout.id

    def test_store_outage_propagates(self):
        """StoreUnavailable is raised, not converted into an outcome."""
        store = InMemoryStore()
        sim, _ = make_simulation(store, [(0, 0, 1)])
        store.set_available(False)

        with pytest.raises(StoreUnavailable):
            run_allocation_step(store, sim.id)


class VanishingWinnerStore(InMemoryStore):
    """Store where agents cannot be re-read after bidding."""

    def get_agent(self, agent_id):
        return None


class DisappearingTaskStore(InMemoryStore):
    """Store where the announced task is deleted before its status update lands."""

    def update_task(self, task_id, **fields):
        if fields.get("status") == TaskStatus.BIDDING:
            self.delete_task(task_id)
        return super().update_task(task_id, **fields)


class TestEdgeCases:
    """Tests for vanishing records between sub-steps."""

    def test_vanished_winner_skips_settlement(self):
        """The award is reported but no resources move."""
        store = VanishingWinnerStore()
        worker = make_worker(store, 0, 0)
        sim, (task,) = make_simulation(store, [(30, 40, 10)])

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.STEP_COMPLETED
        assert result.assigned_to == worker.id
        assert result.settlement is None
        after = store.get_task(task.id)
        assert after.status == TaskStatus.ASSIGNED
        assert after.assigned_agent_id == worker.id
        assert after.completed_at is None
        agent = store.list_agents()[0]
        assert agent.energy_level == 100
        assert agent.status == AgentStatus.IDLE
        assert store.get_simulation(sim.id).completed_tasks == 0

    def test_task_vanishing_at_announcement(self):
        """A task deleted mid-step yields 'No tasks available'."""
        store = DisappearingTaskStore()
        make_worker(store)
        sim, _ = make_simulation(store, [(1, 1, 1)])

        result = run_allocation_step(store, sim.id)

        assert result.message == StepOutcome.NO_TASKS_AVAILABLE
        assert result.to_dict() == {"message": "No tasks available"}

    def test_outcome_strings_are_verbatim(self):
        """Outcome values are part of the caller contract."""
        assert [o.value for o in StepOutcome] == [
            "No pending tasks", "No tasks available", "No bids received", "Step completed",
        ]

    def test_step_result_defaults(self):
        """A bare result carries only the message."""
        assert StepResult(message=StepOutcome.NO_BIDS_RECEIVED).to_dict() == {"message": "No bids received"}
