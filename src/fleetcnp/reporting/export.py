"""Export functionality for CSV and JSON."""

import json
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

import pandas as pd

from ..config.schema import Config
from ..engine.records import Agent, Task
from ..simulation.runner import RunResult
from ..store.base import RecordStore


def record_to_dict(record) -> Dict[str, Any]:
    """Flatten a record dataclass into JSON-friendly values."""
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, Enum):
            data[key] = value.value
        elif isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


def tasks_frame(tasks: Sequence[Task]) -> pd.DataFrame:
    """One row per task."""
    return pd.DataFrame([record_to_dict(t) for t in tasks])


def agents_frame(agents: Sequence[Agent]) -> pd.DataFrame:
    """One row per agent."""
    return pd.DataFrame([record_to_dict(a) for a in agents])


def steps_frame(result: RunResult) -> pd.DataFrame:
    """One row per step with the aggregate counters observed after it."""
    data = []
    for i, step in enumerate(result.steps):
        row = {
            'step': i + 1,
            'message': step.message.value,
            'task_id': step.task_id,
            'assigned_to': step.assigned_to,
            'bids': step.bids,
            'distance': None,
            'energy_cost': 0,
            'pesticide_used': 0,
        }
        if step.settlement is not None:
            row['distance'] = step.settlement.cost.distance
            row['energy_cost'] = step.settlement.cost.energy_cost
            row['pesticide_used'] = step.settlement.cost.pesticide_used
        # snapshots[0] is the state before the first step
        if i + 1 < len(result.snapshots):
            snap = result.snapshots[i + 1]
            row['completed_tasks'] = snap.completed_tasks
            row['total_energy_used'] = snap.total_energy_used
            row['total_pesticide_used'] = snap.total_pesticide_used
        data.append(row)

    return pd.DataFrame(data, columns=[
        'step', 'message', 'task_id', 'assigned_to', 'bids', 'distance',
        'energy_cost', 'pesticide_used', 'completed_tasks',
        'total_energy_used', 'total_pesticide_used',
    ])


def export_csv(result: RunResult, filepath: str):
    """Export the step history of a run to CSV."""
    steps_frame(result).to_csv(filepath, index=False)


def export_json(
    result: RunResult,
    filepath: str,
    store: Optional[RecordStore] = None,
    config: Optional[Config] = None
):
    """Export a run (and optionally its tasks and the roster) to JSON."""
    export_data: Dict[str, Any] = {
        'simulation_id': result.simulation_id,
        'stop_reason': result.stop_reason.value,
        'steps': [
            {**step.to_dict(), 'bids': step.bids}
            for step in result.steps
        ],
        'final': record_to_dict(result.final) if result.final is not None else None,
        'invariant_errors': [asdict(w) for w in result.invariant_errors],
    }
    if config is not None:
        export_data['config'] = config.to_dict()
        export_data['config_hash'] = config.compute_hash()
    if store is not None:
        export_data['tasks'] = [record_to_dict(t) for t in store.list_tasks_by_simulation(result.simulation_id)]
        export_data['agents'] = [record_to_dict(a) for a in store.list_agents()]

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)
