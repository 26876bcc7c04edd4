"""SQLite-backed record store.

One connection per operation, WAL journal so readers do not block the single
writer. Column names match the record dataclass fields so rows map onto
records directly. Timestamps are stored as ISO-8601 text, enums as their
string values.

Lock timeouts, missing database directories, and corrupt files surface as
``StoreUnavailable``. There is no retry at this layer.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Type, Union

from ..engine.records import Agent, Bid, SimulationRun, Task, TaskStatus, utcnow
from ..errors import StoreUnavailable
from .base import (
    AGENT_FIELDS,
    BID_FIELDS,
    ENUM_FIELDS,
    SIMULATION_FIELDS,
    TASK_FIELDS,
    RecordStore,
    normalize_fields,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS agents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL CHECK (kind IN ('scout', 'worker')),
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'idle',
    position_x INTEGER NOT NULL DEFAULT 0,
    position_y INTEGER NOT NULL DEFAULT 0,
    energy_level INTEGER NOT NULL DEFAULT 100,
    payload_capacity INTEGER NOT NULL DEFAULT 0,
    current_payload INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    simulation_id INTEGER NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('spray', 'inspect')),
    priority INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'pending',
    area_x INTEGER NOT NULL,
    area_y INTEGER NOT NULL,
    infestation_density INTEGER NOT NULL DEFAULT 0,
    assigned_agent_id INTEGER,
    created_at TEXT NOT NULL,
    completed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_tasks_simulation_status ON tasks (simulation_id, status);
CREATE TABLE IF NOT EXISTS simulation_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    total_tasks INTEGER NOT NULL DEFAULT 0,
    completed_tasks INTEGER NOT NULL DEFAULT 0,
    total_energy_used INTEGER NOT NULL DEFAULT 0,
    total_pesticide_used INTEGER NOT NULL DEFAULT 0,
    start_time TEXT NOT NULL,
    end_time TEXT
);
CREATE TABLE IF NOT EXISTS task_bids (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id INTEGER NOT NULL,
    agent_id INTEGER NOT NULL,
    bid_value INTEGER NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_task_bids_task ON task_bids (task_id);
"""

_TIMESTAMP_COLUMNS = frozenset({"created_at", "updated_at", "completed_at", "start_time", "end_time", "timestamp"})


def _to_column(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _row_to_record(record_type: Type, row: sqlite3.Row):
    data: Dict[str, Any] = dict(row)
    for name in _TIMESTAMP_COLUMNS & data.keys():
        if data[name] is not None:
            data[name] = datetime.fromisoformat(data[name])
    for name, enum_type in ENUM_FIELDS[record_type].items():
        data[name] = enum_type(data[name])
    return record_type(**data)


class SQLiteStore(RecordStore):
    """File-backed record store.

    Thread safety: a fresh connection is opened for every operation, so one
    instance may be shared across threads.
    """

    def __init__(self, db_path: Union[Path, str], timeout: float = 5.0):
        """
        Initialize store and create tables if needed.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database

        Raises:
            StoreUnavailable: If the database cannot be opened
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, and translate backend failures."""
        conn = None
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            raise
        except sqlite3.DatabaseError as exc:
            logger.warning("SQLite store at %s unavailable: %s", self.db_path, exc)
            raise StoreUnavailable(f"SQLite store at {self.db_path} unavailable: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def _insert(self, table: str, record_type: Type, fields: Dict[str, Any]):
        columns = list(fields)
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                [_to_column(fields[c]) for c in columns],
            )
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return _row_to_record(record_type, row)

    def _select(self, table: str, record_type: Type, where: str = "", params: tuple = (), order: str = "id"):
        sql = f"SELECT * FROM {table}"
        if where:
            sql += f" WHERE {where}"
        sql += f" ORDER BY {order}"
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_record(record_type, row) for row in rows]

    def _select_one(self, table: str, record_type: Type, record_id: int):
        records = self._select(table, record_type, "id = ?", (record_id,))
        return records[0] if records else None

    def _update(self, table: str, record_type: Type, record_id: int, fields: Dict[str, Any]):
        if fields:
            assignments = ", ".join(f"{c} = ?" for c in fields)
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?",
                    [_to_column(v) for v in fields.values()] + [record_id],
                )
                if cursor.rowcount == 0:
                    return None
        return self._select_one(table, record_type, record_id)

    def _delete(self, table: str, record_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    # Agents

    def create_agent(self, **fields: Any) -> Agent:
        fields = normalize_fields(Agent, fields, AGENT_FIELDS)
        now = utcnow()
        return self._insert("agents", Agent, {**fields, "created_at": now, "updated_at": now})

    def list_agents(self) -> List[Agent]:
        return self._select("agents", Agent)

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        return self._select_one("agents", Agent, agent_id)

    def update_agent(self, agent_id: int, **fields: Any) -> Optional[Agent]:
        fields = normalize_fields(Agent, fields, AGENT_FIELDS)
        return self._update("agents", Agent, agent_id, {**fields, "updated_at": utcnow()})

    def delete_agent(self, agent_id: int) -> bool:
        return self._delete("agents", agent_id)

    # Tasks

    def create_task(self, **fields: Any) -> Task:
        fields = normalize_fields(Task, fields, TASK_FIELDS)
        return self._insert("tasks", Task, {**fields, "created_at": utcnow()})

    def list_tasks(self) -> List[Task]:
        return self._select("tasks", Task)

    def list_tasks_by_simulation(self, simulation_id: int) -> List[Task]:
        return self._select("tasks", Task, "simulation_id = ?", (simulation_id,))

    def list_pending_tasks(self, simulation_id: int) -> List[Task]:
        return self._select(
            "tasks", Task, "simulation_id = ? AND status = ?",
            (simulation_id, TaskStatus.PENDING.value),
        )

    def get_task(self, task_id: int) -> Optional[Task]:
        return self._select_one("tasks", Task, task_id)

    def update_task(self, task_id: int, **fields: Any) -> Optional[Task]:
        fields = normalize_fields(Task, fields, TASK_FIELDS)
        return self._update("tasks", Task, task_id, fields)

    def delete_task(self, task_id: int) -> bool:
        return self._delete("tasks", task_id)

    # Bids

    def create_bid(self, **fields: Any) -> Bid:
        fields = normalize_fields(Bid, fields, BID_FIELDS)
        return self._insert("task_bids", Bid, {**fields, "timestamp": utcnow()})

    def list_bids_by_task(self, task_id: int) -> List[Bid]:
        return self._select("task_bids", Bid, "task_id = ?", (task_id,))

    # Simulations

    def create_simulation(self, **fields: Any) -> SimulationRun:
        fields = normalize_fields(SimulationRun, fields, SIMULATION_FIELDS)
        return self._insert("simulation_runs", SimulationRun, {**fields, "start_time": utcnow()})

    def list_simulations(self) -> List[SimulationRun]:
        return self._select("simulation_runs", SimulationRun, order="start_time DESC, id DESC")

    def get_simulation(self, simulation_id: int) -> Optional[SimulationRun]:
        return self._select_one("simulation_runs", SimulationRun, simulation_id)

    def update_simulation(self, simulation_id: int, **fields: Any) -> Optional[SimulationRun]:
        fields = normalize_fields(SimulationRun, fields, SIMULATION_FIELDS)
        return self._update("simulation_runs", SimulationRun, simulation_id, fields)

    def delete_simulation(self, simulation_id: int) -> bool:
        return self._delete("simulation_runs", simulation_id)
