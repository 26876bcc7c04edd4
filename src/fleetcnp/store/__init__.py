"""Record store backends."""

from ..config.schema import Config
from .base import RecordStore
from .memory import InMemoryStore
from .sqlite import SQLiteStore


def open_store(config: Config) -> RecordStore:
    """Build the record store selected by ``config.store.backend``."""
    if config.store.backend == "sqlite":
        return SQLiteStore(config.store.sqlite_path, timeout=config.store.timeout_seconds)
    return InMemoryStore()


__all__ = ["InMemoryStore", "RecordStore", "SQLiteStore", "open_store"]
