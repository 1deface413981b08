"""
Storage for field records.

Provides pluggable key-value backends beneath one RecordStore:
- JSONFileBackend: JSON document on disk (default, single-user)
- SQLiteBackend: SQLite database file (single-user, offline)
- MemoryBackend: process-local fallback when nothing durable is available

Usage:
    from nervura.core.storage import RecordStore, JSONFileBackend, create_storage

    # Direct instantiation
    store = RecordStore(JSONFileBackend(Path("./data")))

    # Factory with config
    store = create_storage("json", {"path": "./data"})
"""

from .json_storage import JSONFileBackend
from .memory_storage import MemoryBackend
from .record_store import DB_KEY, RecordStore, new_record_id
from .sqlite_storage import SQLiteBackend

__all__ = [
    "DB_KEY",
    "JSONFileBackend",
    "MemoryBackend",
    "RecordStore",
    "SQLiteBackend",
    "create_storage",
    "new_record_id",
]


def create_storage(backend: str, config: dict) -> RecordStore:
    """Factory function to create a record store.

    Args:
        backend: Storage type ("json", "sqlite", "memory")
        config: Backend-specific configuration

    Returns:
        RecordStore over the selected backend

    Raises:
        ValueError: If backend type is unknown
    """
    key = config.get("key", DB_KEY)
    if backend == "json":
        from pathlib import Path
        kv = JSONFileBackend(
            data_dir=Path(config.get("path", "./data")),
            file_name=config.get("file_name"),
        )
    elif backend == "sqlite":
        from pathlib import Path
        kv = SQLiteBackend(
            db_path=Path(config.get("path", "./data/records.db")),
        )
    elif backend == "memory":
        kv = MemoryBackend()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    if "clock" in config:
        return RecordStore(kv, key=key, clock=config["clock"])
    return RecordStore(kv, key=key)
