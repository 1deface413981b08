"""
Protocol interfaces for the field record core.

These protocols define the contracts that storage backends and upstream
collaborators must implement. Uses typing.Protocol for structural subtyping -
implementations don't need to explicitly inherit, they just need to implement
the required methods.

## Storage Contracts

### KeyValueBackend Protocol

The whole record collection is persisted as ONE serialized value under one
fixed key. Backends only move opaque JSON-compatible values in and out.

Required methods:
- `read(key: str) -> Any` - Stored value or None when the key is absent
- `write(key: str, value: Any) -> None` - Replace the stored value

Implementation notes:
- Undecodable content must be reported as absent (None) with a logged warning
- An unreachable medium (permissions, disk errors) raises StorageUnavailableError

### RecordStorage Protocol

Required methods:
- `load_all() -> List[TreeRecord]`
- `save_one(record) -> TreeRecord`
- `get_one(record_id: str) -> Optional[TreeRecord]`
- `remove_one(record_id: str) -> bool`
- `wipe_all() -> None`
- `upsert_many(records, prefer_new_fields=True) -> MergeReport`

## Upstream Collaborators

### GeolocationProvider Protocol

Required methods:
- `current_position() -> LatLng` - Raises any exception when no fix is available

### PhotoMetadataReader Protocol

Required methods:
- `capture_time(path: Path) -> Optional[datetime]`
- `gps(path: Path) -> Optional[LatLng]`

Both return None on any failure; extraction never blocks a save.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol, runtime_checkable

from nervura.core.merge import MergeReport
from nervura.core.schema import LatLng, TreeRecord


@runtime_checkable
class KeyValueBackend(Protocol):
    """Protocol for the durable medium beneath the record store."""

    def read(self, key: str) -> Any:
        """Return the value stored under ``key`` or None."""
        ...

    def write(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""
        ...


@runtime_checkable
class RecordStorage(Protocol):
    """Protocol for keyed record collections."""

    def load_all(self) -> List[TreeRecord]:
        """All records in insertion order."""
        ...

    def save_one(self, record: TreeRecord) -> TreeRecord:
        """Insert or shallow-merge one record."""
        ...

    def get_one(self, record_id: str) -> Optional[TreeRecord]:
        """Get record by ID."""
        ...

    def remove_one(self, record_id: str) -> bool:
        """Delete record. Returns True if existed."""
        ...

    def wipe_all(self) -> None:
        """Remove every record."""
        ...

    def upsert_many(
        self, records: Iterable[Any], prefer_new_fields: bool = True
    ) -> MergeReport:
        """Reconcile a batch in one write."""
        ...


@runtime_checkable
class GeolocationProvider(Protocol):
    """Protocol for position sources (device GPS, browser geolocation)."""

    def current_position(self) -> LatLng:
        """Current reading; raises when no fix is available."""
        ...


@runtime_checkable
class PhotoMetadataReader(Protocol):
    """Protocol for embedded image metadata readers (EXIF)."""

    def capture_time(self, path: Path) -> Optional[datetime]:
        """Original capture time, if embedded."""
        ...

    def gps(self, path: Path) -> Optional[LatLng]:
        """Embedded GPS position, if any."""
        ...


__all__ = [
    "KeyValueBackend",
    "RecordStorage",
    "GeolocationProvider",
    "PhotoMetadataReader",
]
