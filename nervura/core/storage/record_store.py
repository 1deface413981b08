"""
Record store: the whole collection under one versioned key.

Every operation reads the entire collection, changes it in memory and writes
it back in a single backend call. Inside one process a writer lock bound to
(backend, key) serializes those read-modify-write cycles. Nothing coordinates
separate processes sharing the same data directory: there the last writer of
the whole collection wins and a concurrent update can be lost. That is an
accepted limit for a single-user field app, not something this module hides.
"""

import copy
import logging
import threading
import uuid
import weakref
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from nervura.core.merge import MergeReport, reconcile
from nervura.core.protocols import KeyValueBackend
from nervura.core.schema import TreeRecord, isoformat_z, utc_now

logger = logging.getLogger(__name__)

# Persisted layout tag; bump only together with a data conversion
DB_KEY = "nervura:records:v1"

_locks_guard = threading.Lock()
_writer_locks: "weakref.WeakKeyDictionary[Any, Dict[str, threading.RLock]]" = (
    weakref.WeakKeyDictionary()
)


def writer_lock(backend: KeyValueBackend, key: str) -> threading.RLock:
    """Return the lock serializing writers of ``key`` on ``backend``."""
    with _locks_guard:
        per_backend = _writer_locks.setdefault(backend, {})
        return per_backend.setdefault(key, threading.RLock())


def new_record_id() -> str:
    return str(uuid.uuid4())


RecordInput = Union[TreeRecord, Dict[str, Any]]


class RecordStore:
    """Durable keyed collection of TreeRecords.

    Implements the RecordStorage protocol on top of any KeyValueBackend.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        key: str = DB_KEY,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.backend = backend
        self.key = key
        self.clock = clock
        self._lock = writer_lock(backend, key)

    def _now(self) -> str:
        return isoformat_z(self.clock())

    def _read_payloads(self) -> List[Dict[str, Any]]:
        """Read the stored entries, as persisted.

        Only entries that are not a mapping or carry no id are dropped. An
        entry that fails validation stays in the collection so a rewrite never
        loses it; ``load_all`` and ``get_one`` leave it out of their results.
        """
        data = self.backend.read(self.key)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.warning(
                f"Stored value under {self.key} is {type(data).__name__}, not a list; treating as empty"
            )
            return []

        payloads = [entry for entry in data if isinstance(entry, dict) and entry.get("id")]
        dropped = len(data) - len(payloads)
        if dropped:
            logger.warning(f"Dropped {dropped} malformed entry(ies) without an id while loading {self.key}")
        return payloads

    def _validated(self, payload: Dict[str, Any]) -> Optional[TreeRecord]:
        try:
            return TreeRecord.model_validate(payload)
        except ValidationError as e:
            logger.warning(
                f"Record {payload.get('id')!r} is malformed ({e.error_count()} invalid field(s)); "
                "kept as stored but not loaded"
            )
            return None

    def _write_payloads(self, payloads: List[Dict[str, Any]]) -> None:
        self.backend.write(self.key, payloads)

    def load_all(self) -> List[TreeRecord]:
        """All readable records in insertion order; empty when nothing usable is stored."""
        records = []
        for payload in self._read_payloads():
            record = self._validated(payload)
            if record is not None:
                records.append(record)
        return records

    def get_one(self, record_id: str) -> Optional[TreeRecord]:
        """Get record by ID."""
        for payload in self._read_payloads():
            if payload.get("id") == record_id:
                return self._validated(payload)
        return None

    def save_one(self, record: RecordInput) -> TreeRecord:
        """Insert a record, or shallow-merge it over the stored one with the same id.

        Fields the caller did not set are left untouched. ``createdAt`` of an
        existing record is never overwritten.
        """
        if isinstance(record, dict) and not record.get("id"):
            record = {**record, "id": new_record_id()}
        if isinstance(record, TreeRecord):
            incoming = record.model_dump(by_alias=True, exclude_unset=True)
        else:
            incoming = TreeRecord.model_validate(record).model_dump(
                by_alias=True, exclude_unset=True
            )

        with self._lock:
            payloads = self._read_payloads()
            now = self._now()

            for i, existing in enumerate(payloads):
                if existing.get("id") == incoming["id"]:
                    merged = copy.deepcopy(existing)
                    merged.update(copy.deepcopy(incoming))
                    merged["createdAt"] = existing.get("createdAt") or incoming.get("createdAt") or now
                    merged["updatedAt"] = now
                    payloads[i] = merged
                    logger.debug(f"Updated record {incoming['id']}")
                    break
            else:
                merged = copy.deepcopy(incoming)
                merged["createdAt"] = incoming.get("createdAt") or now
                merged["updatedAt"] = now
                payloads.append(merged)
                logger.debug(f"Inserted record {incoming['id']}")

            self._write_payloads(payloads)

        record = self._validated(merged)
        if record is None:
            # stored fields are still unreadable; report what the caller saved
            record = TreeRecord.model_validate(
                {**incoming, "createdAt": merged["createdAt"], "updatedAt": now}
            )
        return record

    def remove_one(self, record_id: str) -> bool:
        """Delete record. Returns True if existed."""
        with self._lock:
            payloads = self._read_payloads()
            remaining = [p for p in payloads if p.get("id") != record_id]
            self._write_payloads(remaining)

        existed = len(remaining) != len(payloads)
        if existed:
            logger.info(f"Removed record {record_id}")
        return existed

    def wipe_all(self) -> None:
        """Remove every record."""
        with self._lock:
            self._write_payloads([])
        logger.info(f"Wiped all records under {self.key}")

    def upsert_many(
        self, records: Iterable[Any], prefer_new_fields: bool = True
    ) -> MergeReport:
        """Reconcile a batch of records against the store in one write.

        Malformed entries are skipped and listed in the returned report.
        """
        batch = list(records) if records is not None else []
        if not batch:
            return MergeReport()

        with self._lock:
            existing = self._read_payloads()
            merged, report = reconcile(existing, batch, self._now(), prefer_new_fields)
            if report.changed:
                self._write_payloads(merged)

        logger.info(
            f"Batch upsert: {len(report.inserted)} inserted, "
            f"{len(report.updated)} updated, {len(report.skipped)} skipped"
        )
        return report

    def count(self) -> int:
        return len(self.load_all())

    def close(self) -> None:
        """Release the backend."""
        close = getattr(self.backend, "close", None)
        if close is not None:
            close()


__all__ = ["DB_KEY", "RecordStore", "new_record_id", "writer_lock"]
