"""
Batch reconciliation of incoming records against the stored collection.

Merge rules for an id that already exists:
- top-level scalar fields: incoming wins when ``prefer_new_fields`` is set
- morphology: key-level union, incoming keys overwrite, the rest is kept
- photos: replaced only by a non-empty incoming list
- createdAt: never changes; updatedAt: stamped with the batch time

Entries that cannot be reconciled (not a mapping, no id, fail validation)
are skipped and reported, never raised.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from nervura.core.schema import TreeRecord

logger = logging.getLogger(__name__)

# Fields with their own merge rule; everything else is a top-level scalar
COMPOSITE_FIELDS = ("morphology", "photos")
TIMESTAMP_FIELDS = ("createdAt", "updatedAt")
CUSTOM_FIELDS_KEY = "camposPersonalizaveis"


@dataclass
class MergeReport:
    """Outcome of one ``upsert_many`` call."""

    inserted: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.updated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inserted": len(self.inserted),
            "updated": len(self.updated),
            "skipped": len(self.skipped),
            "issues": list(self.skipped),
        }


def incoming_payload(entry: Any) -> Optional[Dict[str, Any]]:
    """Normalise a batch entry to its persisted form, or None if unusable.

    Only fields the caller actually supplied are kept, so absent fields never
    overwrite stored ones.
    """
    if isinstance(entry, TreeRecord):
        return entry.model_dump(by_alias=True, exclude_unset=True)
    if not isinstance(entry, dict) or not entry.get("id"):
        return None
    try:
        record = TreeRecord.model_validate(entry)
    except ValidationError:
        return None
    return record.model_dump(by_alias=True, exclude_unset=True)


def merge_morphology(
    previous: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Key-level union of two morphology bags; incoming keys win."""
    merged = copy.deepcopy(previous) if isinstance(previous, dict) else {}
    incoming = incoming or {}
    for key, value in incoming.items():
        if key == CUSTOM_FIELDS_KEY:
            stored = merged.get(CUSTOM_FIELDS_KEY)
            custom = dict(stored) if isinstance(stored, dict) else {}
            custom.update(value or {})
            merged[CUSTOM_FIELDS_KEY] = custom
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_record(
    previous: Dict[str, Any],
    incoming: Dict[str, Any],
    now: str,
    prefer_new_fields: bool = True,
) -> Dict[str, Any]:
    """Merge ``incoming`` over ``previous`` using the batch rules."""
    merged = copy.deepcopy(previous)
    if prefer_new_fields:
        for key, value in incoming.items():
            if key in COMPOSITE_FIELDS or key in TIMESTAMP_FIELDS:
                continue
            merged[key] = copy.deepcopy(value)

    merged["morphology"] = merge_morphology(
        previous.get("morphology"), incoming.get("morphology")
    )

    incoming_photos = incoming.get("photos")
    if isinstance(incoming_photos, list) and incoming_photos:
        merged["photos"] = copy.deepcopy(incoming_photos)
    else:
        merged["photos"] = copy.deepcopy(previous.get("photos") or [])

    merged["createdAt"] = previous.get("createdAt") or incoming.get("createdAt") or now
    merged["updatedAt"] = now
    return merged


def reconcile(
    existing: Iterable[Dict[str, Any]],
    incoming: Iterable[Any],
    now: str,
    prefer_new_fields: bool = True,
) -> Tuple[List[Dict[str, Any]], MergeReport]:
    """Reconcile a batch against the existing collection.

    Returns the new collection (existing order first, new ids appended in
    batch order) and a report of what happened.
    """
    index: Dict[str, Dict[str, Any]] = {}
    for record in existing:
        if record and record.get("id"):
            index[record["id"]] = record

    report = MergeReport()
    for position, entry in enumerate(incoming):
        payload = incoming_payload(entry)
        if payload is None:
            label = entry.get("id") if isinstance(entry, dict) and entry.get("id") else f"#{position}"
            logger.warning("Skipping malformed batch entry %s", label)
            report.skipped.append(str(label))
            continue

        record_id = payload["id"]
        previous = index.get(record_id)
        if previous is not None:
            index[record_id] = merge_record(previous, payload, now, prefer_new_fields)
            report.updated.append(record_id)
        else:
            inserted = copy.deepcopy(payload)
            inserted["createdAt"] = payload.get("createdAt") or now
            inserted["updatedAt"] = now
            index[record_id] = inserted
            report.inserted.append(record_id)

    return list(index.values()), report


__all__ = [
    "MergeReport",
    "incoming_payload",
    "merge_morphology",
    "merge_record",
    "reconcile",
]
