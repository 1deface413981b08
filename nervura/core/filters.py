"""
Scope selection for browsing, analytics and export.

A ``RecordFilter`` is the active filter state of the records screen. Exports
and analytics receive the list it produces, never the store itself.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from nervura.core.schema import TreeRecord, parse_timestamp

# Picker value meaning "no restriction"
ALL = "Todas"


def _unrestricted(value: Optional[str]) -> bool:
    return value is None or not value.strip() or value == ALL


@dataclass
class RecordFilter:
    """Predicate over records; every criterion left as None is ignored."""

    family: Optional[str] = None
    life_form: Optional[str] = None
    query: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    has_photo: Optional[bool] = None

    def matches(self, record: TreeRecord) -> bool:
        if not _unrestricted(self.family):
            if (record.family or "").lower() != self.family.strip().lower():
                return False

        if not _unrestricted(self.life_form):
            if (record.morphology.forma_vida or "") != self.life_form:
                return False

        if self.query and self.query.strip():
            needle = self.query.strip().lower()
            haystacks = (record.common_name, record.scientific_name, record.family)
            if not any(needle in (text or "").lower() for text in haystacks):
                return False

        if self.date_from is not None or self.date_to is not None:
            created = parse_timestamp(record.created_at)
            if created is None:
                return False
            if self.date_from is not None and created < _aware(self.date_from):
                return False
            if self.date_to is not None and created > _aware(self.date_to):
                return False

        if self.has_photo is not None and bool(record.photos) != self.has_photo:
            return False

        return True

    def apply(self, records: Iterable[TreeRecord]) -> List[TreeRecord]:
        """Records matching every criterion, in their original order."""
        return [r for r in records if self.matches(r)]

    def describe(self) -> Dict[str, Any]:
        """Active criteria as plain values, for export metadata."""
        active = {}
        for key, value in asdict(self).items():
            if value is None or (isinstance(value, str) and _unrestricted(value)):
                continue
            active[key] = value.isoformat() if isinstance(value, datetime) else value
        return active


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def families(records: Iterable[TreeRecord]) -> List[str]:
    """Distinct non-empty families, sorted case-insensitively."""
    found = {r.family.strip() for r in records if r.family and r.family.strip()}
    return sorted(found, key=str.lower)


__all__ = ["ALL", "RecordFilter", "families"]
