"""
Read-only statistics over a scope of records.

Produces grouped counts (family, life form) and measurement means for the
records screen and for the ``analysis`` block of JSON exports.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from nervura.core.schema import TreeRecord, parse_timestamp

NO_FAMILY = "(sem família)"
NO_LIFE_FORM = "(sem forma)"


@dataclass
class GroupCount:
    name: str
    count: int


@dataclass
class ScopeAnalysis:
    """Summary of one scope."""

    total: int = 0
    with_position: int = 0
    with_photos: int = 0
    by_family: List[GroupCount] = field(default_factory=list)
    by_life_form: List[GroupCount] = field(default_factory=list)
    mean_cap_cm: Optional[float] = None
    mean_height_m: Optional[float] = None
    first_created: Optional[str] = None
    last_created: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready camelCase form, as embedded in exports."""
        return {
            "total": self.total,
            "withPosition": self.with_position,
            "withPhotos": self.with_photos,
            "byFamily": [{"name": g.name, "count": g.count} for g in self.by_family],
            "byLifeForm": [{"name": g.name, "count": g.count} for g in self.by_life_form],
            "meanCapCm": self.mean_cap_cm,
            "meanHeightM": self.mean_height_m,
            "dateRange": {"start": self.first_created, "end": self.last_created},
        }


def _grouped(counter: Counter) -> List[GroupCount]:
    # count descending, then name so ties are stable across runs
    ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [GroupCount(name, count) for name, count in ordered]


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def analyze(records: Iterable[TreeRecord]) -> ScopeAnalysis:
    """Compute counts and means over ``records``.

    Records without a measurement are left out of that mean's denominator.
    """
    records = list(records)
    families: Counter = Counter()
    life_forms: Counter = Counter()
    caps: List[float] = []
    heights: List[float] = []
    created = []

    for record in records:
        families[(record.family or "").strip() or NO_FAMILY] += 1
        life_forms[(record.morphology.forma_vida or "").strip() or NO_LIFE_FORM] += 1
        if record.morphology.cap_cm is not None:
            caps.append(record.morphology.cap_cm)
        if record.morphology.altura_m is not None:
            heights.append(record.morphology.altura_m)
        moment = parse_timestamp(record.created_at)
        if moment is not None:
            created.append((moment, record.created_at))

    created.sort()
    return ScopeAnalysis(
        total=len(records),
        with_position=sum(1 for r in records if r.has_position),
        with_photos=sum(1 for r in records if r.photos),
        by_family=_grouped(families),
        by_life_form=_grouped(life_forms),
        mean_cap_cm=_mean(caps),
        mean_height_m=_mean(heights),
        first_created=created[0][1] if created else None,
        last_created=created[-1][1] if created else None,
    )


__all__ = ["GroupCount", "ScopeAnalysis", "analyze", "NO_FAMILY", "NO_LIFE_FORM"]
