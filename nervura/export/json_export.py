"""
JSON and GeoJSON exports.

GeoJSON follows RFC 7946: one Point feature per placeable record with
coordinates in ``[lng, lat]`` order. Records without a numeric position are
left out of ``features``; ``metadata.count`` still reports the full scope.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Dict, Iterable, List, Optional

from nervura.core.schema import TreeRecord, finite_json
from nervura.export.base import APP_NAME, cancellable


def _dumps(document: Dict[str, Any]) -> bytes:
    text = json.dumps(finite_json(document), indent=2, ensure_ascii=False, allow_nan=False)
    return text.encode("utf-8")


def serialize_json(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Envelope with app name, timestamp, count, optional analysis and the records."""
    payload = [record.to_dict() for record in cancellable(records, cancel)]
    document: Dict[str, Any] = {
        "app": APP_NAME,
        "exportedAt": exported_at,
        "count": len(payload),
    }
    if analysis is not None:
        document["analysis"] = analysis
    document["records"] = payload
    return _dumps(document)


def to_feature(record: TreeRecord) -> Dict[str, Any]:
    """GeoJSON Point feature for a record that has a position."""
    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [record.position.lng, record.position.lat],
        },
        "properties": {
            "id": record.id,
            "commonName": record.common_name,
            "scientificName": record.scientific_name,
            "family": record.family,
            "lifeForm": record.morphology.forma_vida,
            "morphology": record.morphology.model_dump(by_alias=True, exclude_none=True),
            "photos": [photo.url for photo in record.photos],
            "photoCount": len(record.photos),
            "createdAt": record.created_at,
            "updatedAt": record.updated_at,
        },
    }


def serialize_geojson(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """FeatureCollection of the placeable records in the scope."""
    total = 0
    features: List[Dict[str, Any]] = []
    for record in cancellable(records, cancel):
        total += 1
        if record.has_position:
            features.append(to_feature(record))

    document = {
        "type": "FeatureCollection",
        "features": features,
        "metadata": {
            "app": APP_NAME,
            "exportedAt": exported_at,
            "count": total,
            "exported": len(features),
        },
    }
    return _dumps(document)
