"""Flat row shape shared by the CSV and spreadsheet exports."""

from __future__ import annotations

from typing import Any, Dict, List

from nervura.core.schema import TreeRecord

# Column order is part of the export contract
CSV_COLUMNS = [
    "id",
    "commonName",
    "scientificName",
    "family",
    "lifeForm",
    "lat",
    "lng",
    "capCm",
    "heightM",
    "health",
    "photoCount",
    "createdAt",
    "updatedAt",
    "notes",
]


def flatten(record: TreeRecord) -> Dict[str, Any]:
    """Return one row for ``record``; absent values are None."""
    morphology = record.morphology
    return {
        "id": record.id,
        "commonName": record.common_name,
        "scientificName": record.scientific_name,
        "family": record.family,
        "lifeForm": morphology.forma_vida,
        "lat": record.position.lat if record.has_position else None,
        "lng": record.position.lng if record.has_position else None,
        "capCm": morphology.cap_cm,
        "heightM": morphology.altura_m,
        "health": morphology.saude,
        "photoCount": len(record.photos),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "notes": record.notes or morphology.observacoes_livres,
    }


def row_values(record: TreeRecord) -> List[Any]:
    row = flatten(record)
    return [row[column] for column in CSV_COLUMNS]
