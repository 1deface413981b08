"""
Record schema for botanical field observations.

One ``TreeRecord`` per observed specimen: position, names, a morphology
descriptor bag and the photos taken in the field. Models are pydantic so
that persisted payloads (camelCase keys) validate on the way in and dump
back out unchanged, including keys this version does not know about.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)

# Life forms offered by the collection form
LIFE_FORMS = [
    "árvore",
    "arbusto",
    "erva",
    "trepadeira",
    "cipó",
    "epífita",
    "palmeira",
    "samambaia",
    "outra",
]


def isoformat_z(moment: datetime) -> str:
    """Return ``moment`` as an ISO 8601 UTC string with a ``Z`` suffix."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, returning ``None`` when it is missing or invalid."""

    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or math.isfinite(value):
        return value
    return None


def finite_json(value: Any) -> Any:
    """Copy of a JSON-like value with NaN and infinities replaced by None.

    JSON has no spelling for them; Python's encoder would write bare ``NaN``.
    """
    if isinstance(value, float):
        return _finite_or_none(value)
    if isinstance(value, dict):
        return {key: finite_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [finite_json(item) for item in value]
    return value


class LatLng(BaseModel):
    """Geographic position in decimal degrees (WGS84). NaN and infinities are rejected."""

    model_config = ConfigDict(extra="ignore")

    lat: float = Field(allow_inf_nan=False)
    lng: float = Field(allow_inf_nan=False)


class PhotoRef(BaseModel):
    """Reference to a captured image; the bytes themselves live elsewhere."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    url: str = Field(validation_alias=AliasChoices("url", "uri"))
    name: Optional[str] = None
    caption: Optional[str] = None
    captured_at: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("capturedAt", "captured_at", "exifDate"),
        serialization_alias="capturedAt",
    )
    lat: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("lat", "exifLat")
    )
    lng: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("lng", "exifLng")
    )

    @field_validator("lat", "lng")
    @classmethod
    def _finite_coordinate(cls, value: Optional[float]) -> Optional[float]:
        return _finite_or_none(value)


class Morphology(BaseModel):
    """Botanical descriptors for a record.

    Known descriptors are closed optional fields. Free-form additions go in
    ``campos_personalizaveis`` (string to string). Keys written by other
    versions are kept as extras so a round trip never drops them.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    forma_vida: Optional[str] = Field(default=None, alias="formaVida")
    flores_presenca: Optional[bool] = Field(default=None, alias="floresPresenca")
    flores_descricao: Optional[str] = Field(default=None, alias="floresDescricao")
    frutos_presenca: Optional[bool] = Field(default=None, alias="frutosPresenca")
    frutos_descricao: Optional[str] = Field(default=None, alias="frutosDescricao")
    saude: Optional[str] = None
    folha_tipo: Optional[str] = Field(default=None, alias="folhaTipo")
    folha_margem: Optional[str] = Field(default=None, alias="folhaMargem")
    folha_filotaxia: Optional[str] = Field(default=None, alias="folhaFilotaxia")
    folha_nervacao: Optional[str] = Field(default=None, alias="folhaNervacao")
    casca: Optional[str] = None
    cap_cm: Optional[float] = None
    altura_m: Optional[float] = None
    observacoes_livres: Optional[str] = Field(default=None, alias="observacoesLivres")
    campos_personalizaveis: Dict[str, str] = Field(
        default_factory=dict, alias="camposPersonalizaveis"
    )

    @field_validator("cap_cm", "altura_m", mode="before")
    @classmethod
    def _blank_measure(cls, value: Any) -> Any:
        # the form sends "" for a cleared numeric input
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cap_cm", "altura_m")
    @classmethod
    def _finite_measure(cls, value: Optional[float]) -> Optional[float]:
        return _finite_or_none(value)

    @field_validator("campos_personalizaveis", mode="before")
    @classmethod
    def _stringify_custom(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


class TreeRecord(BaseModel):
    """A single observed specimen entry."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(min_length=1)
    position: Optional[LatLng] = None
    common_name: Optional[str] = Field(default=None, alias="commonName")
    scientific_name: Optional[str] = Field(default=None, alias="scientificName")
    family: Optional[str] = None
    notes: Optional[str] = None
    morphology: Morphology = Field(default_factory=Morphology)
    photos: List[PhotoRef] = Field(default_factory=list)
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @field_validator("morphology", mode="before")
    @classmethod
    def _none_morphology(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("position", mode="wrap")
    @classmethod
    def _unplaceable_position(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        # a position with NaN, infinite or null coordinates cannot be placed
        if isinstance(value, dict) and (value.get("lat") is None or value.get("lng") is None):
            return None
        try:
            return handler(value)
        except ValidationError as e:
            if all(error["type"] == "finite_number" for error in e.errors()):
                return None
            raise

    @field_validator("photos", mode="before")
    @classmethod
    def _none_photos(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def has_position(self) -> bool:
        """True when the position can be placed on a map."""
        return self.position is not None

    @property
    def display_name(self) -> str:
        return self.common_name or self.scientific_name or self.id

    def to_dict(self) -> Dict[str, Any]:
        """Return the persisted (camelCase) form of the record."""
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "LIFE_FORMS",
    "LatLng",
    "PhotoRef",
    "Morphology",
    "TreeRecord",
    "finite_json",
    "isoformat_z",
    "parse_timestamp",
    "utc_now",
]
