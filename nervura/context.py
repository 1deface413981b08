"""
Application context built once at startup.

Holds what used to be implicit module state (the genus to family table, the
fallback position) and is passed explicitly to whatever needs it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional

from nervura.config import Config
from nervura.core.protocols import GeolocationProvider
from nervura.core.schema import LatLng

logger = logging.getLogger(__name__)


def load_genus_table(path: Optional[Path] = None) -> Dict[str, str]:
    """Load a genus -> family JSON table; the bundled one when ``path`` is None.

    An unreadable or malformed table yields an empty mapping: the table only
    pre-fills a form field, so losing it never blocks anything.
    """
    try:
        if path:
            text = Path(path).read_text(encoding="utf-8")
        else:
            text = resources.files("nervura").joinpath("data/genus2family.json").read_text(
                encoding="utf-8"
            )
        table = json.loads(text)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Genus table unavailable ({path or 'bundled'}): {e}")
        return {}

    if not isinstance(table, dict):
        logger.warning("Genus table is not a JSON object; ignoring it")
        return {}
    return {str(k).lower(): str(v) for k, v in table.items() if v}


@dataclass
class AppContext:
    """Startup state shared with every consumer by explicit reference."""

    genus_to_family: Dict[str, str] = field(default_factory=dict)
    default_position: LatLng = field(
        default_factory=lambda: LatLng(lat=Config.DEFAULT_LAT, lng=Config.DEFAULT_LNG)
    )
    settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, settings: Optional[Dict[str, Any]] = None) -> "AppContext":
        """Build the context from a loaded TOML configuration."""
        settings = settings or {}
        table_path = settings.get("taxonomy", {}).get("genus_table") or Config.GENUS_TABLE
        location = settings.get("location", {})
        position = LatLng(
            lat=location.get("default_lat", Config.DEFAULT_LAT),
            lng=location.get("default_lng", Config.DEFAULT_LNG),
        )
        return cls(
            genus_to_family=load_genus_table(Path(table_path) if table_path else None),
            default_position=position,
            settings=settings,
        )

    def guess_family(self, scientific_name: Optional[str]) -> Optional[str]:
        """Suggest a family from the genus (first word) of a scientific name."""
        if not scientific_name or not scientific_name.strip():
            return None
        genus = scientific_name.strip().split()[0].lower()
        return self.genus_to_family.get(genus)

    def resolve_position(
        self,
        provider: Optional[GeolocationProvider],
        last_known: Optional[LatLng] = None,
    ) -> LatLng:
        """Current position, else the last known one, else the default."""
        if provider is not None:
            try:
                return provider.current_position()
            except Exception as e:  # any provider failure falls back
                logger.warning(f"Geolocation unavailable, using fallback: {e}")
        return last_known or self.default_position
