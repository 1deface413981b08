"""
Export serializers for a scope of records.

Each ExportFormat is bound to one pure function
``(records, *, exported_at, analysis, cancel) -> bytes``. Serializers never
touch the store: callers pass the filtered scope they want exported.

Usage:
    from nervura.export import ExportFormat, serialize, write_export

    content = serialize(records, ExportFormat.GEOJSON)
    path = write_export(records, ExportFormat.CSV, Path("./exports"))
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from nervura.analytics import analyze
from nervura.core.errors import EmptyScopeError, ExportCancelled
from nervura.core.schema import TreeRecord, isoformat_z, utc_now
from nervura.export.csv_export import serialize_csv
from nervura.export.json_export import serialize_geojson, serialize_json
from nervura.export.spreadsheet import serialize_xlsx
from nervura.export.xml_export import serialize_gpx, serialize_kml

logger = logging.getLogger(__name__)

Serializer = Callable[..., bytes]


class ExportFormat(str, Enum):
    """Supported export formats; the value is the file extension."""

    JSON = "json"
    GEOJSON = "geojson"
    CSV = "csv"
    GPX = "gpx"
    KML = "kml"
    XLSX = "xlsx"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self]


MIME_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.GEOJSON: "application/geo+json",
    ExportFormat.CSV: "text/csv",
    ExportFormat.GPX: "application/gpx+xml",
    ExportFormat.KML: "application/vnd.google-earth.kml+xml",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def serializer_for(fmt: ExportFormat) -> Serializer:
    """Return the serialization function bound to ``fmt``."""
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.JSON:
        return serialize_json
    elif fmt is ExportFormat.GEOJSON:
        return serialize_geojson
    elif fmt is ExportFormat.CSV:
        return serialize_csv
    elif fmt is ExportFormat.GPX:
        return serialize_gpx
    elif fmt is ExportFormat.KML:
        return serialize_kml
    elif fmt is ExportFormat.XLSX:
        return serialize_xlsx
    raise ValueError(f"Unknown export format: {fmt}")


def serialize(
    records: Iterable[TreeRecord],
    fmt: ExportFormat,
    *,
    now: Optional[datetime] = None,
    include_analysis: bool = True,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Serialize a scope into ``fmt``.

    Raises:
        EmptyScopeError: If the scope holds no records
        ExportCancelled: If ``cancel`` is set before serialization finishes
    """
    scope: List[TreeRecord] = list(records)
    if not scope:
        raise EmptyScopeError()

    fmt = ExportFormat(fmt)
    exported_at = isoformat_z(now or utc_now())
    analysis = analyze(scope).to_dict() if include_analysis and fmt is ExportFormat.JSON else None
    return serializer_for(fmt)(scope, exported_at=exported_at, analysis=analysis, cancel=cancel)


def export_filename(fmt: ExportFormat, now: Optional[datetime] = None, prefix: str = "registros") -> str:
    """Timestamp-stamped artifact name, e.g. ``registros_20240101-120000.csv``."""
    moment = now or utc_now()
    return f"{prefix}_{moment.strftime('%Y%m%d-%H%M%S')}.{ExportFormat(fmt).extension}"


def write_export(
    records: Iterable[TreeRecord],
    fmt: ExportFormat,
    output_dir: Path,
    *,
    now: Optional[datetime] = None,
    include_analysis: bool = True,
    cancel: Optional[threading.Event] = None,
) -> Path:
    """Serialize a scope and write it into ``output_dir``.

    The artifact appears under its final name only once complete; a cancelled
    or failed export leaves nothing behind.
    """
    fmt = ExportFormat(fmt)
    moment = now or utc_now()
    content = serialize(
        records, fmt, now=moment, include_analysis=include_analysis, cancel=cancel
    )

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / export_filename(fmt, moment)

    fd, tmp_name = tempfile.mkstemp(prefix=".export.", suffix=".tmp", dir=output_dir)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        if cancel is not None and cancel.is_set():
            raise ExportCancelled()
        os.replace(tmp_name, output_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Exported {fmt.value.upper()} to {output_path} ({len(content)} bytes)")
    return output_path


__all__ = [
    "ExportFormat",
    "MIME_TYPES",
    "export_filename",
    "serialize",
    "serializer_for",
    "write_export",
]
