"""
Embedded photo metadata (EXIF) and record drafts built from photos.

Reading metadata never fails the caller: any problem with a file yields
None and the draft falls back to wall-clock time and the resolved position.
Photo bytes stay where they are; records only keep a reference.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from PIL import ExifTags, Image, UnidentifiedImageError

from nervura.context import AppContext
from nervura.core.protocols import GeolocationProvider, PhotoMetadataReader
from nervura.core.schema import LatLng, PhotoRef, TreeRecord, isoformat_z, utc_now
from nervura.core.storage import new_record_id

logger = logging.getLogger(__name__)

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# GPSInfo tag numbers
GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4


def _parse_offset(value: Any) -> timezone:
    # "+03:00" / "-03:00"; anything else is taken as UTC
    if isinstance(value, str) and len(value) == 6 and value[0] in "+-":
        try:
            hours, minutes = int(value[1:3]), int(value[4:6])
        except ValueError:
            return timezone.utc
        delta = timedelta(hours=hours, minutes=minutes)
        return timezone(delta if value[0] == "+" else -delta)
    return timezone.utc


def _to_degrees(value: Any, ref: Any) -> float:
    degrees, minutes, seconds = (float(part) for part in value)
    result = degrees + minutes / 60.0 + seconds / 3600.0
    if str(ref).upper() in ("S", "W"):
        result = -result
    return result


class ExifReader:
    """PhotoMetadataReader backed by Pillow."""

    def _exif(self, path: Path) -> Optional[Dict[str, Any]]:
        """Base tags plus the Exif and GPS sub-IFDs, read while the file is open."""
        try:
            with Image.open(path) as image:
                exif = image.getexif()
                return {
                    "base": dict(exif),
                    "exif": dict(exif.get_ifd(ExifTags.IFD.Exif)),
                    "gps": dict(exif.get_ifd(ExifTags.IFD.GPSInfo)),
                }
        except (OSError, UnidentifiedImageError, ValueError) as e:
            logger.debug(f"No EXIF for {path}: {e}")
            return None

    def capture_time(self, path: Path) -> Optional[datetime]:
        """DateTimeOriginal, then DateTime; None when absent or unreadable."""
        exif = self._exif(path)
        if exif is None:
            return None
        details = exif["exif"]
        raw = details.get(ExifTags.Base.DateTimeOriginal) or exif["base"].get(ExifTags.Base.DateTime)
        if not raw:
            return None
        try:
            moment = datetime.strptime(str(raw).strip("\x00 "), EXIF_DATE_FORMAT)
        except ValueError:
            logger.debug(f"Unparseable EXIF date {raw!r} in {path}")
            return None
        offset = _parse_offset(details.get(ExifTags.Base.OffsetTimeOriginal))
        return moment.replace(tzinfo=offset).astimezone(timezone.utc)

    def gps(self, path: Path) -> Optional[LatLng]:
        """Embedded GPS position; None when absent or unreadable."""
        exif = self._exif(path)
        if exif is None:
            return None
        info = exif["gps"]
        if GPS_LATITUDE not in info or GPS_LONGITUDE not in info:
            return None
        try:
            return LatLng(
                lat=_to_degrees(info[GPS_LATITUDE], info.get(GPS_LATITUDE_REF, "N")),
                lng=_to_degrees(info[GPS_LONGITUDE], info.get(GPS_LONGITUDE_REF, "E")),
            )
        except (TypeError, ValueError, ZeroDivisionError) as e:
            logger.debug(f"Bad GPS block in {path}: {e}")
            return None


def photo_ref(path: Path, reader: PhotoMetadataReader, caption: Optional[str] = None) -> PhotoRef:
    """Reference to ``path`` with whatever metadata could be read."""
    captured = reader.capture_time(path)
    position = reader.gps(path)
    return PhotoRef(
        url=str(path),
        name=Path(path).name,
        caption=caption,
        captured_at=isoformat_z(captured) if captured else None,
        lat=position.lat if position else None,
        lng=position.lng if position else None,
    )


def new_record_draft(
    photo_paths: Iterable[Path],
    context: AppContext,
    reader: Optional[PhotoMetadataReader] = None,
    provider: Optional[GeolocationProvider] = None,
    common_name: Optional[str] = None,
    scientific_name: Optional[str] = None,
) -> TreeRecord:
    """Assemble an unsaved record from photos and the current position.

    ``createdAt`` comes from the first photo's capture time when it has one,
    otherwise from the wall clock. The position prefers the first photo's GPS
    tag, then the geolocation provider, then the configured default.
    """
    reader = reader or ExifReader()
    photos: List[PhotoRef] = [photo_ref(Path(p), reader) for p in photo_paths]

    first = photos[0] if photos else None
    created_at = first.captured_at if first and first.captured_at else isoformat_z(utc_now())
    if first and first.lat is not None and first.lng is not None:
        position = LatLng(lat=first.lat, lng=first.lng)
    else:
        position = context.resolve_position(provider)

    return TreeRecord(
        id=new_record_id(),
        position=position,
        common_name=common_name,
        scientific_name=scientific_name,
        family=context.guess_family(scientific_name),
        photos=photos,
        created_at=created_at,
    )


def share_text(record: TreeRecord) -> str:
    """Plain-text summary of one record for a share sheet."""
    lines = [
        f"Nome popular: {record.common_name}" if record.common_name else "",
        f"Nome científico: {record.scientific_name}" if record.scientific_name else "",
        f"Família: {record.family}" if record.family else "",
        (
            f"Local: {record.position.lat:.6f}, {record.position.lng:.6f}"
            if record.has_position
            else ""
        ),
        f"Data: {record.created_at}" if record.created_at else "",
        (
            f"Forma de vida: {record.morphology.forma_vida}"
            if record.morphology.forma_vida
            else ""
        ),
        f"Anotações: {record.notes}" if record.notes else "",
    ]
    return "Registro botânico (NervuraColetora)\n\n" + "\n".join(line for line in lines if line)


__all__ = ["ExifReader", "photo_ref", "new_record_draft", "share_text"]
