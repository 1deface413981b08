"""
GPX 1.1 and KML 2.2 exports.

Both carry only placeable records. Text nodes are escaped by ElementTree,
which replaces ``&``, ``<`` and ``>`` and passes every other character
(quotes included) through verbatim.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, Optional
from xml.etree.ElementTree import Element, SubElement, indent, tostring

from nervura.core.schema import TreeRecord
from nervura.export.base import APP_NAME, cancellable

GPX_NAMESPACE = "http://www.topografix.com/GPX/1/1"
KML_NAMESPACE = "http://www.opengis.net/kml/2.2"


def _document(root: Element) -> bytes:
    indent(root, space="  ")
    body = tostring(root, encoding="unicode")
    return ('<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n").encode("utf-8")


def _description(record: TreeRecord) -> str:
    parts = [
        record.scientific_name or "",
        record.family or "",
        record.morphology.forma_vida or "",
    ]
    return " | ".join(p for p in parts if p)


def serialize_gpx(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """One ``<wpt>`` per record with a position."""
    root = Element("gpx", {"version": "1.1", "creator": APP_NAME, "xmlns": GPX_NAMESPACE})
    metadata = SubElement(root, "metadata")
    SubElement(metadata, "time").text = exported_at

    for record in cancellable(records, cancel):
        if not record.has_position:
            continue
        wpt = SubElement(
            root,
            "wpt",
            {"lat": repr(record.position.lat), "lon": repr(record.position.lng)},
        )
        SubElement(wpt, "time").text = record.created_at or ""
        SubElement(wpt, "name").text = record.display_name
        description = _description(record)
        if description:
            SubElement(wpt, "desc").text = description

    return _document(root)


def serialize_kml(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """One ``<Placemark>`` per record with a position."""
    root = Element("kml", {"xmlns": KML_NAMESPACE})
    document = SubElement(root, "Document")
    SubElement(document, "name").text = f"{APP_NAME} {exported_at}"

    for record in cancellable(records, cancel):
        if not record.has_position:
            continue
        placemark = SubElement(document, "Placemark")
        SubElement(placemark, "name").text = record.display_name
        description = _description(record)
        if description:
            SubElement(placemark, "description").text = description
        if record.created_at:
            timestamp = SubElement(placemark, "TimeStamp")
            SubElement(timestamp, "when").text = record.created_at
        # record ids are not valid XML ids (uuids may start with a digit)
        extended = SubElement(placemark, "ExtendedData")
        data = SubElement(extended, "Data", {"name": "id"})
        SubElement(data, "value").text = record.id
        point = SubElement(placemark, "Point")
        SubElement(point, "coordinates").text = (
            f"{record.position.lng!r},{record.position.lat!r},0"
        )

    return _document(root)
