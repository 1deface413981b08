"""
Tests for the export serializers and the export writer.
"""

import csv
import io
import json
import threading
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest

from nervura.core.errors import EmptyScopeError, ExportCancelled
from nervura.core.schema import TreeRecord
from nervura.export import (
    ExportFormat,
    export_filename,
    serialize,
    serializer_for,
    write_export,
)
from nervura.export.rows import CSV_COLUMNS
from nervura.export.spreadsheet import MANIFEST_SHEET, RECORDS_SHEET, read_xlsx_rows

NOW = datetime(2024, 6, 1, 12, 30, 45, tzinfo=timezone.utc)

GPX_NS = {"gpx": "http://www.topografix.com/GPX/1/1"}
KML_NS = {"kml": "http://www.opengis.net/kml/2.2"}


def reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


@pytest.fixture
def records():
    return [
        TreeRecord(
            id="r1",
            position={"lat": -22.7, "lng": -43.6},
            commonName="Ipê",
            scientificName="Handroanthus albus",
            family="Bignoniaceae",
            morphology={"formaVida": "árvore", "cap_cm": 120.5, "saude": "boa"},
            photos=[{"url": "file:///fotos/ipe.jpg"}],
            createdAt="2024-01-01T00:00:00Z",
            updatedAt="2024-01-02T00:00:00Z",
        ),
        TreeRecord(
            id="r2",
            commonName='Pé-de-"anjo"',
            family="Fabaceae",
            createdAt="2024-02-01T00:00:00Z",
        ),
        TreeRecord(
            id="r3",
            position={"lat": -22.75, "lng": -43.68},
            commonName="Cedro & <Cia>",
            createdAt="2024-03-01T00:00:00Z",
        ),
    ]


class TestDispatch:
    """Format registry."""

    def test_every_format_has_a_serializer(self):
        for fmt in ExportFormat:
            assert callable(serializer_for(fmt))

    def test_mime_types(self):
        assert ExportFormat.GEOJSON.mime_type == "application/geo+json"
        assert ExportFormat.CSV.mime_type == "text/csv"
        assert ExportFormat.XLSX.extension == "xlsx"

    def test_unknown_format(self, records):
        with pytest.raises(ValueError):
            serialize(records, "shapefile", now=NOW)

    def test_empty_scope(self):
        for fmt in ExportFormat:
            with pytest.raises(EmptyScopeError) as exc_info:
                serialize([], fmt, now=NOW)
            assert exc_info.value.code == "empty_scope"

    def test_deterministic_for_fixed_time(self, records):
        for fmt in (ExportFormat.JSON, ExportFormat.GEOJSON, ExportFormat.CSV, ExportFormat.GPX, ExportFormat.KML):
            assert serialize(records, fmt, now=NOW) == serialize(records, fmt, now=NOW)

    def test_export_filename(self):
        assert export_filename(ExportFormat.GEOJSON, NOW) == "registros_20240601-123045.geojson"
        assert export_filename("csv", NOW, prefix="campo") == "campo_20240601-123045.csv"


class TestJSONExport:
    def test_envelope(self, records):
        document = json.loads(serialize(records, ExportFormat.JSON, now=NOW))

        assert document["app"] == "NervuraColetora"
        assert document["exportedAt"] == "2024-06-01T12:30:45.000Z"
        assert document["count"] == 3
        assert [r["id"] for r in document["records"]] == ["r1", "r2", "r3"]
        assert document["records"][0]["morphology"]["formaVida"] == "árvore"
        assert document["analysis"]["total"] == 3

    def test_without_analysis(self, records):
        document = json.loads(serialize(records, ExportFormat.JSON, now=NOW, include_analysis=False))
        assert "analysis" not in document

    def test_non_ascii_kept(self, records):
        content = serialize(records, ExportFormat.JSON, now=NOW)
        assert "Ipê".encode("utf-8") in content

    def test_non_finite_numbers_never_written(self):
        """Output parses as strict JSON even when inputs carried NaN or infinity."""
        record = TreeRecord(
            id="x",
            position={"lat": float("nan"), "lng": 1.0},
            morphology={"cap_cm": float("inf"), "altura_m": 4.5},
            photos=[{"url": "a.jpg", "lat": float("-inf"), "lng": 2.0}],
        )

        for fmt in (ExportFormat.JSON, ExportFormat.GEOJSON):
            content = serialize([record], fmt, now=NOW).decode("utf-8")
            json.loads(content, parse_constant=reject_constant)

        exported = json.loads(serialize([record], ExportFormat.JSON, now=NOW))["records"][0]
        assert "position" not in exported
        assert "cap_cm" not in exported["morphology"]
        assert exported["morphology"]["altura_m"] == 4.5
        assert exported["photos"][0] == {"url": "a.jpg", "lng": 2.0}


class TestGeoJSONExport:
    def test_feature_collection(self, records):
        document = json.loads(serialize(records, ExportFormat.GEOJSON, now=NOW))

        assert document["type"] == "FeatureCollection"
        assert [f["properties"]["id"] for f in document["features"]] == ["r1", "r3"]
        assert document["metadata"]["count"] == 3
        assert document["metadata"]["exported"] == 2

    def test_coordinates_are_lng_lat(self, records):
        document = json.loads(serialize(records, ExportFormat.GEOJSON, now=NOW))
        feature = document["features"][0]

        assert feature["geometry"] == {"type": "Point", "coordinates": [-43.6, -22.7]}
        assert feature["properties"]["photoCount"] == 1
        assert feature["properties"]["photos"] == ["file:///fotos/ipe.jpg"]

    def test_non_finite_position_excluded(self):
        record = TreeRecord(id="nan", position={"lat": float("nan"), "lng": 1.0})
        document = json.loads(serialize([record], ExportFormat.GEOJSON, now=NOW))

        assert document["features"] == []
        assert document["metadata"]["count"] == 1


class TestCSVExport:
    def test_header_and_line_endings(self, records):
        content = serialize(records, ExportFormat.CSV, now=NOW).decode("utf-8")
        lines = content.split("\r\n")

        assert lines[0] == ",".join(f'"{c}"' for c in CSV_COLUMNS)
        assert len(lines) == 5  # header, three rows, trailing empty string
        assert lines[-1] == ""

    def test_quotes_doubled(self, records):
        content = serialize(records, ExportFormat.CSV, now=NOW).decode("utf-8")
        assert '"Pé-de-""anjo"""' in content

    def test_numbers_bare_absent_values_empty(self, records):
        content = serialize(records, ExportFormat.CSV, now=NOW).decode("utf-8")
        first_row = content.split("\r\n")[1]

        assert '"r1","Ipê","Handroanthus albus","Bignoniaceae","árvore",-22.7,-43.6,120.5,"","boa",1,' in first_row

    def test_reads_back(self, records):
        content = serialize(records, ExportFormat.CSV, now=NOW).decode("utf-8")
        rows = list(csv.DictReader(io.StringIO(content, newline="")))

        assert [r["id"] for r in rows] == ["r1", "r2", "r3"]
        assert rows[1]["commonName"] == 'Pé-de-"anjo"'
        assert rows[1]["lat"] == ""
        assert rows[2]["commonName"] == "Cedro & <Cia>"


class TestGPXExport:
    def test_waypoints(self, records):
        root = ET.fromstring(serialize(records, ExportFormat.GPX, now=NOW))
        waypoints = root.findall("gpx:wpt", GPX_NS)

        assert root.get("version") == "1.1"
        assert root.get("creator") == "NervuraColetora"
        assert root.find("gpx:metadata/gpx:time", GPX_NS).text == "2024-06-01T12:30:45.000Z"
        assert len(waypoints) == 2
        assert waypoints[0].get("lat") == "-22.7"
        assert waypoints[0].get("lon") == "-43.6"
        assert waypoints[0].find("gpx:time", GPX_NS).text == "2024-01-01T00:00:00Z"
        assert waypoints[0].find("gpx:desc", GPX_NS).text == "Handroanthus albus | Bignoniaceae | árvore"

    def test_markup_escaped(self, records):
        content = serialize(records, ExportFormat.GPX, now=NOW).decode("utf-8")

        assert "<name>Cedro &amp; &lt;Cia&gt;</name>" in content
        root = ET.fromstring(content.encode("utf-8"))
        assert root.findall("gpx:wpt/gpx:name", GPX_NS)[1].text == "Cedro & <Cia>"

    def test_xml_declaration(self, records):
        content = serialize(records, ExportFormat.GPX, now=NOW)
        assert content.startswith(b'<?xml version="1.0" encoding="UTF-8"?>')


class TestKMLExport:
    def test_placemarks(self, records):
        root = ET.fromstring(serialize(records, ExportFormat.KML, now=NOW))
        placemarks = root.findall("kml:Document/kml:Placemark", KML_NS)

        ids = [p.find("kml:ExtendedData/kml:Data[@name='id']/kml:value", KML_NS).text for p in placemarks]
        assert ids == ["r1", "r3"]
        assert placemarks[0].find("kml:Point/kml:coordinates", KML_NS).text == "-43.6,-22.7,0"
        assert placemarks[0].find("kml:TimeStamp/kml:when", KML_NS).text == "2024-01-01T00:00:00Z"
        # r3 has neither scientific name, family nor life form
        assert placemarks[1].find("kml:description", KML_NS) is None

    def test_markup_escaped(self, records):
        content = serialize(records, ExportFormat.KML, now=NOW).decode("utf-8")
        assert "<name>Cedro &amp; &lt;Cia&gt;</name>" in content

    def test_uuid_ids_not_used_as_xml_ids(self):
        record = TreeRecord(id="3f2c9a1e-0000-4000-8000-000000000000", position={"lat": 1.0, "lng": 2.0})
        root = ET.fromstring(serialize([record], ExportFormat.KML, now=NOW))

        placemark = root.find("kml:Document/kml:Placemark", KML_NS)
        assert "id" not in placemark.attrib
        assert placemark.find("kml:ExtendedData/kml:Data/kml:value", KML_NS).text == record.id


class TestXLSXExport:
    def test_reads_back(self, records):
        content = serialize(records, ExportFormat.XLSX, now=NOW)
        rows = read_xlsx_rows(content)

        assert [r["id"] for r in rows] == ["r1", "r2", "r3"]
        assert rows[0]["commonName"] == "Ipê"
        assert rows[1]["commonName"] == 'Pé-de-"anjo"'
        assert rows[0]["photoCount"] == 1

    def test_manifest_sheet(self, records):
        import pyexcel

        content = serialize(records, ExportFormat.XLSX, now=NOW)
        book = pyexcel.get_book(file_type="xlsx", file_content=content)

        assert book.sheet_names() == [RECORDS_SHEET, MANIFEST_SHEET]
        manifest = {row[0]: row[1] for row in book[MANIFEST_SHEET].to_array()[1:]}
        assert manifest["app"] == "NervuraColetora"
        assert manifest["count"] == 3


class TestCancellation:
    def test_cancel_before_start(self, records):
        cancel = threading.Event()
        cancel.set()

        for fmt in ExportFormat:
            with pytest.raises(ExportCancelled):
                serialize(records, fmt, now=NOW, cancel=cancel)

    def test_cancel_during_serialization(self, records):
        """Setting the event after the first record stops before the next one."""
        for fmt in ExportFormat:
            cancel = threading.Event()
            handed_out = []

            def scope():
                for record in records:
                    handed_out.append(record.id)
                    yield record
                    cancel.set()

            with pytest.raises(ExportCancelled):
                serializer_for(fmt)(scope(), exported_at="2024-06-01T12:30:45.000Z", cancel=cancel)

            assert handed_out == ["r1", "r2"]

    def test_cancelled_write_leaves_no_file(self, records, tmp_path):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ExportCancelled):
            write_export(records, ExportFormat.CSV, tmp_path, now=NOW, cancel=cancel)

        assert list(tmp_path.iterdir()) == []


class TestWriteExport:
    def test_writes_named_artifact(self, records, tmp_path):
        path = write_export(records, ExportFormat.GEOJSON, tmp_path / "out", now=NOW)

        assert path.name == "registros_20240601-123045.geojson"
        assert json.loads(path.read_text(encoding="utf-8"))["metadata"]["count"] == 3
        assert [p.name for p in path.parent.iterdir()] == [path.name]

    def test_empty_scope_writes_nothing(self, tmp_path):
        with pytest.raises(EmptyScopeError):
            write_export([], ExportFormat.JSON, tmp_path, now=NOW)

        assert list(tmp_path.iterdir()) == []
