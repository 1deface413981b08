"""
End-to-end tests for the command line interface.
"""

import json
import logging

import pytest
from typer.testing import CliRunner

from cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def invoke(tmp_path):
    data_dir = tmp_path / "data"

    def _invoke(*args):
        return runner.invoke(
            app, ["--data-dir", str(data_dir), "--log-level", "WARNING", *args]
        )

    return _invoke


@pytest.fixture
def batch_file(tmp_path):
    path = tmp_path / "batch.json"
    path.write_text(
        json.dumps(
            {
                "app": "NervuraColetora",
                "records": [
                    {
                        "id": "r1",
                        "commonName": "Ipê",
                        "family": "Bignoniaceae",
                        "position": {"lat": -22.7, "lng": -43.6},
                        "morphology": {"formaVida": "árvore", "cap_cm": 80},
                        "createdAt": "2024-01-01T00:00:00Z",
                    },
                    {
                        "id": "r2",
                        "commonName": "Ingá",
                        "family": "Fabaceae",
                        "createdAt": "2024-02-01T00:00:00Z",
                    },
                    "garbage",
                ],
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


class TestRecordCommands:
    def test_add_and_list(self, invoke):
        result = invoke(
            "add",
            "--common",
            "Ingá",
            "--scientific",
            "Inga edulis",
            "--lat=-22.7",
            "--lng=-43.6",
            "--life-form",
            "árvore",
        )
        assert result.exit_code == 0, result.output
        assert "✅ Saved" in result.output

        listed = invoke("list")
        assert listed.exit_code == 0
        assert "Ingá\tFabaceae\t-22.700000, -43.600000\t0 foto(s)" in listed.output

    def test_list_empty(self, invoke):
        result = invoke("list")

        assert result.exit_code == 0
        assert "Nenhum registro." in result.output

    def test_import_show_remove(self, invoke, batch_file):
        imported = invoke("import", str(batch_file))
        assert imported.exit_code == 0, imported.output
        assert "✅ 2 inserted, 0 updated, 1 skipped" in imported.output

        shown = invoke("show", "r1")
        assert shown.exit_code == 0
        assert '"commonName": "Ipê"' in shown.output
        assert "Registro botânico (NervuraColetora)" in shown.output

        removed = invoke("remove", "r1")
        assert "Removed r1" in removed.output
        assert invoke("show", "r1").exit_code == 1

    def test_import_twice_updates(self, invoke, batch_file):
        invoke("import", str(batch_file))
        again = invoke("import", str(batch_file), "--keep-existing")

        assert "0 inserted, 2 updated, 1 skipped" in again.output

    def test_import_rejects_non_list(self, invoke, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"records": 3}', encoding="utf-8")

        result = invoke("import", str(path))
        assert result.exit_code == 1

    def test_remove_missing(self, invoke):
        result = invoke("remove", "nope")

        assert result.exit_code == 0
        assert "No record with id 'nope'" in result.output

    def test_wipe_requires_confirmation(self, invoke, batch_file):
        invoke("import", str(batch_file))

        assert invoke("wipe").exit_code == 1
        assert "r1" in invoke("list").output

        assert invoke("wipe", "--yes").exit_code == 0
        assert "Nenhum registro." in invoke("list").output

    def test_families(self, invoke, batch_file):
        invoke("import", str(batch_file))

        result = invoke("families")

        assert result.exit_code == 0
        assert result.output.split() == ["Bignoniaceae", "Fabaceae"]

    def test_add_rejects_unknown_life_form(self, invoke):
        result = invoke("add", "--common", "X", "--life-form", "cogumelo")
        assert result.exit_code == 2

    def test_sqlite_backend(self, invoke, batch_file, tmp_path):
        result = invoke("--backend", "sqlite", "import", str(batch_file))

        assert result.exit_code == 0, result.output
        assert (tmp_path / "data" / "records.db").exists()
        assert "Ingá" in invoke("--backend", "sqlite", "list").output


class TestExportCommand:
    def test_export_geojson(self, invoke, batch_file, tmp_path):
        invoke("import", str(batch_file))
        out_dir = tmp_path / "out"

        result = invoke("export", "--format", "geojson", "--output", str(out_dir))

        assert result.exit_code == 0, result.output
        files = list(out_dir.glob("registros_*.geojson"))
        assert len(files) == 1
        document = json.loads(files[0].read_text(encoding="utf-8"))
        assert document["metadata"]["count"] == 2
        assert len(document["features"]) == 1

    def test_export_filtered_csv(self, invoke, batch_file, tmp_path):
        invoke("import", str(batch_file))
        out_dir = tmp_path / "out"

        result = invoke("export", "-f", "csv", "-o", str(out_dir), "--family", "fabaceae")

        assert result.exit_code == 0, result.output
        content = next(out_dir.glob("*.csv")).read_text(encoding="utf-8")
        assert "Ingá" in content
        assert "Ipê" not in content

    def test_export_empty_scope(self, invoke, tmp_path):
        out_dir = tmp_path / "out"
        result = invoke("export", "-f", "json", "-o", str(out_dir))

        assert result.exit_code == 0
        assert "Nada para exportar" in result.output
        assert not out_dir.exists() or list(out_dir.iterdir()) == []

    def test_bad_date_filter(self, invoke):
        result = invoke("export", "--from", "yesterday")
        assert result.exit_code == 2


class TestStatsCommand:
    def test_stats(self, invoke, batch_file):
        invoke("import", str(batch_file))

        result = invoke("stats")

        assert result.exit_code == 0
        stats = json.loads(result.stdout)
        assert stats["total"] == 2
        assert stats["withPosition"] == 1
        assert stats["meanCapCm"] == 80
        assert stats["dateRange"] == {
            "start": "2024-01-01T00:00:00Z",
            "end": "2024-02-01T00:00:00Z",
        }
