from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from nervura.analytics import analyze
from nervura.config import Config, get_config, load_config
from nervura.context import AppContext
from nervura.core.errors import EmptyScopeError, StorageUnavailableError
from nervura.core.filters import RecordFilter, families
from nervura.core.schema import LIFE_FORMS, LatLng, Morphology, TreeRecord
from nervura.core.storage import RecordStore, create_storage
from nervura.export import ExportFormat, write_export
from nervura.logging_config import configure_logging
from nervura.photos import new_record_draft, share_text

app = typer.Typer(help="Botanical field records: local store, batch import and exports")


def _parse_date(value: Optional[str], option: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        typer.echo(f"Error: {option} must be an ISO date (e.g. 2024-01-31), got '{value}'", err=True)
        raise typer.Exit(2)


def _build_filter(
    family: Optional[str],
    life_form: Optional[str],
    query: Optional[str],
    date_from: Optional[str],
    date_to: Optional[str],
    has_photo: Optional[bool],
) -> RecordFilter:
    return RecordFilter(
        family=family,
        life_form=life_form,
        query=query,
        date_from=_parse_date(date_from, "--from"),
        date_to=_parse_date(date_to, "--to"),
        has_photo=has_photo,
    )


def _state(ctx: typer.Context) -> Dict[str, Any]:
    return ctx.ensure_object(dict)


def _store(ctx: typer.Context) -> RecordStore:
    state = _state(ctx)
    if "store" not in state:
        storage_cfg = dict(state["settings"].get("storage", {}))
        backend = state.get("backend") or storage_cfg.pop("backend", None) or Config.BACKEND
        storage_cfg.pop("backend", None)
        data_dir = Path(state.get("data_dir") or storage_cfg.get("path") or Config.DATA_DIR)
        storage_cfg["path"] = str(data_dir / "records.db") if backend == "sqlite" else str(data_dir)
        try:
            state["store"] = create_storage(backend, storage_cfg)
        except StorageUnavailableError as e:
            typer.echo(f"❌ Storage unavailable: {e.message}", err=True)
            raise typer.Exit(1)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(2)
    return state["store"]


def _scope(ctx: typer.Context, record_filter: RecordFilter) -> List[TreeRecord]:
    try:
        return record_filter.apply(_store(ctx).load_all())
    except StorageUnavailableError as e:
        typer.echo(f"❌ Storage unavailable: {e.message}", err=True)
        raise typer.Exit(1)


FAMILY_OPTION = typer.Option(None, "--family", help="Family (case-insensitive)")
LIFE_FORM_OPTION = typer.Option(None, "--life-form", help="Life form, e.g. 'árvore'")
QUERY_OPTION = typer.Option(None, "--query", "-q", help="Text in common/scientific name or family")
FROM_OPTION = typer.Option(None, "--from", help="Created on or after (ISO date)")
TO_OPTION = typer.Option(None, "--to", help="Created on or before (ISO date)")
PHOTO_OPTION = typer.Option(None, "--with-photos/--without-photos", help="Filter on having photos")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        dir_okay=False,
        file_okay=True,
        help="Optional config file",
    ),
    data_dir: Optional[Path] = typer.Option(
        None, "--data-dir", "-d", file_okay=False, help="Directory holding the record store"
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Storage backend: json, sqlite or memory"
    ),
    log_level: str = typer.Option(Config.LOG_LEVEL, "--log-level", help="Log level"),
    json_logs: bool = typer.Option(Config.LOG_JSON, "--json-logs/--text-logs", help="JSON log lines"),
) -> None:
    configure_logging(level=log_level, json_format=json_logs)
    try:
        get_config()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)
    settings = load_config(config)
    state = _state(ctx)
    state["settings"] = settings
    state["data_dir"] = data_dir
    state["backend"] = backend
    state["context"] = AppContext.from_config(settings)


@app.command("list")
def list_records(
    ctx: typer.Context,
    family: Optional[str] = FAMILY_OPTION,
    life_form: Optional[str] = LIFE_FORM_OPTION,
    query: Optional[str] = QUERY_OPTION,
    date_from: Optional[str] = FROM_OPTION,
    date_to: Optional[str] = TO_OPTION,
    has_photo: Optional[bool] = PHOTO_OPTION,
) -> None:
    """List records in the current scope."""
    scope = _scope(ctx, _build_filter(family, life_form, query, date_from, date_to, has_photo))
    if not scope:
        typer.echo("Nenhum registro.")
        return
    for record in scope:
        position = (
            f"{record.position.lat:.6f}, {record.position.lng:.6f}" if record.has_position else "-"
        )
        typer.echo(
            f"{record.id}\t{record.display_name}\t{record.family or '-'}\t{position}\t{len(record.photos)} foto(s)"
        )


@app.command()
def show(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    """Print one record as JSON, followed by its share text."""
    record = _store(ctx).get_one(record_id)
    if record is None:
        typer.echo(f"Error: no record with id '{record_id}'", err=True)
        raise typer.Exit(1)
    typer.echo(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
    typer.echo("")
    typer.echo(share_text(record))


@app.command()
def add(
    ctx: typer.Context,
    common_name: Optional[str] = typer.Option(None, "--common", help="Common name"),
    scientific_name: Optional[str] = typer.Option(None, "--scientific", help="Scientific name"),
    family: Optional[str] = typer.Option(None, "--family", help="Family (suggested from genus if omitted)"),
    life_form: Optional[str] = typer.Option(None, "--life-form", help="Life form"),
    lat: Optional[float] = typer.Option(None, "--lat", help="Latitude"),
    lng: Optional[float] = typer.Option(None, "--lng", help="Longitude"),
    photo: List[Path] = typer.Option(
        None, "--photo", "-p", exists=True, dir_okay=False, help="Photo file (repeatable)"
    ),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free notes"),
) -> None:
    """Create a record from the given fields and photos."""
    if life_form and life_form not in LIFE_FORMS:
        typer.echo(f"Error: --life-form must be one of: {', '.join(LIFE_FORMS)}", err=True)
        raise typer.Exit(2)
    context: AppContext = _state(ctx)["context"]
    draft = new_record_draft(
        list(photo) if photo else [],
        context,
        common_name=common_name,
        scientific_name=scientific_name,
    )
    if family:
        draft.family = family
    if lat is not None and lng is not None:
        draft.position = LatLng(lat=lat, lng=lng)
    if life_form:
        draft.morphology = Morphology(forma_vida=life_form)
    if notes:
        draft.notes = notes

    try:
        saved = _store(ctx).save_one(draft)
    except StorageUnavailableError as e:
        typer.echo(f"❌ Save failed: {e.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✅ Saved {saved.id}")


@app.command("import")
def import_records(
    ctx: typer.Context,
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with records"),
    keep_existing: bool = typer.Option(
        False,
        "--keep-existing",
        help="Existing top-level fields win over incoming ones",
    ),
) -> None:
    """Merge records from a JSON list or a JSON export into the store."""
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error: cannot read {source}: {e}", err=True)
        raise typer.Exit(1)

    batch = data.get("records") if isinstance(data, dict) else data
    if not isinstance(batch, list):
        typer.echo("Error: expected a JSON list of records or an export with 'records'", err=True)
        raise typer.Exit(1)

    try:
        report = _store(ctx).upsert_many(batch, prefer_new_fields=not keep_existing)
    except StorageUnavailableError as e:
        typer.echo(f"❌ Import failed: {e.message}", err=True)
        raise typer.Exit(1)

    typer.echo(
        f"✅ {len(report.inserted)} inserted, {len(report.updated)} updated, "
        f"{len(report.skipped)} skipped"
    )
    if report.skipped:
        typer.echo(f"⚠️  Skipped entries: {', '.join(report.skipped)}", err=True)


@app.command()
def remove(ctx: typer.Context, record_id: str = typer.Argument(..., help="Record id")) -> None:
    """Delete one record."""
    if _store(ctx).remove_one(record_id):
        typer.echo(f"🗑️  Removed {record_id}")
    else:
        typer.echo(f"No record with id '{record_id}'")


@app.command()
def wipe(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Confirm removal of ALL records"),
) -> None:
    """Delete every record."""
    if not yes:
        typer.echo("Refusing to wipe without --yes", err=True)
        raise typer.Exit(1)
    _store(ctx).wipe_all()
    typer.echo("🗑️  All records removed")


@app.command()
def export(
    ctx: typer.Context,
    fmt: ExportFormat = typer.Option(ExportFormat.CSV, "--format", "-f", help="Export format"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", file_okay=False, help="Directory for the export file"
    ),
    no_analysis: bool = typer.Option(False, "--no-analysis", help="Omit the analysis block (JSON)"),
    family: Optional[str] = FAMILY_OPTION,
    life_form: Optional[str] = LIFE_FORM_OPTION,
    query: Optional[str] = QUERY_OPTION,
    date_from: Optional[str] = FROM_OPTION,
    date_to: Optional[str] = TO_OPTION,
    has_photo: Optional[bool] = PHOTO_OPTION,
) -> None:
    """Export the current scope to a timestamped file."""
    settings = _state(ctx)["settings"]
    export_cfg = settings.get("export", {})
    output_dir = output or Path(export_cfg.get("dir", Config.EXPORT_DIR))
    include_analysis = export_cfg.get("include_analysis", True) and not no_analysis

    record_filter = _build_filter(family, life_form, query, date_from, date_to, has_photo)
    scope = _scope(ctx, record_filter)
    try:
        path = write_export(scope, fmt, output_dir, include_analysis=include_analysis)
    except EmptyScopeError as e:
        typer.echo(f"ℹ️  {e.message}")
        return
    except OSError as e:
        typer.echo(f"❌ Export failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✅ Export created: {path}")
    typer.echo(f"📊 Records: {len(scope)} | Format: {fmt.value}")
    active = record_filter.describe()
    if active:
        typer.echo(f"🔎 Filters: {json.dumps(active, ensure_ascii=False)}")


@app.command("families")
def list_families(ctx: typer.Context) -> None:
    """List the distinct families in the store."""
    for name in families(_scope(ctx, RecordFilter())):
        typer.echo(name)


@app.command()
def stats(
    ctx: typer.Context,
    family: Optional[str] = FAMILY_OPTION,
    life_form: Optional[str] = LIFE_FORM_OPTION,
    query: Optional[str] = QUERY_OPTION,
    date_from: Optional[str] = FROM_OPTION,
    date_to: Optional[str] = TO_OPTION,
    has_photo: Optional[bool] = PHOTO_OPTION,
) -> None:
    """Print grouped counts and measurement means for the scope."""
    scope = _scope(ctx, _build_filter(family, life_form, query, date_from, date_to, has_photo))
    typer.echo(json.dumps(analyze(scope).to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    app()
