from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

import pyexcel

from nervura.core.schema import TreeRecord
from nervura.export.base import APP_NAME, cancellable
from nervura.export.rows import CSV_COLUMNS, row_values

RECORDS_SHEET = "registros"
MANIFEST_SHEET = "manifest"


def build_manifest(exported_at: str, count: int) -> Dict[str, Any]:
    """Export metadata written to the manifest sheet."""
    return {"app": APP_NAME, "exportedAt": exported_at, "count": count}


def serialize_xlsx(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """
    Workbook with the flattened records sheet and a manifest sheet.

    Rows share the CSV column order; absent values are empty cells.
    """
    sheet: List[List[Any]] = [list(CSV_COLUMNS)]
    for record in cancellable(records, cancel):
        sheet.append(["" if v is None else v for v in row_values(record)])

    manifest = build_manifest(exported_at, len(sheet) - 1)
    manifest_sheet = [["key", "value"]] + [[k, v] for k, v in manifest.items()]
    book = pyexcel.Book(
        sheets=OrderedDict([(RECORDS_SHEET, sheet), (MANIFEST_SHEET, manifest_sheet)])
    )
    stream = book.save_to_memory("xlsx")
    return stream.getvalue()


def read_xlsx_rows(content: bytes) -> List[Dict[str, Any]]:
    """Read the records sheet of an exported workbook back as dicts."""
    book = pyexcel.get_book(file_type="xlsx", file_content=content)
    records_sheet = book[RECORDS_SHEET]
    records_sheet.name_columns_by_row(0)
    return list(records_sheet.to_records())


__all__ = ["serialize_xlsx", "read_xlsx_rows", "build_manifest"]
