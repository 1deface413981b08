"""RFC 4180 CSV export."""

from __future__ import annotations

import csv
import io
import threading
from typing import Any, Dict, Iterable, Optional

from nervura.core.schema import TreeRecord
from nervura.export.base import cancellable
from nervura.export.rows import CSV_COLUMNS, row_values


def _cell(value: Any) -> Any:
    # QUOTE_NONNUMERIC leaves int/float bare and quotes everything else
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def serialize_csv(
    records: Iterable[TreeRecord],
    *,
    exported_at: str,
    analysis: Optional[Dict[str, Any]] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """Header row plus one row per record, UTF-8 with CRLF line endings."""
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)
    for record in cancellable(records, cancel):
        writer.writerow([_cell(v) for v in row_values(record)])
    return buffer.getvalue().encode("utf-8")
