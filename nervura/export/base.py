"""Helpers shared by the export serializers."""

from __future__ import annotations

import threading
from typing import Iterable, Iterator, Optional, TypeVar

from nervura.core.errors import ExportCancelled

APP_NAME = "NervuraColetora"

T = TypeVar("T")


def cancellable(items: Iterable[T], cancel: Optional[threading.Event]) -> Iterator[T]:
    """Yield ``items``, stopping with ExportCancelled once ``cancel`` is set."""
    for item in items:
        if cancel is not None and cancel.is_set():
            raise ExportCancelled()
        yield item