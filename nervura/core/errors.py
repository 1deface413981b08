from __future__ import annotations

from dataclasses import dataclass


@dataclass
class StoreError(Exception):
    """Standard error raised by the record core.

    Parameters
    ----------
    code:
        Short machine readable error code.
    message:
        Human readable error message.
    """

    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code}: {self.message}"


class StorageUnavailableError(StoreError):
    """The storage backend could not be read or written at all."""

    def __init__(self, message: str):
        super().__init__("storage_unavailable", message)


class EmptyScopeError(StoreError):
    """An export was requested over a scope with no records."""

    def __init__(self, message: str = "Nada para exportar"):
        super().__init__("empty_scope", message)


class ExportCancelled(StoreError):
    """Serialization stopped because a cancellation was requested."""

    def __init__(self, message: str = "export cancelled"):
        super().__init__("export_cancelled", message)


__all__ = [
    "StoreError",
    "StorageUnavailableError",
    "EmptyScopeError",
    "ExportCancelled",
]
