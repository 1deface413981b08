"""In-memory key-value backend, used when no durable medium is available."""

import copy
from typing import Any, Dict


class MemoryBackend:
    """Process-local storage. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def read(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    def write(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def close(self) -> None:
        self._values.clear()
