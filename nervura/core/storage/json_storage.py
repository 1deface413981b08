"""
JSON file-based key-value backend.

Keeps every key in a single JSON document (``records.json`` by default)
inside the data directory. Writes go through a temporary file and an atomic
rename, so a call either replaces the document completely or leaves the
previous one in place.

Suitable for development and single-user scenarios.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from nervura.core.errors import StorageUnavailableError
from nervura.core.schema import finite_json

logger = logging.getLogger(__name__)


class JSONFileBackend:
    """JSON document storage for the record collection.

    Implements the KeyValueBackend protocol.
    """

    def __init__(self, data_dir: Path, file_name: Optional[str] = None):
        """Initialize JSON storage.

        Args:
            data_dir: Directory for data files
            file_name: Document name (default: records.json)
        """
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / (file_name or "records.json")

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot create {self.data_dir}: {e}") from e

    def read(self, key: str) -> Any:
        """Return the value under ``key`` or None if absent or unreadable."""
        return self._load_document().get(key)

    def write(self, key: str, value: Any) -> None:
        """Replace the value under ``key`` atomically."""
        document = self._load_document()
        document[key] = value

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.data_dir
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(finite_json(document), f, indent=2, ensure_ascii=False, allow_nan=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to write {self.path}: {e}")
            raise StorageUnavailableError(f"Cannot write {self.path}: {e}") from e

        logger.debug(f"Wrote key {key} to {self.path}")

    def _load_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring malformed data file {self.path}: {e}")
            return {}
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {self.path}: {e}") from e

        if not isinstance(document, dict):
            logger.warning(f"Ignoring data file {self.path}: top level is not an object")
            return {}
        return document

    def close(self) -> None:
        """Nothing to release; present for symmetry with SQLiteBackend."""
