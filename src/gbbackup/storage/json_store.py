"""
Single-file JSON record store.

The whole database is one JSON object mapping collection name to a list of
records, the layout used by the desktop application's ``gbpos-db.json``.
Writes are atomic (temporary file then rename) and serialized by a lock.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from gbbackup.storage.base import (
    CollectionNotFoundError,
    Record,
    RecordStore,
    StorageError,
)

logger = logging.getLogger(__name__)


class JsonFileStore(RecordStore):
    """
    Record store persisted to a single JSON file.

    A missing file is treated as an empty store; it is created on the first
    write.

    Attributes:
        path: Location of the JSON database file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self, name: str) -> Any:
        data = self._read()
        if name not in data:
            raise CollectionNotFoundError(name)
        return data[name]

    def replace_all(self, name: str, records: list[Record]) -> None:
        with self._lock:
            data = self._read()
            data[name] = list(records)
            self._write(data)
        logger.debug(f"Replaced {name} with {len(records)} records")

    def collection_names(self) -> list[str]:
        return list(self._read().keys())

    def _read(self) -> dict[str, Any]:
        """Load the whole database. Each call returns fresh objects."""
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StorageError(f"Database file is not valid JSON: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read database file: {e}") from e

        if not isinstance(data, dict):
            raise StorageError("Database file must contain a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        """Write the database atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Cannot write database file: {e}") from e
