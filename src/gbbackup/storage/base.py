"""
Record store interface consumed by the backup engine.

The engine never assumes a fixed schema: a store is a set of named
collections, each a list of JSON-compatible records.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any

Record = dict[str, Any]


class StorageError(Exception):
    """Base exception for record store errors."""

    pass


class CollectionNotFoundError(StorageError):
    """Raised when a requested collection does not exist in the store."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Collection not found: {name}")


class RecordStore(ABC):
    """
    Abstract keyed collection store.

    Implementations must be safe to read from several threads at once.
    Writes are expected to be exclusive; the engine does not lock.
    """

    @abstractmethod
    def get(self, name: str) -> Any:
        """
        Return the current contents of a collection.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
        """

    @abstractmethod
    def replace_all(self, name: str, records: list[Record]) -> None:
        """Replace the full contents of a collection."""

    @abstractmethod
    def collection_names(self) -> list[str]:
        """Return the names of all collections currently held."""


class MemoryStore(RecordStore):
    """Dictionary-backed store, mostly useful for tests and tooling."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, name: str) -> Any:
        with self._lock:
            if name not in self._data:
                raise CollectionNotFoundError(name)
            return copy.deepcopy(self._data[name])

    def replace_all(self, name: str, records: list[Record]) -> None:
        with self._lock:
            self._data[name] = copy.deepcopy(list(records))

    def collection_names(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())
