"""
Record stores for the backup engine.

The backup engine talks to an external store through the ``RecordStore``
interface: ``get`` a collection, ``replace_all`` of a collection, and list
``collection_names``. Two implementations are provided.

Storage Structure (JsonFileStore):
    gbpos-db.json
        {
            "customers": [{...}, ...],
            "calendarEvents": [{...}, ...],
            ...
        }

Usage:
    from gbbackup.storage import JsonFileStore

    store = JsonFileStore(Path("~/.gbbackup/data/gbpos-db.json").expanduser())
    customers = store.get("customers")
    store.replace_all("customers", customers)
"""

from gbbackup.storage.base import (
    CollectionNotFoundError,
    MemoryStore,
    Record,
    RecordStore,
    StorageError,
)
from gbbackup.storage.json_store import JsonFileStore

__all__ = [
    # Interface
    "RecordStore",
    "Record",
    # Implementations
    "JsonFileStore",
    "MemoryStore",
    # Exceptions
    "StorageError",
    "CollectionNotFoundError",
]
