"""
Collection snapshot reader.

Reads a set of named collections from a record store. Reads are
independent, so they are dispatched concurrently and joined before the
snapshot is returned. A collection that cannot be read, or that does not
hold a list, is left out of the snapshot and recorded as unavailable; it
never aborts the backup.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from gbbackup.backup.errors import CollectionUnavailable
from gbbackup.backup.legacy import strip_legacy
from gbbackup.storage.base import CollectionNotFoundError, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_WORKERS = 8
MISSING_REASON = "not found"

# Every collection the application has ever shipped. Any given installation
# holds a subset of these.
KNOWN_COLLECTIONS = (
    "technicians",
    "timeEntries",
    "customers",
    "workOrders",
    "sales",
    "calendarEvents",
    "deviceCategories",
    "productCategories",
    "products",
    "partSources",
    "repairCategories",
    "repairItems",
    "intakeSources",
    "suppliers",
    "vendors",
    "invoices",
    "payments",
    "settings",
    "preferences",
    "userProfiles",
    "systemLogs",
)


@dataclass
class Snapshot:
    """
    Point-in-time copy of a set of collections.

    Attributes:
        collections: Collection name to list of records, in request order.
        unavailable: Collection name to reason, for collections left out.
        taken_at: When the reads completed (UTC).
    """

    collections: dict[str, list[Any]] = field(default_factory=dict)
    unavailable: dict[str, str] = field(default_factory=dict)
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def failed(self) -> dict[str, str]:
        """Unavailable collections that exist but could not be read."""
        return {
            name: reason
            for name, reason in self.unavailable.items()
            if reason != MISSING_REASON
        }

    @property
    def total_records(self) -> int:
        return sum(len(records) for records in self.collections.values())

    def count(self, name: str) -> int:
        return len(self.collections.get(name, []))


def _fetch(store: RecordStore, name: str) -> list[Any]:
    """Read one collection, raising CollectionUnavailable on any problem."""
    try:
        data = store.get(name)
    except CollectionNotFoundError as e:
        raise CollectionUnavailable(name, MISSING_REASON) from e
    except Exception as e:
        raise CollectionUnavailable(name, str(e) or type(e).__name__) from e

    if isinstance(data, (list, tuple)):
        return list(data)
    raise CollectionUnavailable(name, f"expected a list, got {type(data).__name__}")


def read_snapshot(
    store: RecordStore,
    names: Iterable[str],
    max_workers: int = DEFAULT_SNAPSHOT_WORKERS,
) -> Snapshot:
    """
    Read the named collections from the store.

    Legacy/derived calendar records are removed from the result.

    Args:
        store: Record store to read from.
        names: Collection names to read. Duplicates are ignored.
        max_workers: Maximum number of concurrent reads.

    Returns:
        Snapshot with the collections that could be read.
    """
    ordered = list(dict.fromkeys(names))
    snapshot = Snapshot()
    if not ordered:
        return snapshot

    workers = max(1, min(max_workers, len(ordered)))
    with ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="snapshot-read"
    ) as executor:
        futures = {name: executor.submit(_fetch, store, name) for name in ordered}

        collections: dict[str, list[Any]] = {}
        for name, future in futures.items():
            try:
                records = future.result()
            except CollectionUnavailable as e:
                if e.reason == MISSING_REASON:
                    logger.debug(str(e))
                else:
                    logger.warning(str(e))
                snapshot.unavailable[name] = e.reason
                continue
            collections[name] = records
            logger.debug(f"{name}: {len(records)} records")

    snapshot.collections = strip_legacy(collections)
    snapshot.taken_at = datetime.now(UTC)

    logger.info(
        f"Snapshot complete: {len(snapshot.collections)} collections, "
        f"{snapshot.total_records} records"
    )
    return snapshot


def comprehensive_names(
    store: RecordStore,
    extra: Iterable[str] = (),
) -> list[str]:
    """
    Return the full collection superset for a comprehensive snapshot.

    This is the known collection list, followed by any configured extras and
    whatever else the store currently reports.
    """
    names = list(KNOWN_COLLECTIONS) + list(extra)
    try:
        names.extend(store.collection_names())
    except Exception as e:
        logger.warning(f"Could not list store collections: {e}")
    return list(dict.fromkeys(names))
