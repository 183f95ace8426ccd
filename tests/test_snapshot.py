"""Tests for the collection snapshot reader."""

import unittest
from unittest.mock import MagicMock

from gbbackup.backup.snapshot import (
    KNOWN_COLLECTIONS,
    MISSING_REASON,
    Snapshot,
    comprehensive_names,
    read_snapshot,
)
from gbbackup.storage import CollectionNotFoundError, MemoryStore


class TestReadSnapshot(unittest.TestCase):
    """Tests for read_snapshot."""

    def setUp(self) -> None:
        self.store = MemoryStore(
            {
                "customers": [{"id": 1}, {"id": 2}],
                "sales": [],
                "calendarEvents": [
                    {"id": 10, "category": "event"},
                    {"id": 11, "type": "schedule"},
                ],
                "settings": {"theme": "dark"},
            }
        )

    def test_reads_requested_collections(self) -> None:
        """Existing collections are read, including empty ones."""
        snapshot = read_snapshot(self.store, ["customers", "sales"])

        self.assertEqual(list(snapshot.collections), ["customers", "sales"])
        self.assertEqual(snapshot.count("customers"), 2)
        self.assertEqual(snapshot.collections["sales"], [])
        self.assertEqual(snapshot.unavailable, {})

    def test_missing_collection_is_omitted(self) -> None:
        """A collection the store does not hold is left out, not empty."""
        snapshot = read_snapshot(self.store, ["customers", "invoices"])

        self.assertNotIn("invoices", snapshot.collections)
        self.assertEqual(snapshot.unavailable, {"invoices": MISSING_REASON})
        self.assertEqual(snapshot.failed, {})

    def test_non_list_collection_is_omitted(self) -> None:
        """A collection holding a scalar or mapping is left out."""
        snapshot = read_snapshot(self.store, ["settings", "customers"])

        self.assertNotIn("settings", snapshot.collections)
        self.assertIn("settings", snapshot.failed)
        self.assertIn("customers", snapshot.collections)

    def test_store_errors_do_not_propagate(self) -> None:
        """A failing read is recorded and the other reads still complete."""
        store = MagicMock()

        def get(name):
            if name == "sales":
                raise RuntimeError("disk on fire")
            if name == "workOrders":
                raise CollectionNotFoundError(name)
            return [{"name": name}]

        store.get.side_effect = get

        snapshot = read_snapshot(store, ["customers", "sales", "workOrders", "technicians"])

        self.assertEqual(list(snapshot.collections), ["customers", "technicians"])
        self.assertEqual(snapshot.failed, {"sales": "disk on fire"})
        self.assertEqual(snapshot.unavailable["workOrders"], MISSING_REASON)

    def test_tuple_is_accepted_as_sequence(self) -> None:
        """Tuples returned by a store are converted to lists."""
        store = MagicMock()
        store.get.return_value = ({"id": 1},)

        snapshot = read_snapshot(store, ["customers"])

        self.assertEqual(snapshot.collections["customers"], [{"id": 1}])

    def test_legacy_calendar_records_removed(self) -> None:
        """Schedule-derived calendar entries never reach the snapshot."""
        snapshot = read_snapshot(self.store, ["calendarEvents"])

        self.assertEqual(snapshot.collections["calendarEvents"], [{"id": 10, "category": "event"}])

    def test_duplicates_and_empty_request(self) -> None:
        """Duplicate names are read once; an empty request reads nothing."""
        store = MagicMock()
        store.get.return_value = []

        read_snapshot(store, ["sales", "sales"])
        self.assertEqual(store.get.call_count, 1)

        snapshot = read_snapshot(store, [])
        self.assertEqual(snapshot.collections, {})

    def test_single_worker(self) -> None:
        """Reads also work with a single worker."""
        snapshot = read_snapshot(self.store, ["customers", "sales"], max_workers=1)
        self.assertEqual(snapshot.total_records, 2)


class TestComprehensiveNames(unittest.TestCase):
    """Tests for the comprehensive collection superset."""

    def test_includes_known_extra_and_store_names(self) -> None:
        """Known names come first, then extras, then store names, without repeats."""
        store = MemoryStore({"customers": [], "loyaltyCards": []})

        names = comprehensive_names(store, extra=["giftCards"])

        self.assertEqual(names[: len(KNOWN_COLLECTIONS)], list(KNOWN_COLLECTIONS))
        self.assertIn("giftCards", names)
        self.assertIn("loyaltyCards", names)
        self.assertEqual(names.count("customers"), 1)

    def test_listing_failure_is_tolerated(self) -> None:
        """If the store cannot list collections the known set is still used."""
        store = MagicMock()
        store.collection_names.side_effect = RuntimeError("nope")

        names = comprehensive_names(store)

        self.assertEqual(names, list(KNOWN_COLLECTIONS))


class TestSnapshotModel(unittest.TestCase):
    """Tests for the Snapshot dataclass."""

    def test_totals(self) -> None:
        snapshot = Snapshot(collections={"a": [1, 2], "b": [3]})
        self.assertEqual(snapshot.total_records, 3)
        self.assertEqual(snapshot.count("a"), 2)
        self.assertEqual(snapshot.count("missing"), 0)


if __name__ == "__main__":
    unittest.main()
