"""Tests for the record stores."""

import json
import tempfile
import unittest
from pathlib import Path

from gbbackup.storage import (
    CollectionNotFoundError,
    JsonFileStore,
    MemoryStore,
    StorageError,
)


class TestMemoryStore(unittest.TestCase):
    """Tests for MemoryStore."""

    def test_get_returns_copies(self) -> None:
        store = MemoryStore({"customers": [{"id": 1}]})

        records = store.get("customers")
        records[0]["id"] = 99

        self.assertEqual(store.get("customers"), [{"id": 1}])

    def test_missing_collection(self) -> None:
        with self.assertRaises(CollectionNotFoundError) as ctx:
            MemoryStore().get("customers")
        self.assertEqual(ctx.exception.name, "customers")

    def test_replace_all(self) -> None:
        store = MemoryStore({"customers": [{"id": 1}]})

        store.replace_all("customers", [{"id": 2}])
        store.replace_all("sales", [])

        self.assertEqual(store.get("customers"), [{"id": 2}])
        self.assertEqual(sorted(store.collection_names()), ["customers", "sales"])


class TestJsonFileStore(unittest.TestCase):
    """Tests for JsonFileStore."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "data" / "gbpos-db.json"
        self.store = JsonFileStore(self.path)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_missing_file_is_empty(self) -> None:
        self.assertEqual(self.store.collection_names(), [])
        with self.assertRaises(CollectionNotFoundError):
            self.store.get("customers")

    def test_replace_all_persists(self) -> None:
        """Writes create the file and keep other collections."""
        self.store.replace_all("customers", [{"id": 1}])
        self.store.replace_all("sales", [{"id": "s1"}])

        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data, {"customers": [{"id": 1}], "sales": [{"id": "s1"}]})
        self.assertEqual(JsonFileStore(self.path).get("customers"), [{"id": 1}])
        self.assertFalse(self.path.with_suffix(".tmp").exists())

    def test_non_list_values_are_returned_as_is(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"settings": {"theme": "dark"}}))

        self.assertEqual(self.store.get("settings"), {"theme": "dark"})

    def test_invalid_json(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken")

        with self.assertRaises(StorageError):
            self.store.collection_names()

    def test_top_level_must_be_object(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[]")

        with self.assertRaises(StorageError):
            self.store.get("customers")


if __name__ == "__main__":
    unittest.main()
