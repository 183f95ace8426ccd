"""
Tests for the backup manager.

Tests cover:
- Comprehensive and tile-selected plain backups
- Encrypted backups and password confirmation
- Restore with and without a pre-restore backup
- Partial restore failures
- Background execution and the last-backup record
"""

import json
import os
import stat
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from gbbackup.backup import BackupManager
from gbbackup.backup.codec import ENCRYPTED_EXTENSION
from gbbackup.backup.manager import LAST_BACKUP_FILE, PRE_RESTORE_LABEL
from gbbackup.backup.payload import BackupKind, build_payload
from gbbackup.storage import MemoryStore

SAMPLE_DATA = {
    "customers": [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}],
    "sales": [{"id": "s1", "total": 19.99}],
    "calendarEvents": [
        {"id": "e1", "category": "parts", "title": "Screen arrives"},
        {"id": "e2", "category": "event", "title": "Holiday sale"},
        {"id": "e3", "category": "note", "title": "Misc"},
        {"id": "e4", "type": "schedule", "technicianId": "t1"},
    ],
}


class FlakyStore(MemoryStore):
    """Memory store whose reads or writes fail for chosen collections."""

    def __init__(self, initial, broken_reads=(), broken_writes=()):
        super().__init__(initial)
        self.broken_reads = set(broken_reads)
        self.broken_writes = set(broken_writes)

    def get(self, name):
        if name in self.broken_reads:
            raise RuntimeError(f"read error on {name}")
        return super().get(name)

    def replace_all(self, name, records):
        if name in self.broken_writes:
            raise RuntimeError(f"write error on {name}")
        super().replace_all(name, records)


class BackupManagerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.backup_dir = Path(self.temp_dir.name) / "backups"
        self.store = MemoryStore(SAMPLE_DATA)
        self.manager = BackupManager(self.store, self.backup_dir, source_label="Test Shop")

    def tearDown(self) -> None:
        self.manager.close()
        self.temp_dir.cleanup()

    def read_json(self, path: Path) -> dict:
        with open(path, encoding="utf-8") as f:
            return json.load(f)


class TestCreateBackup(BackupManagerTestCase):
    """Tests for BackupManager.create_backup."""

    def test_full_backup(self) -> None:
        """A comprehensive backup holds every existing collection."""
        result = self.manager.create_backup()

        self.assertTrue(result.success, result.error)
        self.assertTrue(result.path.exists())
        self.assertTrue(result.path.name.startswith("full-backup-"))
        self.assertEqual(result.path.suffix, ".json")
        self.assertFalse(result.encrypted)
        self.assertEqual(result.size_bytes, result.path.stat().st_size)

        document = self.read_json(result.path)
        self.assertEqual(document["source"], "Test Shop")
        self.assertTrue(document["dataComplete"])
        self.assertEqual(document["metadata"]["backupType"], "comprehensive")
        self.assertEqual(
            set(document["collections"]), {"customers", "sales", "calendarEvents"}
        )
        # Schedule-derived calendar entries are never exported
        self.assertEqual(len(document["collections"]["calendarEvents"]), 3)
        self.assertEqual(document["metadata"]["totalRecords"], 6)

    def test_unreadable_collection_marks_backup_incomplete(self) -> None:
        store = FlakyStore(SAMPLE_DATA, broken_reads={"sales"})
        manager = BackupManager(store, self.backup_dir)

        result = manager.create_backup()

        self.assertTrue(result.success)
        self.assertFalse(result.payload.data_complete)
        self.assertNotIn("sales", result.payload.collections)

    def test_selection_backup(self) -> None:
        """Only fully selected tiles contribute, with their filters applied."""
        result = self.manager.create_backup(selection={"calendarEvents"})

        self.assertTrue(result.success, result.error)
        self.assertEqual(result.payload.metadata.kind, BackupKind.PARTIAL)
        self.assertEqual(list(result.payload.collections), ["calendarEvents"])
        ids = [record["id"] for record in result.payload.collections["calendarEvents"]]
        self.assertEqual(ids, ["e1", "e2"])
        self.assertTrue(
            result.path.name.startswith("Cal-Orders-Parts+Cal-Events+Cal-Consultations-")
        )

    def test_selection_label_in_file_name(self) -> None:
        result = self.manager.create_backup(selection={"customers"})

        self.assertTrue(result.path.name.startswith("Customers-"))
        self.assertEqual(result.payload.collections["customers"], SAMPLE_DATA["customers"])

    def test_empty_selection_fails(self) -> None:
        result = self.manager.create_backup(selection=set())

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Please select at least one tile")

    def test_encrypted_backup(self) -> None:
        result = self.manager.create_backup(password="s3cret", confirmation="s3cret")

        self.assertTrue(result.success, result.error)
        self.assertTrue(result.encrypted)
        self.assertEqual(result.path.suffix, ENCRYPTED_EXTENSION)
        self.assertTrue(result.path.name.startswith("GadgetBoyPOS-Backup-"))
        self.assertNotIn("Grace", result.path.read_text(encoding="utf-8"))
        if os.name == "posix":
            self.assertEqual(stat.S_IMODE(result.path.stat().st_mode), 0o600)

        preview = self.manager.preview_file(result.path, password="s3cret")
        self.assertTrue(preview.encrypted)
        self.assertEqual(preview.counts["customers"], 2)

    def test_password_mismatch_writes_nothing(self) -> None:
        result = self.manager.create_backup(password="s3cret", confirmation="s3cr3t")

        self.assertFalse(result.success)
        self.assertEqual(result.error, "Passwords do not match.")
        self.assertFalse(self.backup_dir.exists())

    def test_output_path_is_file(self) -> None:
        target = Path(self.temp_dir.name) / "occupied"
        target.write_text("x")

        result = self.manager.create_backup(output_path=target)

        self.assertFalse(result.success)
        self.assertIn("is a file", result.error)

    def test_custom_output_directory(self) -> None:
        output_dir = Path(self.temp_dir.name) / "elsewhere"

        result = self.manager.create_backup(output_path=output_dir)

        self.assertEqual(result.path.parent, output_dir)

    def test_last_backup_record(self) -> None:
        self.assertIsNone(self.manager.last_backup())

        result = self.manager.create_backup()

        record = self.manager.last_backup()
        self.assertEqual(record["lastBackupPath"], str(result.path))
        self.assertIn("lastBackupDate", record)
        self.assertTrue((self.backup_dir / LAST_BACKUP_FILE).exists())


class TestRestoreBackup(BackupManagerTestCase):
    """Tests for BackupManager.restore_backup."""

    def test_restore_round_trip(self) -> None:
        """Restoring puts back the exported collections and backs up live data."""
        backup = self.manager.create_backup()
        self.store.replace_all("customers", [])
        self.store.replace_all("products", [{"id": "p1"}])

        result = self.manager.restore_backup(backup.path)

        self.assertTrue(result.success, result.error)
        self.assertEqual(self.store.get("customers"), SAMPLE_DATA["customers"])
        self.assertEqual(self.store.get("products"), [{"id": "p1"}])
        self.assertEqual(result.restored["customers"], 2)
        self.assertEqual(result.records_restored, 6)

        self.assertIsNotNone(result.backup_created)
        self.assertTrue(result.backup_created.name.startswith(PRE_RESTORE_LABEL))
        pre_restore = self.read_json(result.backup_created)
        self.assertEqual(pre_restore["collections"]["customers"], [])

    def test_restore_without_pre_restore_backup(self) -> None:
        backup = self.manager.create_backup(selection={"sales"})

        result = self.manager.restore_backup(backup.path, backup_existing=False)

        self.assertTrue(result.success)
        self.assertIsNone(result.backup_created)
        self.assertEqual(list(result.restored), ["sales"])

    def test_verify_only_leaves_store_alone(self) -> None:
        backup = self.manager.create_backup()
        self.store.replace_all("customers", [])

        result = self.manager.restore_backup(backup.path, verify_only=True)

        self.assertTrue(result.success)
        self.assertEqual(result.preview.counts["customers"], 2)
        self.assertEqual(self.store.get("customers"), [])

    def test_encrypted_restore(self) -> None:
        backup = self.manager.create_backup(password="pw", confirmation="pw")
        self.store.replace_all("sales", [])

        missing = self.manager.restore_backup(backup.path, backup_existing=False)
        wrong = self.manager.restore_backup(backup.path, password="nope", backup_existing=False)
        right = self.manager.restore_backup(backup.path, password="pw", backup_existing=False)

        self.assertFalse(missing.success)
        self.assertFalse(wrong.success)
        self.assertEqual(wrong.error, "Invalid password or corrupted backup file")
        self.assertTrue(right.success)
        self.assertEqual(self.store.get("sales"), SAMPLE_DATA["sales"])

    def test_missing_file(self) -> None:
        result = self.manager.restore_backup(Path(self.temp_dir.name) / "nope.json")

        self.assertFalse(result.success)
        self.assertIn("not found", result.error)

    def test_invalid_file(self) -> None:
        path = Path(self.temp_dir.name) / "broken.json"
        path.write_text("{not json")

        result = self.manager.restore_backup(path)

        self.assertFalse(result.success)
        self.assertEqual(self.store.get("customers"), SAMPLE_DATA["customers"])

    def test_partial_failure(self) -> None:
        """A failing collection fails the restore but the others are written."""
        backup = self.manager.create_backup()
        store = FlakyStore({}, broken_writes={"sales"})
        manager = BackupManager(store, self.backup_dir)

        result = manager.restore_backup(backup.path, backup_existing=False)

        self.assertFalse(result.success)
        self.assertEqual(set(result.failures), {"sales"})
        self.assertEqual(result.restored, {"customers": 2, "calendarEvents": 3})
        self.assertEqual(store.get("customers"), SAMPLE_DATA["customers"])


class TestUniqueFileNames(BackupManagerTestCase):
    """Backups made within the same second never replace each other."""

    def setUp(self) -> None:
        super().setUp()
        self.datetime_patch = patch("gbbackup.backup.manager.datetime")
        mock_datetime = self.datetime_patch.start()
        mock_datetime.now.return_value = datetime(2024, 1, 15, 10, 30, 0)

    def tearDown(self) -> None:
        self.datetime_patch.stop()
        super().tearDown()

    def write_payload_file(self, name: str, customers: list) -> Path:
        path = Path(self.temp_dir.name) / name
        path.write_text(json.dumps(build_payload({"customers": customers}).to_dict()))
        return path

    def test_encrypted_backups_same_second(self) -> None:
        first = self.manager.create_backup(password="pw", confirmation="pw")
        second = self.manager.create_backup(password="pw", confirmation="pw")

        self.assertNotEqual(first.path, second.path)
        self.assertEqual(first.path.name, "GadgetBoyPOS-Backup-2024-01-15T10-30-00.gbpos")
        self.assertEqual(second.path.name, "GadgetBoyPOS-Backup-2024-01-15T10-30-00-1.gbpos")
        self.assertTrue(first.path.exists())
        self.assertTrue(second.path.exists())

    def test_plain_backups_same_label(self) -> None:
        paths = [self.manager.create_backup().path for _ in range(3)]

        self.assertEqual(len(set(paths)), 3)
        self.assertEqual(
            sorted(p.name for p in self.backup_dir.glob("full-backup-*.json")),
            [
                "full-backup-20240115-103000-1.json",
                "full-backup-20240115-103000-2.json",
                "full-backup-20240115-103000.json",
            ],
        )

    def test_pre_restore_backup_is_kept(self) -> None:
        """A second restore does not overwrite the first safety copy."""
        self.store.replace_all("customers", [{"id": "ORIGINAL"}])
        first_file = self.write_payload_file("a.json", [{"id": "A"}])
        second_file = self.write_payload_file("b.json", [{"id": "B"}])

        first = self.manager.restore_backup(first_file)
        second = self.manager.restore_backup(second_file)

        self.assertNotEqual(first.backup_created, second.backup_created)
        self.assertEqual(
            self.read_json(first.backup_created)["collections"]["customers"],
            [{"id": "ORIGINAL"}],
        )
        self.assertEqual(
            self.read_json(second.backup_created)["collections"]["customers"],
            [{"id": "A"}],
        )
        self.assertEqual(self.store.get("customers"), [{"id": "B"}])


class TestUnserializableRecords(BackupManagerTestCase):
    """Records JSON cannot represent produce a failed result, not an exception."""

    def setUp(self) -> None:
        super().setUp()
        self.manager = BackupManager(
            MemoryStore({"customers": [{"id": object()}]}), self.backup_dir
        )

    def test_plain_backup(self) -> None:
        result = self.manager.create_backup()

        self.assertFalse(result.success)
        self.assertIn("not JSON serializable", result.error)
        self.assertFalse(self.backup_dir.exists())

    def test_encrypted_backup(self) -> None:
        result = self.manager.create_backup(password="pw", confirmation="pw")

        self.assertFalse(result.success)
        self.assertFalse(self.backup_dir.exists())


class TestRestorePayload(BackupManagerTestCase):
    """Tests for inspect_file / restore_payload."""

    def test_restores_what_was_previewed(self) -> None:
        """The loaded payload is restored even if the file changes afterwards."""
        backup = self.manager.create_backup(password="pw", confirmation="pw")
        payload, preview = self.manager.inspect_file(backup.path, password="pw")
        backup.path.write_text("{}")
        self.store.replace_all("customers", [])

        result = self.manager.restore_payload(payload, backup_existing=False)

        self.assertTrue(preview.encrypted)
        self.assertEqual(preview.counts["customers"], 2)
        self.assertTrue(result.success, result.error)
        self.assertEqual(self.store.get("customers"), SAMPLE_DATA["customers"])

    def test_pre_restore_backup(self) -> None:
        payload = build_payload({"sales": []})

        result = self.manager.restore_payload(payload)

        self.assertTrue(result.success)
        self.assertTrue(result.backup_created.exists())
        self.assertEqual(self.store.get("sales"), [])


class TestBackgroundExecution(BackupManagerTestCase):
    """Tests for the *_async methods."""

    def test_async_backup_and_restore(self) -> None:
        with BackupManager(self.store, self.backup_dir) as manager:
            backup = manager.create_backup_async(selection={"customers"}).result(timeout=30)
            self.store.replace_all("customers", [])
            restored = manager.restore_backup_async(
                backup.path, backup_existing=False
            ).result(timeout=30)

        self.assertTrue(backup.success)
        self.assertTrue(restored.success)
        self.assertEqual(self.store.get("customers"), SAMPLE_DATA["customers"])


if __name__ == "__main__":
    unittest.main()
