"""
Backup and restore manager.

Ties the engine together for a record store and a backup directory:
snapshots collections, builds payloads, optionally encrypts them, writes
export files, and restores from them. Public operations return result
objects instead of raising, so callers can present failures directly.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gbbackup.backup.codec import ENCRYPTED_EXTENSION, confirm_password, encrypt
from gbbackup.backup.errors import (
    BackupError,
    PartialRestoreFailure,
)
from gbbackup.backup.payload import (
    DEFAULT_SOURCE_LABEL,
    BackupKind,
    BackupPayload,
    build_payload,
)
from gbbackup.backup.preview import (
    BackupPreview,
    inspect_backup,
    load_backup,
    preview_backup,
)
from gbbackup.backup.restore import apply_restore
from gbbackup.backup.snapshot import (
    DEFAULT_SNAPSHOT_WORKERS,
    Snapshot,
    comprehensive_names,
    read_snapshot,
)
from gbbackup.backup.tiles import (
    TileDefinition,
    default_tiles,
    plan_selection,
    selection_label,
)
from gbbackup.storage.base import RecordStore

logger = logging.getLogger(__name__)

FULL_BACKUP_LABEL = "full-backup"
ENCRYPTED_PREFIX = "GadgetBoyPOS-Backup"
PRE_RESTORE_LABEL = "pre-restore-backup"
LAST_BACKUP_FILE = "backup-config.json"


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool
    path: Path | None = None
    payload: BackupPayload | None = None
    encrypted: bool = False
    size_bytes: int = 0
    unavailable: dict[str, str] = field(default_factory=dict)
    error: str | None = None


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    restored: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    backup_created: Path | None = None
    preview: BackupPreview | None = None
    error: str | None = None

    @property
    def records_restored(self) -> int:
        return sum(self.restored.values())


def _sanitize_label(label: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_+\-]+", "-", label).strip("-")
    return cleaned or FULL_BACKUP_LABEL


class BackupManager:
    """
    Manages backup and restore operations against a record store.

    Usage:
        manager = BackupManager(JsonFileStore(db_path), backup_dir)

        # Full plain backup
        result = manager.create_backup()

        # Encrypted backup of two tiles
        selection = {"customers", "calendarEvents"}
        result = manager.create_backup(
            selection=selection, password=pw, confirmation=pw
        )

        # Inspect, then restore
        preview = manager.preview_file(result.path, password=pw)
        result = manager.restore_backup(result.path, password=pw)

    Only one backup or restore runs at a time through the ``*_async``
    methods; they share a single worker thread.
    """

    def __init__(
        self,
        store: RecordStore,
        backup_dir: Path,
        source_label: str = DEFAULT_SOURCE_LABEL,
        extra_collections: Iterable[str] = (),
        snapshot_workers: int = DEFAULT_SNAPSHOT_WORKERS,
        tiles: list[TileDefinition] | None = None,
    ) -> None:
        """
        Initialize backup manager.

        Args:
            store: Live record store.
            backup_dir: Default directory for exports, pre-restore backups
                and the last-backup record.
            source_label: Provenance label written into payloads.
            extra_collections: Collections to read in addition to the
                known set for comprehensive backups.
            snapshot_workers: Maximum concurrent collection reads.
            tiles: Tile definitions. Defaults to the standard tiles for the
                collections currently in the store.
        """
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.source_label = source_label
        self.extra_collections = list(extra_collections)
        self.snapshot_workers = snapshot_workers
        self._tiles = tiles
        self._executor: ThreadPoolExecutor | None = None

    # -------------------------------------------------------------------------
    # Snapshots and payloads
    # -------------------------------------------------------------------------

    def get_tiles(self) -> list[TileDefinition]:
        """Return the tile definitions in use."""
        if self._tiles is not None:
            return self._tiles
        try:
            available = self.store.collection_names()
        except Exception as e:
            logger.warning(f"Could not list store collections: {e}")
            available = []
        return default_tiles(available)

    def snapshot(self, names: Iterable[str] | None = None) -> Snapshot:
        """Read the named collections, or the full known superset."""
        if names is None:
            names = comprehensive_names(self.store, self.extra_collections)
        return read_snapshot(self.store, names, max_workers=self.snapshot_workers)

    def build_full_payload(self) -> BackupPayload:
        """Build a comprehensive payload of every available collection."""
        snapshot = self.snapshot()
        return build_payload(
            snapshot.collections,
            kind=BackupKind.COMPREHENSIVE,
            source=self.source_label,
            scan_timestamp=snapshot.taken_at,
            data_complete=not snapshot.failed,
        )

    def build_selection_payload(
        self, selection: Iterable[str]
    ) -> tuple[BackupPayload, str]:
        """
        Build a partial payload for a tile selection.

        Args:
            selection: Selected collection names.

        Returns:
            Tuple of (payload, label describing the selection).

        Raises:
            BackupError: If the selection activates no tile.
        """
        selected = set(selection)
        tiles = self.get_tiles()
        plan = plan_selection(selected, tiles)
        if not plan.collections:
            raise BackupError("Please select at least one tile")

        snapshot = self.snapshot(plan.collections)
        payload = build_payload(
            plan.apply(snapshot.collections),
            kind=BackupKind.PARTIAL,
            source=self.source_label,
            scan_timestamp=snapshot.taken_at,
            data_complete=not snapshot.failed,
        )
        return payload, selection_label(tiles, selected)

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def create_backup(
        self,
        output_path: Path | None = None,
        selection: Iterable[str] | None = None,
        password: str | None = None,
        confirmation: str | None = None,
    ) -> BackupResult:
        """
        Create a backup file.

        Args:
            output_path: Directory to save the backup (default: backup_dir).
            selection: Selected collection names for a partial backup.
                None for a comprehensive backup.
            password: Encrypt the backup with this password.
            confirmation: Confirmation of ``password``; checked before any
                data is read.

        Returns:
            BackupResult with success status and backup details.
        """
        try:
            encrypted = password is not None
            if encrypted:
                confirm_password(password, confirmation)

            output_dir = Path(output_path) if output_path else self.backup_dir
            if output_dir.is_file():
                return BackupResult(
                    success=False,
                    error=f"Output path is a file: {output_dir}",
                )

            if selection is None:
                payload = self.build_full_payload()
                label = FULL_BACKUP_LABEL
            else:
                payload, label = self.build_selection_payload(selection)

            path = self.write_backup(payload, output_dir, label, password)
            size_bytes = path.stat().st_size
            self._record_last_backup(path)

            logger.info(
                f"Backup created: {path} ({size_bytes:,} bytes, "
                f"{payload.metadata.total_records} records)"
            )

            return BackupResult(
                success=True,
                path=path,
                payload=payload,
                encrypted=encrypted,
                size_bytes=size_bytes,
            )

        except (BackupError, ValueError, TypeError, OSError) as e:
            logger.error(f"Backup failed: {e}")
            return BackupResult(success=False, error=str(e))

    def write_backup(
        self,
        payload: BackupPayload,
        output_dir: Path,
        label: str = FULL_BACKUP_LABEL,
        password: str | None = None,
    ) -> Path:
        """
        Write a payload to a new file in ``output_dir``.

        Plain payloads are written as indented JSON; with a password the
        payload is encrypted into a ``.gbpos`` envelope. An existing file is
        never replaced: if the timestamped name is taken, a ``-1``, ``-2``,
        ... suffix is added.

        Returns:
            Path of the written file.

        Raises:
            TypeError: If the payload holds values JSON cannot represent.
        """
        output_dir = Path(output_dir)
        now = datetime.now()

        if password is not None:
            text = encrypt(payload, password).to_json()
            stem = f"{ENCRYPTED_PREFIX}-{now.strftime('%Y-%m-%dT%H-%M-%S')}"
            suffix = ENCRYPTED_EXTENSION
        else:
            text = json.dumps(payload.to_dict(), indent=2, ensure_ascii=False)
            stem = f"{_sanitize_label(label)}-{now.strftime('%Y%m%d-%H%M%S')}"
            suffix = ".json"

        output_dir.mkdir(parents=True, exist_ok=True)
        path = self._reserve_path(output_dir, stem, suffix)
        try:
            self._write_file(path, text, private=password is not None)
        except Exception:
            path.unlink(missing_ok=True)
            raise

        return path

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def preview_file(self, backup_path: Path, password: str | None = None) -> BackupPreview:
        """
        Summarize a backup file without touching the store.

        Raises:
            InvalidBackupError: If the file is invalid or cannot be decrypted.
            PasswordRequiredError: If the file is encrypted and no password given.
            OSError: If the file cannot be read.
        """
        return preview_backup(Path(backup_path).read_bytes(), password)

    def inspect_file(
        self, backup_path: Path, password: str | None = None
    ) -> tuple[BackupPayload, BackupPreview]:
        """
        Load and summarize a backup file in one read.

        Pass the returned payload to ``restore_payload`` to restore exactly
        what was previewed.

        Raises:
            InvalidBackupError: If the file is invalid or cannot be decrypted.
            PasswordRequiredError: If the file is encrypted and no password given.
            OSError: If the file cannot be read.
        """
        return inspect_backup(Path(backup_path).read_bytes(), password)

    def restore_backup(
        self,
        backup_path: Path,
        password: str | None = None,
        backup_existing: bool = True,
        verify_only: bool = False,
    ) -> RestoreResult:
        """
        Restore the store from a backup file.

        Args:
            backup_path: Path to a plain or encrypted backup.
            password: Password for encrypted backups.
            backup_existing: Write a plain snapshot of the live store first.
            verify_only: Only validate the file, don't restore.

        Returns:
            RestoreResult with per-collection outcomes.
        """
        try:
            backup_path = Path(backup_path)
            if not backup_path.exists():
                return RestoreResult(
                    success=False,
                    error=f"Backup file not found: {backup_path}",
                )

            raw = backup_path.read_bytes()
            if verify_only:
                return RestoreResult(success=True, preview=preview_backup(raw, password))

            payload = load_backup(raw, password)

        except (BackupError, OSError) as e:
            logger.error(f"Restore failed: {e}")
            return RestoreResult(success=False, error=str(e))

        return self.restore_payload(payload, backup_existing=backup_existing)

    def restore_payload(
        self,
        payload: BackupPayload,
        backup_existing: bool = True,
    ) -> RestoreResult:
        """
        Restore the store from an already loaded payload.

        Args:
            payload: Validated payload, e.g. from ``inspect_file``.
            backup_existing: Write a plain snapshot of the live store first.

        Returns:
            RestoreResult with per-collection outcomes.
        """
        try:
            pre_backup_path = None
            if backup_existing:
                pre_backup_path = self._backup_existing()

            try:
                report = apply_restore(self.store, payload)
            except PartialRestoreFailure as e:
                restored = {
                    name: len(payload.collections[name]) for name in e.restored
                }
                return RestoreResult(
                    success=False,
                    restored=restored,
                    failures=e.failures,
                    backup_created=pre_backup_path,
                    error=str(e),
                )

            logger.info(
                f"Restore completed: {len(report.restored)} collections, "
                f"{report.records_restored} records"
            )

            return RestoreResult(
                success=True,
                restored=report.restored,
                backup_created=pre_backup_path,
            )

        except (BackupError, TypeError, OSError) as e:
            logger.error(f"Restore failed: {e}")
            return RestoreResult(success=False, error=str(e))

    # -------------------------------------------------------------------------
    # Background execution
    # -------------------------------------------------------------------------

    def create_backup_async(self, **kwargs: Any) -> Future[BackupResult]:
        """Run create_backup on the manager's worker thread."""
        return self._get_executor().submit(self.create_backup, **kwargs)

    def restore_backup_async(
        self, backup_path: Path, **kwargs: Any
    ) -> Future[RestoreResult]:
        """Run restore_backup on the manager's worker thread."""
        return self._get_executor().submit(self.restore_backup, backup_path, **kwargs)

    def close(self) -> None:
        """Wait for pending work and stop the worker thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> BackupManager:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="backup-worker"
            )
        return self._executor

    # -------------------------------------------------------------------------
    # Last backup record
    # -------------------------------------------------------------------------

    def last_backup(self) -> dict[str, Any] | None:
        """Return the last successful export record, if any."""
        record_path = self.backup_dir / LAST_BACKUP_FILE
        if not record_path.exists():
            return None
        try:
            with open(record_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read last backup record: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _record_last_backup(self, path: Path) -> None:
        record = {
            "lastBackupPath": str(path),
            "lastBackupDate": datetime.now(UTC).isoformat(),
        }
        try:
            self._write_file(
                self.backup_dir / LAST_BACKUP_FILE, json.dumps(record, indent=2)
            )
        except OSError as e:
            logger.warning(f"Could not record last backup: {e}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _backup_existing(self) -> Path:
        """Write a plain comprehensive snapshot of the live store."""
        payload = self.build_full_payload()
        path = self.write_backup(payload, self.backup_dir, PRE_RESTORE_LABEL)
        logger.info(f"Pre-restore backup created: {path}")
        return path

    def _reserve_path(self, output_dir: Path, stem: str, suffix: str) -> Path:
        """
        Claim a file name that does not exist yet.

        The name is created empty with exclusive mode, so a concurrent
        writer or an earlier backup from the same second is never replaced.
        """
        candidate = output_dir / f"{stem}{suffix}"
        counter = 1
        while True:
            try:
                with open(candidate, "x", encoding="utf-8"):
                    pass
                return candidate
            except FileExistsError:
                candidate = output_dir / f"{stem}-{counter}{suffix}"
                counter += 1

    def _write_file(self, path: Path, text: str, private: bool = False) -> None:
        """
        Write text to a file atomically.

        Private files are restricted to the owner where the platform allows.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(path.suffix + ".tmp")

        try:
            temp_path.write_text(text, encoding="utf-8")
            if private:
                try:
                    os.chmod(temp_path, 0o600)
                except OSError:
                    # Not supported on every platform
                    pass
            os.replace(temp_path, path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise
