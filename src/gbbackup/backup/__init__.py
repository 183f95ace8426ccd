"""
Backup and restore engine.

Snapshots named record collections, optionally narrows them through tile
selections, and writes them as a plain JSON payload or a password-encrypted
``.gbpos`` envelope. Restores replace whole collections from a validated
payload.

Usage:
    from gbbackup.backup import BackupManager

    # Create a backup
    manager = BackupManager(store, backup_dir)
    result = manager.create_backup(password=pw, confirmation=pw)

    # Preview before restoring
    preview = manager.preview_file(result.path, password=pw)

    # Restore from backup
    result = manager.restore_backup(result.path, password=pw)
"""

from gbbackup.backup.codec import (
    EncryptedEnvelope,
    decrypt,
    encrypt,
)
from gbbackup.backup.errors import (
    BackupError,
    CollectionUnavailable,
    InvalidBackupError,
    PartialRestoreFailure,
    PasswordMismatchError,
    PasswordRequiredError,
)
from gbbackup.backup.legacy import is_legacy_derived
from gbbackup.backup.manager import (
    BackupManager,
    BackupResult,
    RestoreResult,
)
from gbbackup.backup.payload import (
    BackupKind,
    BackupPayload,
    PayloadMetadata,
    build_payload,
)
from gbbackup.backup.preview import (
    BackupPreview,
    inspect_backup,
    load_backup,
    preview_backup,
)
from gbbackup.backup.restore import RestoreReport, apply_restore
from gbbackup.backup.snapshot import KNOWN_COLLECTIONS, Snapshot, read_snapshot
from gbbackup.backup.tiles import (
    SelectionPlan,
    TileDefinition,
    default_tiles,
    plan_selection,
    select_all,
)

__all__ = [
    # Orchestration
    "BackupManager",
    "BackupResult",
    "RestoreResult",
    # Snapshot and filtering
    "KNOWN_COLLECTIONS",
    "Snapshot",
    "read_snapshot",
    "is_legacy_derived",
    # Tiles
    "TileDefinition",
    "SelectionPlan",
    "default_tiles",
    "plan_selection",
    "select_all",
    # Payload
    "BackupKind",
    "BackupPayload",
    "PayloadMetadata",
    "build_payload",
    # Codec
    "EncryptedEnvelope",
    "encrypt",
    "decrypt",
    # Preview and restore
    "BackupPreview",
    "inspect_backup",
    "load_backup",
    "preview_backup",
    "RestoreReport",
    "apply_restore",
    # Exceptions
    "BackupError",
    "CollectionUnavailable",
    "InvalidBackupError",
    "PasswordRequiredError",
    "PasswordMismatchError",
    "PartialRestoreFailure",
]
