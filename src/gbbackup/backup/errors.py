"""
Exception hierarchy for the backup engine.

Snapshot failures are recovered locally and only recorded; codec and
validation failures are raised to the caller; restore failures are
aggregated into a single report.
"""

from __future__ import annotations

# Deliberately generic: wrong password and corrupted file look the same.
INVALID_BACKUP_MESSAGE = "Invalid password or corrupted backup file"


class BackupError(Exception):
    """Base exception for backup and restore errors."""

    pass


class CollectionUnavailable(BackupError):
    """
    Raised when a named collection cannot be fetched from the store.

    The snapshot reader records these and omits the collection; they never
    abort a backup.

    Attributes:
        collection: Name of the collection that could not be read.
        reason: Human-readable reason.
    """

    def __init__(self, collection: str, reason: str = "not available") -> None:
        self.collection = collection
        self.reason = reason
        super().__init__(f"Collection '{collection}' unavailable: {reason}")


class InvalidBackupError(BackupError):
    """
    Raised when a file is neither a valid plaintext payload nor a
    successfully decryptable envelope.
    """

    def __init__(self, message: str = INVALID_BACKUP_MESSAGE) -> None:
        super().__init__(message)


class PasswordRequiredError(BackupError):
    """Raised when an encrypted backup is opened without a password."""

    pass


class PasswordMismatchError(BackupError):
    """Raised when the password and its confirmation differ."""

    pass


class PartialRestoreFailure(BackupError):
    """
    Raised when one or more collections failed to restore.

    The operation as a whole is failed even if other collections were
    replaced successfully.

    Attributes:
        failures: Mapping of collection name to error message.
        restored: Collections that were replaced successfully.
    """

    def __init__(
        self,
        failures: dict[str, str],
        restored: list[str] | None = None,
    ) -> None:
        self.failures = dict(failures)
        self.restored = list(restored or [])
        details = "; ".join(f"{name}: {error}" for name, error in self.failures.items())
        super().__init__(
            f"Restore failed for {len(self.failures)} collection(s): {details}"
        )
