"""
Backup file inspection.

Classifies a candidate backup file without touching live data:

    1. A JSON object with a ``collections`` mapping is a plaintext payload.
    2. A JSON object with every envelope field is an encrypted backup; it
       can only be summarized once decrypted with the user's password.
    3. A JSON object whose values are all lists is a bare collection dump
       written by older exports; it is accepted as a partial payload.

Anything else is rejected with InvalidBackupError.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from gbbackup.backup.codec import EncryptedEnvelope, decrypt, looks_like_envelope
from gbbackup.backup.errors import InvalidBackupError, PasswordRequiredError
from gbbackup.backup.payload import (
    BackupKind,
    BackupPayload,
    build_payload,
    validate_collections,
)

logger = logging.getLogger(__name__)

LEGACY_SOURCE_LABEL = "Legacy export"


@dataclass
class BackupPreview:
    """
    Summary of a backup file for user confirmation before restore.

    Attributes:
        is_comprehensive: True if the file is a full payload document (it
            has a ``collections`` mapping), False for a bare collection dump.
        collections: Collection names, sorted.
        counts: Record count per collection.
        total_records: Sum of all counts.
        encrypted: True if the file was an encrypted envelope.
        kind: Kind recorded in the payload metadata.
        created_at: Payload timestamp, if recorded.
    """

    is_comprehensive: bool
    collections: list[str] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    total_records: int = 0
    encrypted: bool = False
    kind: BackupKind = BackupKind.COMPREHENSIVE
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isComprehensive": self.is_comprehensive,
            "collections": list(self.collections),
            "counts": dict(self.counts),
            "totalRecords": self.total_records,
            "encrypted": self.encrypted,
            "kind": self.kind.value,
            "createdAt": self.created_at,
        }


def parse_document(raw: str | bytes) -> Any:
    """
    Parse a backup file's contents as JSON.

    Raises:
        InvalidBackupError: If the contents are not JSON.
    """
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        raise InvalidBackupError("Backup file is not valid JSON") from None


def _is_bare_dump(document: Any) -> bool:
    return (
        isinstance(document, Mapping)
        and bool(document)
        and all(isinstance(value, list) for value in document.values())
    )


def is_encrypted(raw: str | bytes) -> bool:
    """True if the file contents look like an encrypted envelope."""
    try:
        document = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return False
    return looks_like_envelope(document)


def _load(raw: str | bytes, password: str | None) -> tuple[BackupPayload, bool, bool]:
    """Return (payload, is_full_document, encrypted)."""
    document = parse_document(raw)

    if isinstance(document, Mapping) and isinstance(document.get("collections"), Mapping):
        return BackupPayload.from_dict(document), True, False

    if looks_like_envelope(document):
        if not password:
            raise PasswordRequiredError(
                "This backup is encrypted. A password is required to read it."
            )
        envelope = EncryptedEnvelope.from_dict(document)
        return decrypt(envelope, password), True, True

    if _is_bare_dump(document):
        logger.info("Reading bare collection dump as a partial backup")
        payload = build_payload(
            validate_collections(document),
            kind=BackupKind.PARTIAL,
            source=LEGACY_SOURCE_LABEL,
        )
        return payload, False, False

    raise InvalidBackupError("File is not a recognized backup format")


def load_backup(raw: str | bytes, password: str | None = None) -> BackupPayload:
    """
    Read and validate a backup file's contents.

    Args:
        raw: File contents.
        password: Password for encrypted backups.

    Returns:
        Validated BackupPayload.

    Raises:
        InvalidBackupError: If the file is invalid or cannot be decrypted.
        PasswordRequiredError: If the file is encrypted and no password given.
    """
    payload, _, _ = _load(raw, password)
    return payload


def preview_payload(
    payload: BackupPayload,
    is_comprehensive: bool = True,
    encrypted: bool = False,
) -> BackupPreview:
    """Summarize an already loaded payload."""
    counts = payload.counts()
    names = sorted(counts)
    return BackupPreview(
        is_comprehensive=is_comprehensive,
        collections=names,
        counts={name: counts[name] for name in names},
        total_records=sum(counts.values()),
        encrypted=encrypted,
        kind=payload.metadata.kind,
        created_at=payload.created_at or None,
    )


def inspect_backup(
    raw: str | bytes, password: str | None = None
) -> tuple[BackupPayload, BackupPreview]:
    """
    Load a backup file once and summarize it.

    The returned payload is exactly what the preview describes, so it can
    be restored after the user confirms without reading the file again.

    Raises:
        InvalidBackupError: If the file is invalid or cannot be decrypted.
        PasswordRequiredError: If the file is encrypted and no password given.
    """
    payload, full_document, encrypted = _load(raw, password)
    preview = preview_payload(payload, is_comprehensive=full_document, encrypted=encrypted)
    return payload, preview


def preview_backup(raw: str | bytes, password: str | None = None) -> BackupPreview:
    """
    Summarize a backup file without changing any live data.

    Safe to call speculatively.

    Raises:
        InvalidBackupError: If the file is invalid or cannot be decrypted.
        PasswordRequiredError: If the file is encrypted and no password given.
    """
    _, preview = inspect_backup(raw, password)
    return preview
