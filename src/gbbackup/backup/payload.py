"""
Backup payload model and builder.

The payload is the unencrypted, versioned document written by a plain
export and carried inside an encrypted envelope. Its on-disk layout is:

    {
        "version": "1.0.0",
        "timestamp": "2024-01-15T10:30:00+00:00",
        "source": "Local Database",
        "dataComplete": true,
        "scanTimestamp": "2024-01-15T10:29:58+00:00",
        "collections": {"customers": [...], ...},
        "metadata": {
            "totalRecords": 42,
            "collectionCount": 3,
            "backupType": "comprehensive",
            "note": "..."
        }
    }
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from gbbackup.backup.errors import InvalidBackupError

PAYLOAD_FORMAT_VERSION = "1.0.0"
DEFAULT_SOURCE_LABEL = "Local Database"

COMPREHENSIVE_NOTE = "Contains all data currently accessible by the application"


class BackupKind(str, Enum):
    """Whether a payload covers the full collection superset or a selection."""

    COMPREHENSIVE = "comprehensive"
    PARTIAL = "partial"


@dataclass
class PayloadMetadata:
    """Summary counts stored alongside the collections."""

    total_records: int = 0
    collection_count: int = 0
    kind: BackupKind = BackupKind.COMPREHENSIVE
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRecords": self.total_records,
            "collectionCount": self.collection_count,
            "backupType": self.kind.value,
            "note": self.note,
        }


@dataclass
class BackupPayload:
    """
    A full, self-contained backup document.

    Attributes:
        format_version: Payload layout version.
        created_at: ISO 8601 creation timestamp.
        source: Where the data came from.
        collections: Collection name to list of records.
        metadata: Record and collection counts, kind and note.
        data_complete: True if every requested collection was read.
        scan_timestamp: When the underlying snapshot was taken.
    """

    format_version: str
    created_at: str
    source: str
    collections: dict[str, list[Any]]
    metadata: PayloadMetadata
    data_complete: bool = True
    scan_timestamp: str | None = None

    @property
    def is_comprehensive(self) -> bool:
        return self.metadata.kind is BackupKind.COMPREHENSIVE

    def counts(self) -> dict[str, int]:
        """Record count per collection."""
        return {name: len(records) for name, records in self.collections.items()}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk dictionary layout."""
        return {
            "version": self.format_version,
            "timestamp": self.created_at,
            "source": self.source,
            "dataComplete": self.data_complete,
            "scanTimestamp": self.scan_timestamp,
            "collections": self.collections,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> BackupPayload:
        """
        Create and validate a payload from its on-disk dictionary.

        Missing metadata is recomputed from the collections.

        Raises:
            InvalidBackupError: If the document is not a valid payload.
        """
        if not isinstance(data, Mapping):
            raise InvalidBackupError("Backup is not a JSON object")

        collections = data.get("collections")
        if not isinstance(collections, Mapping):
            raise InvalidBackupError("Backup has no collections mapping")

        validated = validate_collections(collections)

        raw_meta = data.get("metadata")
        if not isinstance(raw_meta, Mapping):
            raw_meta = {}
        try:
            kind = BackupKind(raw_meta.get("backupType", BackupKind.COMPREHENSIVE.value))
        except ValueError:
            kind = BackupKind.PARTIAL

        metadata = PayloadMetadata(
            total_records=_int_or(raw_meta.get("totalRecords"), count_records(validated)),
            collection_count=_int_or(raw_meta.get("collectionCount"), len(validated)),
            kind=kind,
            note=str(raw_meta.get("note", "")),
        )

        return cls(
            format_version=str(data.get("version", "unknown")),
            created_at=str(data.get("timestamp", "")),
            source=str(data.get("source", "")),
            collections=validated,
            metadata=metadata,
            data_complete=bool(data.get("dataComplete", True)),
            scan_timestamp=data.get("scanTimestamp"),
        )


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return default


def validate_collections(collections: Mapping[str, Any]) -> dict[str, list[Any]]:
    """
    Check that every collection is a list.

    Raises:
        InvalidBackupError: Naming the first collection that is not a list.
    """
    validated: dict[str, list[Any]] = {}
    for name, records in collections.items():
        if not isinstance(records, list):
            raise InvalidBackupError(f"Collection '{name}' is not a list")
        validated[str(name)] = records
    return validated


def count_records(collections: Mapping[str, list[Any]]) -> int:
    """Total number of records across all collections."""
    return sum(len(records) for records in collections.values())


def build_payload(
    collections: Mapping[str, list[Any]],
    kind: BackupKind = BackupKind.COMPREHENSIVE,
    source: str = DEFAULT_SOURCE_LABEL,
    note: str | None = None,
    scan_timestamp: datetime | None = None,
    data_complete: bool = True,
) -> BackupPayload:
    """
    Assemble a payload from an already filtered snapshot.

    The metadata counts are always derived from ``collections``. Apart from
    the creation timestamp the result depends only on the arguments.

    Args:
        collections: Collection name to records.
        kind: Comprehensive for a full-superset snapshot, partial for a
            tile selection.
        source: Provenance label.
        note: Free-form note. A default is chosen from ``kind``.
        scan_timestamp: When the snapshot was read.
        data_complete: False if some requested collections were unavailable.

    Returns:
        New BackupPayload.
    """
    snapshot = {name: list(records) for name, records in collections.items()}

    if note is None:
        if kind is BackupKind.COMPREHENSIVE:
            note = COMPREHENSIVE_NOTE
        else:
            note = "Selected collections: " + ", ".join(snapshot)

    return BackupPayload(
        format_version=PAYLOAD_FORMAT_VERSION,
        created_at=datetime.now(UTC).isoformat(),
        source=source,
        collections=snapshot,
        metadata=PayloadMetadata(
            total_records=count_records(snapshot),
            collection_count=len(snapshot),
            kind=kind,
            note=note,
        ),
        data_complete=data_complete,
        scan_timestamp=scan_timestamp.isoformat() if scan_timestamp else None,
    )


def summarize(payload: BackupPayload) -> str:
    """One-line human summary of a payload."""
    collections = ", ".join(
        f"{name}: {count}" for name, count in payload.counts().items()
    )
    return (
        f"Backup created: {payload.created_at} | "
        f"Records: {count_records(payload.collections)} | "
        f"Collections: {collections}"
    )
