"""
Restore of a validated payload into the live store.

Each collection named in the payload is replaced wholesale; this is not a
merge. Collections the payload does not mention are left alone. Every
collection is attempted even after a failure, and all failures are reported
together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gbbackup.backup.errors import PartialRestoreFailure
from gbbackup.backup.payload import BackupPayload
from gbbackup.storage.base import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class RestoreReport:
    """
    Outcome of replacing collections in the store.

    Attributes:
        restored: Collection name to number of records written.
        failures: Collection name to error message.
    """

    restored: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def records_restored(self) -> int:
        return sum(self.restored.values())


def apply_restore(store: RecordStore, payload: BackupPayload) -> RestoreReport:
    """
    Replace each collection in the store with the payload's version.

    Args:
        store: Live record store. The caller must keep other writers out
            while this runs.
        payload: Validated payload.

    Returns:
        RestoreReport when every collection was replaced.

    Raises:
        PartialRestoreFailure: If any collection failed; carries both the
            failures and the collections that were replaced.
    """
    report = RestoreReport()

    for name, records in payload.collections.items():
        try:
            store.replace_all(name, records)
        except Exception as e:
            logger.error(f"Failed to restore {name}: {e}")
            report.failures[name] = str(e) or type(e).__name__
            continue
        report.restored[name] = len(records)
        logger.info(f"Restored {len(records)} records to {name}")

    if report.failures:
        raise PartialRestoreFailure(report.failures, list(report.restored))

    return report
