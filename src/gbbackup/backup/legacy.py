"""
Detection of legacy and derived calendar records.

Schedule entries in the calendar collection are computed live from the
technicians' weekly availability. They are never authoritative, so every
snapshot that contains the calendar collection drops them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

LEGACY_FILTERED_COLLECTION = "calendarEvents"

SCHEDULE_TAG = "schedule"
TECHNICIAN_LINK_FIELDS = ("technicianId", "techId")


def _tag_of(record: Mapping[str, Any]) -> str:
    for key in ("type", "kind", "category"):
        value = record.get(key)
        if value:
            return str(value).lower()
    return ""


def is_legacy_derived(record: Any) -> bool:
    """
    Return True if a calendar record is derived rather than authoritative.

    A record is derived when any of the following holds:
        - its type/kind/category tag is "schedule" (case-insensitive)
        - it carries a truthy ``legacy`` or ``derived`` flag
        - it links to a technician (``technicianId`` or ``techId``)
        - its ``tags`` list contains "schedule" (case-insensitive)

    Non-mapping values are never considered derived.
    """
    if not isinstance(record, Mapping):
        return False

    if _tag_of(record) == SCHEDULE_TAG:
        return True
    if record.get("legacy") or record.get("derived"):
        return True
    if any(field in record for field in TECHNICIAN_LINK_FIELDS):
        return True

    tags = record.get("tags")
    if isinstance(tags, Sequence) and not isinstance(tags, (str, bytes)):
        return any(str(tag).lower() == SCHEDULE_TAG for tag in tags)

    return False


def drop_legacy_records(records: list[Any]) -> list[Any]:
    """Return the records that are not legacy/derived, preserving order."""
    return [record for record in records if not is_legacy_derived(record)]


def strip_legacy(collections: dict[str, list[Any]]) -> dict[str, list[Any]]:
    """
    Apply the legacy filter to the affected collection of a snapshot.

    Other collections are passed through untouched. Returns a new mapping.
    """
    result = dict(collections)
    if LEGACY_FILTERED_COLLECTION in result:
        result[LEGACY_FILTERED_COLLECTION] = drop_legacy_records(
            result[LEGACY_FILTERED_COLLECTION]
        )
    return result
