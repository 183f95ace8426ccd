"""
Tile definitions and selection planning.

A tile is a user-facing grouping over one or more collections, optionally
narrowing each collection with a record predicate. Several tiles may share
a collection (the calendar tiles all read ``calendarEvents``), so planning
works per collection:

    1. A tile is active only if every one of its collections is selected.
    2. The collections to read are the union of the active tiles'
       collections.
    3. For each collection, the predicates of every active tile touching it
       are collected into a list. A record is kept if the list is empty or
       if any predicate accepts it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]

WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


@dataclass(frozen=True)
class TileDefinition:
    """
    A named grouping of collections shown as one selectable tile.

    Attributes:
        key: Unique tile identifier.
        label: Display label.
        collections: Collections the tile covers. Never empty.
        filters: Optional per-collection record predicates.
        count_predicate: Optional predicate used only for display counts.
    """

    key: str
    label: str
    collections: frozenset[str]
    filters: dict[str, Predicate] = field(default_factory=dict, compare=False)
    count_predicate: Predicate | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "collections", frozenset(self.collections))
        if not self.collections:
            raise ValueError(f"Tile '{self.key}' must cover at least one collection")
        unknown = set(self.filters) - self.collections
        if unknown:
            raise ValueError(
                f"Tile '{self.key}' filters collections it does not cover: "
                f"{', '.join(sorted(unknown))}"
            )


@dataclass
class SelectionPlan:
    """
    Concrete plan derived from a tile selection.

    Attributes:
        tiles: Tiles that are fully selected.
        collections: Collections to read, in tile order.
        filters: Collection name to the predicates contributed by active
            tiles. Collections without an entry are exported whole.
    """

    tiles: list[TileDefinition] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)
    filters: dict[str, list[Predicate]] = field(default_factory=dict)

    def keeps(self, name: str, record: Any) -> bool:
        """Return True if the record survives the plan's filters."""
        predicates = self.filters.get(name, [])
        if not predicates:
            return True
        return any(_safe_call(predicate, record) for predicate in predicates)

    def apply(self, collections: dict[str, list[Any]]) -> dict[str, list[Any]]:
        """
        Filter a snapshot down to the planned collections.

        Collections in the snapshot that the plan does not cover are
        dropped; planned collections missing from the snapshot stay absent.
        """
        result: dict[str, list[Any]] = {}
        for name in self.collections:
            if name not in collections:
                continue
            result[name] = [
                record for record in collections[name] if self.keeps(name, record)
            ]
        return result


def _safe_call(predicate: Predicate, record: Any) -> bool:
    # A predicate that cannot evaluate a record does not match it.
    try:
        return bool(predicate(record))
    except Exception as e:
        logger.debug(f"Tile predicate failed on record: {e}")
        return False


def is_tile_selected(tile: TileDefinition, selection: Iterable[str]) -> bool:
    """A tile is selected iff all of its collections are selected."""
    return tile.collections <= set(selection)


def plan_selection(
    selection: Iterable[str],
    tiles: Iterable[TileDefinition],
) -> SelectionPlan:
    """
    Build the read-and-filter plan for a set of selected collections.

    Args:
        selection: Selected collection names.
        tiles: All tile definitions.

    Returns:
        SelectionPlan covering every fully selected tile.
    """
    selected = set(selection)
    plan = SelectionPlan()

    for tile in tiles:
        if not is_tile_selected(tile, selected):
            continue
        plan.tiles.append(tile)
        for name in sorted(tile.collections):
            if name not in plan.collections:
                plan.collections.append(name)
        for name, predicate in tile.filters.items():
            plan.filters.setdefault(name, []).append(predicate)

    return plan


def select_all(tiles: Iterable[TileDefinition]) -> set[str]:
    """Return the union of every tile's collections."""
    selection: set[str] = set()
    for tile in tiles:
        selection |= tile.collections
    return selection


def toggle_tile(selection: Iterable[str], tile: TileDefinition) -> set[str]:
    """
    Toggle a tile in a selection.

    A selected tile has all of its collections removed; otherwise all of
    them are added. Returns a new set.
    """
    result = set(selection)
    if is_tile_selected(tile, result):
        result -= tile.collections
    else:
        result |= tile.collections
    return result


def selection_label(
    tiles: Iterable[TileDefinition],
    selection: Iterable[str],
) -> str:
    """Build a short label describing a selection, for export file names."""
    selected = set(selection)
    names = [
        tile.key.replace("Calendar: ", "Cal-")
        for tile in tiles
        if is_tile_selected(tile, selected)
    ]
    if 0 < len(names) <= 3:
        return "+".join(names)
    return f"Selected-{len(names) or len(selected)}"


def tile_count(tile: TileDefinition, collections: dict[str, list[Any]]) -> int:
    """Count the records a tile represents in an (already legacy-filtered) snapshot."""
    total = 0
    for name in tile.collections:
        records = collections.get(name, [])
        predicate = tile.count_predicate or tile.filters.get(name)
        if predicate is None:
            total += len(records)
        else:
            total += sum(1 for record in records if _safe_call(predicate, record))
    return total


# -----------------------------------------------------------------------------
# Default tiles
# -----------------------------------------------------------------------------


def record_category(record: Any) -> str:
    """Return the lower-cased category of a record (category, type, then kind)."""
    if not isinstance(record, dict):
        return ""
    for key in ("category", "type", "kind"):
        value = record.get(key)
        if value:
            return str(value).lower()
    return ""


def category_is(category: str) -> Predicate:
    """Build a predicate matching records of one category."""
    wanted = category.lower()

    def predicate(record: Any) -> bool:
        return record_category(record) == wanted

    predicate.__name__ = f"category_is_{wanted}"
    return predicate


def has_weekly_schedule(technician: Any) -> bool:
    """True if a technician defines working hours or a day off for any weekday."""
    if not isinstance(technician, dict):
        return False
    schedule = technician.get("schedule") or {}
    if not isinstance(schedule, dict):
        return False
    for day in WEEKDAYS:
        entry = schedule.get(day) or {}
        if not isinstance(entry, dict):
            continue
        if entry.get("off") or (entry.get("start") and entry.get("end")):
            return True
    return False


def humanize_collection(name: str) -> str:
    """Turn a camelCase collection name into a display label."""
    spaced = re.sub(r"([A-Z])", r" \1", name)
    return spaced[:1].upper() + spaced[1:]


def _tile(key: str, label: str, *collections: str, **filters: Predicate) -> TileDefinition:
    return TileDefinition(
        key=key, label=label, collections=frozenset(collections), filters=filters
    )


def default_tiles(available: Iterable[str] = ()) -> list[TileDefinition]:
    """
    Return the standard tile set.

    Args:
        available: Collection names present in the store. Any name not
            covered by a standard tile gets a generic tile of its own.
    """
    tiles = [
        _tile("Technicians", "Technicians", "technicians"),
        _tile("Customers", "Customers", "customers"),
        _tile("WorkOrders", "Work Orders", "workOrders"),
        _tile("Sales", "Sales", "sales"),
        TileDefinition(
            key="Calendar: Schedules",
            label="Calendar: Schedules",
            collections=frozenset({"technicians"}),
            count_predicate=has_weekly_schedule,
        ),
        _tile(
            "Calendar: Orders/Parts",
            "Calendar: Orders/Parts",
            "calendarEvents",
            calendarEvents=category_is("parts"),
        ),
        _tile(
            "Calendar: Events",
            "Calendar: Events",
            "calendarEvents",
            calendarEvents=category_is("event"),
        ),
        _tile(
            "Calendar: Consultations",
            "Calendar: Consultations",
            "calendarEvents",
            calendarEvents=category_is("consultation"),
        ),
        _tile("DeviceCategories", "Device Categories", "deviceCategories"),
        _tile("TimeEntries", "Time Entries", "timeEntries"),
        _tile("RepairCategories", "Repair Categories", "repairCategories"),
        _tile("RepairItems", "Repair Items", "repairItems"),
        _tile("PartSources", "Part Sources", "partSources"),
        _tile("IntakeSources", "Intake Sources", "intakeSources"),
        _tile("Products", "Products", "products"),
        _tile("ProductCategories", "Product Categories", "productCategories"),
    ]

    covered = select_all(tiles)
    for name in dict.fromkeys(available):
        if name in covered:
            continue
        tiles.append(_tile(f"Misc:{name}", humanize_collection(name), name))
        covered.add(name)

    return tiles


def find_tiles(tiles: Iterable[TileDefinition], keys: Iterable[str]) -> list[TileDefinition]:
    """
    Look up tiles by key (case-insensitive).

    Raises:
        KeyError: If a key does not match any tile.
    """
    by_key = {tile.key.lower(): tile for tile in tiles}
    found = []
    for key in keys:
        tile = by_key.get(key.lower())
        if tile is None:
            raise KeyError(f"Unknown tile: {key}")
        found.append(tile)
    return found
