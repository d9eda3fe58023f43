"""
In-memory store of the user's timetables.

The store maps a table identifier to an ordered tuple of ScheduleEntry.
It is copy-on-write: every mutation publishes a new collection dict and a new
tuple for the touched table, while untouched tables keep their identity. A
snapshot handed to a reader is therefore never modified afterwards.

Nothing is saved to disk; `load_collection` only reads the initial dataset.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from timetabler.log import get_logger
from timetabler.model import (
    Lecture,
    ScheduleCollection,
    ScheduleEntry,
    ScheduleSlot,
    ScheduleTable,
)
from timetabler.parse import parse_schedule

logger = get_logger(__name__)

Listener = Callable[[ScheduleCollection], None]


class UnknownTableError(KeyError):
    """
    A store operation named a table that does not exist.
    """


class ScheduleStore:
    """
    Single-writer container for all timetables of one session.

    Created explicitly at application start and passed to the components that
    need it (search session, drag engine, CLI).
    """

    def __init__(self, collection: Optional[dict[str, Iterable[ScheduleEntry]]] = None) -> None:
        self._collection: ScheduleCollection = {
            table_id: tuple(entries) for table_id, entries in (collection or {}).items()
        }
        self._listeners: list[Listener] = []

    # -- reading -----------------------------------------------------------

    @property
    def collection(self) -> ScheduleCollection:
        """
        Current snapshot. Do not mutate it; it is replaced on every change.
        """
        return self._collection

    def table_ids(self) -> list[str]:
        return list(self._collection)

    def table(self, table_id: str) -> ScheduleTable:
        try:
            return self._collection[table_id]
        except KeyError:
            raise UnknownTableError(table_id) from None

    def get_entry(self, table_id: str, index: int) -> Optional[ScheduleEntry]:
        """
        Entry at `index` in `table_id`, or None if either is absent.
        """
        table = self._collection.get(table_id)
        if table is None or not (0 <= index < len(table)):
            return None
        return table[index]

    @property
    def can_remove_table(self) -> bool:
        return len(self._collection) > 1

    # -- change notification -----------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call `listener` with each new snapshot. Returns an unsubscribe function.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, collection: ScheduleCollection) -> None:
        self._collection = collection
        for listener in list(self._listeners):
            listener(collection)

    def _replace_table(self, table_id: str, table: ScheduleTable) -> None:
        if table_id not in self._collection:
            raise UnknownTableError(table_id)
        self._publish({**self._collection, table_id: table})

    # -- table level -------------------------------------------------------

    def create_table(self, table_id: Optional[str] = None) -> str:
        table_id = table_id or self._new_table_id()
        if table_id in self._collection:
            raise ValueError(f"Table already exists: {table_id!r}")
        self._publish({**self._collection, table_id: ()})
        return table_id

    def duplicate_table(self, source_id: str) -> str:
        """
        Copy a table under a fresh identifier and return that identifier.

        Entries are immutable, so sharing them between both tables is a deep
        copy for all practical purposes.
        """
        entries = self.table(source_id)
        new_id = self._new_table_id()
        self._publish({**self._collection, new_id: tuple(entries)})
        logger.debug("Duplicated table %s as %s", source_id, new_id)
        return new_id

    def remove_table(self, table_id: str) -> bool:
        """
        Remove a table by key. Remaining identifiers are kept as they are.

        The last remaining table cannot be removed (returns False).
        """
        if table_id not in self._collection:
            raise UnknownTableError(table_id)
        if not self.can_remove_table:
            logger.debug("Refusing to remove the last table %s", table_id)
            return False
        self._publish({k: v for k, v in self._collection.items() if k != table_id})
        return True

    def _new_table_id(self) -> str:
        base = f"schedule-{int(time.time() * 1000)}"
        table_id = base
        n = 1
        while table_id in self._collection:
            n += 1
            table_id = f"{base}-{n}"
        return table_id

    # -- entry level -------------------------------------------------------

    def add_lecture(
        self,
        table_id: str,
        lecture: Lecture,
        slots: Optional[Iterable[ScheduleSlot]] = None,
    ) -> int:
        """
        Append one entry per schedule slot of `lecture`; returns how many.

        `slots` defaults to parsing the lecture's own descriptor.
        """
        table = self.table(table_id)
        if slots is None:
            slots = parse_schedule(lecture.schedule)
        new_entries = tuple(ScheduleEntry.from_slot(lecture, s) for s in slots)
        if not new_entries:
            logger.debug("Lecture %s has no schedule, nothing added", lecture.id)
            return 0
        self._replace_table(table_id, table + new_entries)
        return len(new_entries)

    def delete_entry(self, table_id: str, index: int) -> bool:
        table = self.table(table_id)
        if not (0 <= index < len(table)):
            return False
        self._replace_table(table_id, table[:index] + table[index + 1 :])
        return True

    def replace_entry(self, table_id: str, index: int, entry: ScheduleEntry) -> None:
        table = self.table(table_id)
        if not (0 <= index < len(table)):
            raise IndexError(f"No entry {index} in table {table_id!r}")
        self._replace_table(table_id, table[:index] + (entry,) + table[index + 1 :])


# ---------------------------------------------------------------------------
# Default dataset
# ---------------------------------------------------------------------------


def _entry_from_dict(data: Any) -> Optional[ScheduleEntry]:
    if not isinstance(data, dict) or not isinstance(data.get("lecture"), dict):
        return None
    if not isinstance(data.get("range"), list):
        return None
    try:
        return ScheduleEntry.create(
            Lecture.from_dict(data["lecture"]),
            str(data.get("day", "")),
            data["range"],
            data.get("room") or None,
        )
    except (TypeError, ValueError):
        return None


def load_collection(path: str | Path) -> ScheduleCollection:
    """
    Load the initial timetables from a JSON file.

    Returns an empty collection if the file is missing or invalid; single
    invalid entries are skipped. Never raises.
    """
    p = Path(path)
    if not p.exists():
        logger.info("No default dataset at %s", p)
        return {}

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Failed to load default dataset %s: %s", p, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Default dataset %s is not a JSON object", p)
        return {}

    out: ScheduleCollection = {}
    for table_id, raw_entries in data.items():
        if not isinstance(raw_entries, list):
            continue
        entries = []
        for raw in raw_entries:
            entry = _entry_from_dict(raw)
            if entry is None:
                logger.debug("Skipping invalid entry in table %s: %r", table_id, raw)
                continue
            entries.append(entry)
        out[str(table_id)] = tuple(entries)
    return out


def dump_collection(collection: ScheduleCollection) -> dict[str, list[dict[str, Any]]]:
    """
    JSON-compatible form of a collection (the shape `load_collection` reads).
    """
    return {
        table_id: [
            {
                "lecture": e.lecture.to_dict(),
                "day": e.day,
                "range": list(e.range),
                "room": e.room,
            }
            for e in entries
        ]
        for table_id, entries in collection.items()
    }
