"""
Central data model definitions used across the project.

All objects here are frozen: a placed entry is never edited in place, a change
produces a new object so callers can detect updates by identity.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from timetabler.config import DAY_LABELS


def _str(x: Any) -> str:
    return "" if x is None else str(x)


@dataclass(frozen=True)
class Lecture:
    """
    One lecture as delivered by a catalog source.
    """

    id: str
    title: str
    grade: int
    credits: str
    major: str
    schedule: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lecture":
        try:
            grade = int(data.get("grade", 0))
        except (TypeError, ValueError):
            grade = 0
        return cls(
            id=_str(data.get("id")).strip(),
            title=_str(data.get("title")),
            grade=grade,
            credits=_str(data.get("credits")),
            major=_str(data.get("major")),
            schedule=_str(data.get("schedule")),
        )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def is_contiguous_range(periods: Iterable[int]) -> bool:
    """
    True if `periods` is non-empty, starts at 1 or later and every element is
    exactly one greater than the previous one.
    """
    values = list(periods)
    if not values or values[0] < 1:
        return False
    return all(b == a + 1 for a, b in zip(values, values[1:]))


@dataclass(frozen=True)
class ScheduleSlot:
    """
    One contiguous block of periods on one day, as parsed from a descriptor.
    """

    day: str
    range: tuple[int, ...]
    room: Optional[str] = None


@dataclass(frozen=True)
class ScheduleEntry:
    """
    A lecture placed on a timetable.
    """

    lecture: Lecture
    day: str
    range: tuple[int, ...]
    room: Optional[str] = None

    @classmethod
    def create(
        cls,
        lecture: Lecture,
        day: str,
        periods: Iterable[int],
        room: Optional[str] = None,
    ) -> "ScheduleEntry":
        periods = tuple(int(p) for p in periods)
        if day not in DAY_LABELS:
            raise ValueError(f"Unknown day label: {day!r}")
        if not is_contiguous_range(periods):
            raise ValueError(f"Not a contiguous period range: {periods!r}")
        return cls(lecture=lecture, day=day, range=periods, room=room)

    @classmethod
    def from_slot(cls, lecture: Lecture, slot: ScheduleSlot) -> "ScheduleEntry":
        return cls.create(lecture, slot.day, slot.range, slot.room)

    @property
    def slot(self) -> ScheduleSlot:
        return ScheduleSlot(self.day, self.range, self.room)

    def moved(self, day: str, periods: Iterable[int]) -> "ScheduleEntry":
        """
        Return a copy placed at `day` / `periods`; every other field is kept.
        """
        return dataclasses.replace(self, day=day, range=tuple(periods))


# Position-addressable, the index is the identity of an entry
ScheduleTable = tuple[ScheduleEntry, ...]

# Table identifier -> table, insertion order is the display order
ScheduleCollection = dict[str, ScheduleTable]


def _frozen(values: Optional[Iterable[Any]]) -> frozenset:
    return frozenset(values or ())


@dataclass(frozen=True)
class SearchCriteria:
    """
    Filter criteria of a lecture search. Empty sets mean "no restriction".
    """

    query: str = ""
    grades: frozenset[int] = field(default_factory=frozenset)
    days: frozenset[str] = field(default_factory=frozenset)
    periods: frozenset[int] = field(default_factory=frozenset)
    majors: frozenset[str] = field(default_factory=frozenset)
    credits: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept lists/sets from callers but keep the object hashable
        for name in ("grades", "days", "periods", "majors"):
            value = getattr(self, name)
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, _frozen(value))
        if self.query is None:
            object.__setattr__(self, "query", "")

    def replace(self, **changes: Any) -> "SearchCriteria":
        return dataclasses.replace(self, **changes)
