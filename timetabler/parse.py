"""
Parsing of the compact schedule descriptors found in the lecture catalog.

A descriptor is a list of segments separated by ``<p>`` markup. Each segment
names one day followed by the comma-joined periods on that day and an
optional room in parentheses:

    Mon1,2,3(Hall 301)<p>Wed5,6

Rules:
- one ScheduleSlot per maximal contiguous run of periods in a segment
  ("Mon1,2,4" gives Mon(1,2) and Mon(4))
- empty or malformed descriptors give an empty list, parsing never raises
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup

from timetabler.config import DAY_LABELS
from timetabler.model import ScheduleSlot


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SEGMENT_SEPARATOR = "<p>"

_SEPARATOR_RE = re.compile(r"<\s*/?\s*(?:p|br)\s*/?\s*>|\n", re.IGNORECASE)

# day label, period list, optional "(room)"
_SEGMENT_RE = re.compile(r"^([^\d\s(),]+)\s*(\d+(?:\s*,\s*\d+)*)\s*(?:\(([^()]*)\))?$")


def contiguous_runs(periods: Iterable[int]) -> List[tuple[int, ...]]:
    """
    Split periods into maximal runs of consecutive values.

    Input is sorted and de-duplicated first:
        [3, 1, 2, 5] -> [(1, 2, 3), (5,)]
    """
    runs: List[tuple[int, ...]] = []
    current: List[int] = []

    for p in sorted(set(periods)):
        if current and p != current[-1] + 1:
            runs.append(tuple(current))
            current = []
        current.append(p)

    if current:
        runs.append(tuple(current))
    return runs


def _parse_segment(segment: str) -> Optional[List[ScheduleSlot]]:
    """
    Parse one ``<day><periods>[(room)]`` segment, None if malformed.
    """
    match = _SEGMENT_RE.match(segment)
    if not match:
        return None

    day, period_text, room = match.groups()
    if day not in DAY_LABELS:
        return None

    periods = [int(p) for p in period_text.split(",")]
    if any(p < 1 for p in periods):
        return None

    room = room.strip() if room and room.strip() else None
    return [ScheduleSlot(day=day, range=run, room=room) for run in contiguous_runs(periods)]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_schedule(descriptor: Optional[str]) -> List[ScheduleSlot]:
    """
    Parse a schedule descriptor into slots, in descriptor order.
    """
    if not descriptor or not isinstance(descriptor, str):
        return []

    slots: List[ScheduleSlot] = []
    for segment in _SEPARATOR_RE.split(descriptor):
        segment = segment.strip()
        # "<p>Mon1<p>" style leading/trailing separators are harmless
        if not segment:
            continue

        parsed = _parse_segment(segment)
        if parsed is None:
            return []
        slots.extend(parsed)

    return slots


def format_slot(slot: ScheduleSlot) -> str:
    text = slot.day + ",".join(str(p) for p in slot.range)
    if slot.room:
        text += f"({slot.room})"
    return text


def format_schedule(slots: Iterable[ScheduleSlot]) -> str:
    """
    Canonical descriptor for `slots`, one segment per slot.

    parse_schedule(format_schedule(parse_schedule(d))) == parse_schedule(d)
    """
    return SEGMENT_SEPARATOR.join(format_slot(s) for s in slots)


# ---------------------------------------------------------------------------
# Markup
# ---------------------------------------------------------------------------


def strip_markup(text: Optional[str]) -> str:
    """
    Plain text of a catalog field that may contain simple HTML.

    ``<p>`` boundaries become single spaces.
    """
    if not text:
        return ""
    soup = BeautifulSoup(text, "html.parser")
    return " ".join(soup.get_text(" ", strip=True).split())


def major_label(major: Optional[str]) -> str:
    """
    Short label of a major: the last ``<p>``-separated part.

        "College of Engineering<p>Computer Science" -> "Computer Science"
    """
    if not major:
        return ""
    parts = [p for p in re.split(r"<\s*p\s*>", major, flags=re.IGNORECASE) if p.strip()]
    return strip_markup(parts[-1]) if parts else ""
