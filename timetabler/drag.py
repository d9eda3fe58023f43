"""
Drag relocation of placed entries.

Lifecycle (one drag at a time):

    IDLE --start(table, index)--> DRAGGING --end(dx, dy) / cancel()--> IDLE

While dragging, `move` snaps the live transform to the grid. On release the
pixel displacement becomes a day/period shift. Invalid moves (off the day
axis, before period 1, or no change at all) are dropped silently: they are a
bad gesture, not an error.
"""

from __future__ import annotations

import enum
from typing import Optional

from timetabler.config import CELL_HEIGHT, CELL_WIDTH, DAY_LABELS
from timetabler.grid import Rect, Transform, delta_to_indices, snap_transform
from timetabler.log import get_logger
from timetabler.model import ScheduleEntry
from timetabler.store import ScheduleStore

logger = get_logger(__name__)


class DragState(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class DragStateError(RuntimeError):
    pass


def parse_drag_id(drag_id: str) -> tuple[str, int]:
    """
    Split a "<table id>:<entry index>" drag id.

    Table ids may themselves contain ':', so the last one is the separator.
    """
    table_id, sep, index = str(drag_id).rpartition(":")
    if not sep or not table_id:
        raise ValueError(f"Invalid drag id: {drag_id!r}")
    return table_id, int(index)


def relocate(
    entry: ScheduleEntry,
    day_delta: int,
    period_delta: int,
    max_period: Optional[int] = None,
) -> Optional[ScheduleEntry]:
    """
    Return `entry` shifted by the given deltas, or None if the move is invalid.
    """
    day_index = DAY_LABELS.index(entry.day) + day_delta
    if not (0 <= day_index < len(DAY_LABELS)):
        return None

    new_range = tuple(p + period_delta for p in entry.range)
    if any(p < 1 for p in new_range):
        return None
    if max_period is not None and any(p > max_period for p in new_range):
        return None

    new_day = DAY_LABELS[day_index]
    if new_day == entry.day and new_range == entry.range:
        return None

    return entry.moved(new_day, new_range)


class DragRelocationEngine:
    """
    Drag state machine bound to one ScheduleStore.

    `max_period` optionally forbids moves past the last period; without it
    periods have no upper bound.
    """

    def __init__(
        self,
        store: ScheduleStore,
        cell_width: int = CELL_WIDTH,
        cell_height: int = CELL_HEIGHT,
        max_period: Optional[int] = None,
    ) -> None:
        self.store = store
        self.cell_width = cell_width
        self.cell_height = cell_height
        self.max_period = max_period

        self.state = DragState.IDLE
        self._active: Optional[tuple[str, int]] = None

    @property
    def active_table_id(self) -> Optional[str]:
        """
        Table being dragged in (for highlighting), None when idle.
        """
        return self._active[0] if self._active else None

    def start(self, table_id: str, entry_index: int) -> str:
        if self.state is DragState.DRAGGING:
            raise DragStateError(f"A drag is already active in table {self.active_table_id!r}")
        self._active = (table_id, int(entry_index))
        self.state = DragState.DRAGGING
        return table_id

    def start_from_id(self, drag_id: str) -> str:
        return self.start(*parse_drag_id(drag_id))

    def move(
        self,
        transform: Transform,
        container_rect: Optional[Rect] = None,
        dragging_rect: Optional[Rect] = None,
    ) -> Transform:
        """
        Snapped and clamped transform for the current pointer position.
        """
        if self.state is not DragState.DRAGGING:
            raise DragStateError("No active drag")
        return snap_transform(
            transform,
            container_rect,
            dragging_rect,
            cell_width=self.cell_width,
            cell_height=self.cell_height,
        )

    def cancel(self) -> None:
        self._active = None
        self.state = DragState.IDLE

    def end(self, dx: float, dy: float) -> bool:
        """
        Finish the drag with a net displacement of (dx, dy) pixels.

        Returns True if the store was updated.
        """
        if self.state is not DragState.DRAGGING or self._active is None:
            return False

        table_id, index = self._active
        self.cancel()

        entry = self.store.get_entry(table_id, index)
        if entry is None:
            logger.debug("Drag ended on missing entry %s:%d", table_id, index)
            return False

        day_delta, period_delta = delta_to_indices(dx, dy, self.cell_width, self.cell_height)
        moved = relocate(entry, day_delta, period_delta, self.max_period)
        if moved is None:
            logger.debug(
                "Rejected move of %s:%d by (%d, %d)",
                table_id,
                index,
                day_delta,
                period_delta,
            )
            return False

        self.store.replace_entry(table_id, index, moved)
        return True
