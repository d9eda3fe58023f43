"""
Pixel <-> grid cell transforms.

The grid has a header row (day labels) and a header column (period labels);
data cells start at (HEADER_WIDTH, HEADER_HEIGHT) relative to the grid origin.
Everything here is pure arithmetic and never raises on missing geometry.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional

from timetabler.config import (
    CELL_HEIGHT,
    CELL_WIDTH,
    DAY_LABELS,
    HEADER_HEIGHT,
    HEADER_WIDTH,
    TIME_SLOTS,
)


@dataclass(frozen=True)
class Rect:
    """
    Bounding rectangle in page coordinates.
    """

    top: float = 0
    left: float = 0
    bottom: float = 0
    right: float = 0


@dataclass(frozen=True)
class Transform:
    """
    Translation (and scale) applied to an element while it is dragged.
    """

    x: float = 0
    y: float = 0
    scale_x: float = 1.0
    scale_y: float = 1.0


def _round_to_cell(value: float, size: int) -> float:
    # Halves round up, like browser pixel maths (Python's round() would not)
    return math.floor(value / size + 0.5) * size


def snap_transform(
    transform: Transform,
    container_rect: Optional[Rect],
    dragging_rect: Optional[Rect],
    cell_width: int = CELL_WIDTH,
    cell_height: int = CELL_HEIGHT,
    header_width: int = HEADER_WIDTH,
    header_height: int = HEADER_HEIGHT,
) -> Transform:
    """
    Snap a live drag transform to the cell grid and keep the element inside it.

    The element may not move above/left of the first data cell, nor beyond the
    bottom/right edge of the container.
    """
    container = container_rect or Rect()
    dragging = dragging_rect or Rect()

    min_x = container.left - dragging.left + header_width + 1
    min_y = container.top - dragging.top + header_height + 1
    max_x = container.right - dragging.right
    max_y = container.bottom - dragging.bottom

    x = min(max(_round_to_cell(transform.x, cell_width), min_x), max_x)
    y = min(max(_round_to_cell(transform.y, cell_height), min_y), max_y)

    return replace(transform, x=x, y=y)


def delta_to_indices(
    dx: float,
    dy: float,
    cell_width: int = CELL_WIDTH,
    cell_height: int = CELL_HEIGHT,
) -> tuple[int, int]:
    """
    Convert a net pixel displacement into (day_delta, period_delta).

    Floors toward negative infinity, so -41px with 80px cells is one day back.
    """
    return math.floor(dx / cell_width), math.floor(dy / cell_height)


def cell_at(
    x: float,
    y: float,
    cell_width: int = CELL_WIDTH,
    cell_height: int = CELL_HEIGHT,
) -> Optional[tuple[str, int]]:
    """
    Return the (day, period) under a point relative to the grid origin.

    None for the header row/column and for points outside the grid.
    """
    col = math.floor((x - HEADER_WIDTH) / cell_width)
    row = math.floor((y - HEADER_HEIGHT) / cell_height)
    if x < HEADER_WIDTH or y < HEADER_HEIGHT:
        return None
    if not (0 <= col < len(DAY_LABELS)) or not (0 <= row < len(TIME_SLOTS)):
        return None
    return DAY_LABELS[col], row + 1
