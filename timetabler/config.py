"""
Configuration shared by the grid, the search and the CLI.

Values that depend on the environment are exposed as functions instead of
constants, so tests (and the CLI) can override them without touching globals.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional


PACKAGE_DIR = Path(__file__).resolve().parent
DATA_DIR = PACKAGE_DIR / "data"


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------

# Column axis of every timetable, in display order
DAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

# Pixel size of one grid cell (one day x one period)
CELL_WIDTH = 80
CELL_HEIGHT = 30

# The period column on the left and the day header row on top
HEADER_WIDTH = 120
HEADER_HEIGHT = 40


def _build_time_slots() -> tuple[str, ...]:
    """
    Period labels, 1-based by position.

    Day periods are 30 minutes long starting at 09:00, evening periods
    (from 18:00) are 50 minutes long with a 5 minute break.
    """
    slots: list[str] = []

    def hhmm(minutes: int) -> str:
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    for k in range(18):
        start = 9 * 60 + k * 30
        slots.append(f"{hhmm(start)}~{hhmm(start + 30)}")

    for k in range(6):
        start = 18 * 60 + k * 55
        slots.append(f"{hhmm(start)}~{hhmm(start + 50)}")

    return tuple(slots)


TIME_SLOTS = _build_time_slots()

# First evening period (rendered differently by the CLI)
EVENING_FROM_PERIOD = 19


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

QUERY_DEBOUNCE_SECONDS = 0.3

GRADE_CHOICES = (1, 2, 3, 4)
CREDIT_CHOICES = ("1", "2", "3")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

FETCH_TIMEOUT = 30

# (source key, file name below the catalog base)
DEFAULT_SOURCES = (
    ("majors", "schedules-majors.json"),
    ("liberal-arts", "schedules-liberal-arts.json"),
)


def catalog_base(override: Optional[str] = None) -> str:
    """
    Return the location the catalog files are read from.

    Either an http(s) base URL or a local directory. Falls back to the
    catalog files bundled inside the package.
    """
    if override:
        return override
    return os.environ.get("TIMETABLER_CATALOG", "").strip() or str(DATA_DIR)


def default_dataset_path(override: Optional[str] = None) -> Path:
    """
    Return the path of the JSON file holding the initial timetables.
    """
    if override:
        return Path(override)
    env = os.environ.get("TIMETABLER_DATASET", "").strip()
    return Path(env) if env else DATA_DIR / "default_tables.json"


def log_level(override: Optional[str] = None) -> int:
    name = (override or os.environ.get("TIMETABLER_LOG_LEVEL", "") or "WARNING").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING
