"""
Lecture search.

filter_lectures() is the pure filter. The rest of the module holds the state
around it:
- FilterSelector: recomputes only when catalog, schedule cache or criteria change
- DebouncedValue: query text only becomes a criterion once typing has stopped
- SearchSession: one open search for one table (presets, loading, "add")
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from timetabler.catalog import CatalogError, LectureCatalogCache
from timetabler.config import QUERY_DEBOUNCE_SECONDS
from timetabler.log import get_logger
from timetabler.model import Lecture, ScheduleSlot, SearchCriteria
from timetabler.parse import parse_schedule
from timetabler.store import ScheduleStore

logger = get_logger(__name__)

ScheduleCache = Dict[str, Sequence[ScheduleSlot]]


# ---------------------------------------------------------------------------
# Pure filter
# ---------------------------------------------------------------------------


def build_schedule_cache(lectures: Iterable[Lecture]) -> ScheduleCache:
    """
    Parse every lecture's schedule once, keyed by lecture id.
    """
    return {lec.id: tuple(parse_schedule(lec.schedule)) for lec in lectures}


def all_majors(lectures: Iterable[Lecture]) -> list[str]:
    """
    Distinct raw majors in first-seen order.
    """
    return list(dict.fromkeys(lec.major for lec in lectures))


def _matches(lecture: Lecture, schedule_cache: ScheduleCache, c: SearchCriteria, query: str) -> bool:
    # 1. query
    if query and query not in lecture.title.lower() and query not in lecture.id.lower():
        return False

    # 2. grades
    if c.grades and lecture.grade not in c.grades:
        return False

    # 3. majors
    if c.majors and lecture.major not in c.majors:
        return False

    # 4. credits
    if c.credits and not lecture.credits.startswith(str(c.credits)):
        return False

    # 5. days / periods, from the pre-parsed schedules
    if c.days or c.periods:
        slots = schedule_cache.get(lecture.id, ())

        if c.days and not any(s.day in c.days for s in slots):
            return False

        if c.periods and not any(p in c.periods for s in slots for p in s.range):
            return False

    return True


def filter_lectures(
    catalog: Sequence[Lecture],
    schedule_cache: ScheduleCache,
    criteria: SearchCriteria,
) -> list[Lecture]:
    """
    Lectures of `catalog` matching every criterion, in catalog order.
    """
    query = (criteria.query or "").lower()
    return [lec for lec in catalog if _matches(lec, schedule_cache, criteria, query)]


# ---------------------------------------------------------------------------
# Memoization
# ---------------------------------------------------------------------------


class FilterSelector:
    """
    Memoized filter_lectures.

    Catalog and schedule cache are compared by identity (they are replaced,
    never mutated), criteria by value.
    """

    def __init__(self) -> None:
        self._key: Optional[tuple[Any, Any, SearchCriteria]] = None
        self._result: list[Lecture] = []
        self.compute_count = 0

    def __call__(
        self,
        catalog: Sequence[Lecture],
        schedule_cache: ScheduleCache,
        criteria: SearchCriteria,
    ) -> list[Lecture]:
        if self._key is not None:
            last_catalog, last_cache, last_criteria = self._key
            if last_catalog is catalog and last_cache is schedule_cache and last_criteria == criteria:
                return self._result

        start = time.perf_counter()
        self._result = filter_lectures(catalog, schedule_cache, criteria)
        self._key = (catalog, schedule_cache, criteria)
        self.compute_count += 1
        logger.debug(
            "Filtered %d -> %d lectures in %.2f ms",
            len(catalog),
            len(self._result),
            (time.perf_counter() - start) * 1000,
        )
        return self._result


# ---------------------------------------------------------------------------
# Debounced input
# ---------------------------------------------------------------------------


class DebouncedValue:
    """
    Raw input plus an authoritative value that follows it once idle.

    `value` converges to the latest `raw` as soon as no `set` happened for
    `delay` seconds and `poll` is called.
    """

    def __init__(
        self,
        initial: str = "",
        delay: float = QUERY_DEBOUNCE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.raw = initial
        self.value = initial
        self.delay = delay
        self._clock = clock
        self._last_input: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self.raw != self.value

    def set(self, raw: str) -> None:
        self.raw = raw
        self._last_input = self._clock()

    def poll(self) -> bool:
        """
        Promote `raw` if idle long enough. Returns True if `value` changed.
        """
        if not self.pending or self._last_input is None:
            return False
        if self._clock() - self._last_input < self.delay:
            return False
        return self.flush()

    def flush(self) -> bool:
        changed = self.value != self.raw
        self.value = self.raw
        return changed

    def reset(self, value: str) -> None:
        """
        Set both raw and authoritative value at once (external change).
        """
        self.raw = value
        self.value = value
        self._last_input = None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SearchSession:
    """
    One open lecture search targeting one table.

    Opening it from an empty grid cell presets the day and period filters.
    """

    def __init__(
        self,
        store: ScheduleStore,
        catalog_cache: LectureCatalogCache,
        table_id: str,
        day: Optional[str] = None,
        period: Optional[int] = None,
        debounce: Optional[DebouncedValue] = None,
    ) -> None:
        self.store = store
        self.catalog_cache = catalog_cache
        self.table_id = table_id

        self.criteria = SearchCriteria(
            days=[day] if day else [],
            periods=[period] if period else [],
        )
        self.query_input = debounce or DebouncedValue()

        self.lectures: tuple[Lecture, ...] = ()
        self.schedule_cache: ScheduleCache = {}
        self.majors: list[str] = []
        self.loading = False
        self.error: Optional[Exception] = None
        self.closed = False

        self._selector = FilterSelector()

    # -- loading -----------------------------------------------------------

    async def load(self, tolerate_partial: bool = False) -> bool:
        """
        Fetch the catalog and apply it, unless the session was closed meanwhile.

        Returns True if a catalog was applied.
        """
        self.loading = True
        try:
            lectures = await self.catalog_cache.load_all(tolerate_partial=tolerate_partial)
        except CatalogError as e:
            logger.exception("Failed to load lecture catalog")
            if not self.closed:
                self.error = e
                self.lectures = ()
                self.schedule_cache = {}
                self.majors = []
                self.loading = False
            return False

        if self.closed:
            logger.debug("Search closed before the catalog arrived, dropping result")
            return False

        self.lectures = lectures
        self.schedule_cache = build_schedule_cache(lectures)
        self.majors = all_majors(lectures)
        self.error = None
        self.loading = False
        return True

    def close(self) -> None:
        self.closed = True

    # -- criteria ----------------------------------------------------------

    def set_query(self, text: str) -> None:
        self.query_input.set(text)

    def sync_query(self, force: bool = False) -> bool:
        """
        Apply the debounced query to the criteria. Returns True on change.
        """
        if force:
            self.query_input.flush()
        else:
            self.query_input.poll()
        if self.criteria.query == self.query_input.value:
            return False
        self.criteria = self.criteria.replace(query=self.query_input.value)
        return True

    def update(self, **changes: Any) -> SearchCriteria:
        """
        Change any criterion; a `query` given here bypasses the debounce.
        """
        if "query" in changes:
            self.query_input.reset(changes["query"] or "")
        self.criteria = self.criteria.replace(**changes)
        return self.criteria

    def remove_period(self, period: int) -> SearchCriteria:
        return self.update(periods=self.criteria.periods - {period})

    def remove_major(self, major: str) -> SearchCriteria:
        return self.update(majors=self.criteria.majors - {major})

    # -- results -----------------------------------------------------------

    def results(self) -> List[Lecture]:
        self.sync_query()
        return self._selector(self.lectures, self.schedule_cache, self.criteria)

    def add(self, lecture: Lecture) -> int:
        """
        Place `lecture` on the session's table and close the session.
        """
        if self.closed:
            return 0
        slots = self.schedule_cache.get(lecture.id)
        if slots is None:
            slots = parse_schedule(lecture.schedule)
        added = self.store.add_lecture(self.table_id, lecture, slots)
        self.close()
        return added
