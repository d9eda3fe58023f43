import asyncio
import unittest

from timetabler.catalog import CatalogError, LectureCatalogCache
from timetabler.model import Lecture, ScheduleSlot, SearchCriteria
from timetabler.search import (
    DebouncedValue,
    FilterSelector,
    SearchSession,
    all_majors,
    build_schedule_cache,
    filter_lectures,
)
from timetabler.store import ScheduleStore


def lec(lid, title="", grade=1, credits="3", major="CS", schedule="") -> Lecture:
    return Lecture(id=lid, title=title, grade=grade, credits=credits, major=major, schedule=schedule)


CATALOG = (
    lec("CS101", "Intro", grade=1, credits="3", major="CS", schedule="Mon1,2"),
    lec("MA201", "Calc", grade=2, credits="2", major="MATH", schedule="Tue3"),
    lec("CS305", "Operating Systems", grade=3, credits="3(2)", major="CS", schedule="Thu9,10<p>Fri1"),
    lec("LA110", "Writing", grade=1, credits="1", major="LA", schedule=""),
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestFilterLectures(unittest.TestCase):
    def setUp(self) -> None:
        self.cache = build_schedule_cache(CATALOG)

    def ids(self, **criteria) -> list:
        return [x.id for x in filter_lectures(CATALOG, self.cache, SearchCriteria(**criteria))]

    def test_no_criteria_returns_catalog_in_order(self) -> None:
        self.assertEqual(filter_lectures(CATALOG, self.cache, SearchCriteria()), list(CATALOG))

    def test_query_matches_id_case_insensitive(self) -> None:
        catalog = [lec("CS101", "Intro"), lec("MA201", "Calc")]
        result = filter_lectures(catalog, build_schedule_cache(catalog), SearchCriteria(query="cs"))
        self.assertEqual([x.id for x in result], ["CS101"])

    def test_query_matches_title(self) -> None:
        self.assertEqual(self.ids(query="SYSTEMS"), ["CS305"])

    def test_grades(self) -> None:
        self.assertEqual(self.ids(grades={1}), ["CS101", "LA110"])

    def test_majors(self) -> None:
        self.assertEqual(self.ids(majors={"CS"}), ["CS101", "CS305"])

    def test_credits_prefix(self) -> None:
        self.assertEqual(self.ids(credits="3"), ["CS101", "CS305"])
        self.assertEqual(self.ids(credits=""), [x.id for x in CATALOG])

    def test_days(self) -> None:
        catalog = [lec("A", schedule="Mon1,2"), lec("B", schedule="Tue3")]
        cache = {"A": (ScheduleSlot("Mon", (1, 2)),), "B": (ScheduleSlot("Tue", (3,)),)}
        result = filter_lectures(catalog, cache, SearchCriteria(days={"Mon"}))
        self.assertEqual([x.id for x in result], ["A"])

    def test_periods(self) -> None:
        self.assertEqual(self.ids(periods={1}), ["CS101", "CS305"])

    def test_days_and_periods_may_match_different_slots(self) -> None:
        # Thu has 9-10, period 1 is on Fri: both checks pass independently
        self.assertEqual(self.ids(days={"Thu"}, periods={1}), ["CS305"])

    def test_lecture_without_cache_entry_fails_schedule_filter(self) -> None:
        self.assertEqual(filter_lectures(CATALOG, {}, SearchCriteria(days={"Mon"})), [])

    def test_combined(self) -> None:
        self.assertEqual(self.ids(query="c", grades={2}, majors={"MATH"}), ["MA201"])

    def test_pure(self) -> None:
        criteria = SearchCriteria(grades={1, 3})
        self.assertEqual(
            filter_lectures(CATALOG, self.cache, criteria),
            filter_lectures(CATALOG, self.cache, criteria),
        )

    def test_all_majors_first_seen_order(self) -> None:
        self.assertEqual(all_majors(CATALOG), ["CS", "MATH", "LA"])


class TestFilterSelector(unittest.TestCase):
    def test_recomputes_only_on_input_change(self) -> None:
        cache = build_schedule_cache(CATALOG)
        select = FilterSelector()

        first = select(CATALOG, cache, SearchCriteria(grades={1}))
        again = select(CATALOG, cache, SearchCriteria(grades=[1]))
        self.assertIs(first, again)
        self.assertEqual(select.compute_count, 1)

        select(CATALOG, cache, SearchCriteria(grades={2}))
        self.assertEqual(select.compute_count, 2)

        select(CATALOG, dict(cache), SearchCriteria(grades={2}))
        self.assertEqual(select.compute_count, 3)

        select(list(CATALOG), dict(cache), SearchCriteria(grades={2}))
        self.assertEqual(select.compute_count, 4)


class TestDebouncedValue(unittest.TestCase):
    def test_converges_once_idle(self) -> None:
        clock = FakeClock()
        d = DebouncedValue(delay=0.3, clock=clock)

        d.set("c")
        clock.now = 0.1
        d.set("cs")
        clock.now = 0.3
        self.assertFalse(d.poll())
        self.assertEqual(d.value, "")

        clock.now = 0.45
        self.assertTrue(d.poll())
        self.assertEqual(d.value, "cs")
        self.assertFalse(d.pending)
        self.assertFalse(d.poll())

    def test_flush_and_reset(self) -> None:
        d = DebouncedValue(delay=10, clock=FakeClock())
        d.set("x")
        self.assertTrue(d.flush())
        d.reset("y")
        self.assertEqual((d.raw, d.value), ("y", "y"))


class TestSearchSession(unittest.IsolatedAsyncioTestCase):
    def make_cache(self, error=None) -> LectureCatalogCache:
        async def fetch():
            await asyncio.sleep(0)
            if error is not None:
                raise error
            return list(CATALOG)

        return LectureCatalogCache({"majors": fetch})

    async def test_preset_from_cell_and_results(self) -> None:
        store = ScheduleStore({"t1": ()})
        session = SearchSession(store, self.make_cache(), "t1", day="Mon", period=2)
        self.assertEqual(session.criteria.days, frozenset({"Mon"}))
        self.assertEqual(session.criteria.periods, frozenset({2}))

        self.assertTrue(await session.load())
        self.assertFalse(session.loading)
        self.assertEqual([x.id for x in session.results()], ["CS101"])
        self.assertEqual(session.majors, ["CS", "MATH", "LA"])

    async def test_query_is_debounced(self) -> None:
        clock = FakeClock()
        store = ScheduleStore({"t1": ()})
        session = SearchSession(store, self.make_cache(), "t1", debounce=DebouncedValue(delay=0.3, clock=clock))
        await session.load()

        session.set_query("calc")
        self.assertEqual(len(session.results()), len(CATALOG))
        clock.now = 1.0
        self.assertEqual([x.id for x in session.results()], ["MA201"])

    async def test_update_and_remove(self) -> None:
        session = SearchSession(ScheduleStore({"t1": ()}), self.make_cache(), "t1", period=1)
        await session.load()
        session.update(majors={"CS", "MATH"})
        self.assertEqual([x.id for x in session.results()], ["CS101", "CS305"])
        session.remove_period(1)
        session.remove_major("CS")
        self.assertEqual([x.id for x in session.results()], ["MA201"])

    async def test_load_failure_gives_empty_results(self) -> None:
        session = SearchSession(ScheduleStore({"t1": ()}), self.make_cache(error=CatalogError("down")), "t1")
        with self.assertLogs("timetabler.search", level="ERROR"):
            self.assertFalse(await session.load())
        self.assertFalse(session.loading)
        self.assertIsNotNone(session.error)
        self.assertEqual(session.results(), [])

    async def test_closed_session_ignores_late_catalog(self) -> None:
        session = SearchSession(ScheduleStore({"t1": ()}), self.make_cache(), "t1")
        task = asyncio.ensure_future(session.load())
        session.close()
        self.assertFalse(await task)
        self.assertEqual(session.lectures, ())

    async def test_add_appends_entries_and_closes(self) -> None:
        store = ScheduleStore({"t1": (), "t2": ()})
        other = store.collection["t2"]
        session = SearchSession(store, self.make_cache(), "t1")
        await session.load()

        self.assertEqual(session.add(CATALOG[2]), 2)
        table = store.table("t1")
        self.assertEqual([(e.day, e.range) for e in table], [("Thu", (9, 10)), ("Fri", (1,))])
        self.assertIs(store.collection["t2"], other)
        self.assertTrue(session.closed)
        self.assertEqual(session.add(CATALOG[0]), 0)


if __name__ == "__main__":
    unittest.main()
