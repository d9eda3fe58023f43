"""
Tests for the catalog cache.

Fetchers are plain coroutines with call counters, so no network is involved
(except test_fetch_source_http, which patches requests.get).
"""

import asyncio
import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from timetabler.catalog import (
    CatalogError,
    CatalogSource,
    LectureCatalogCache,
    default_sources,
    fetch_source,
)
from timetabler.model import Lecture


def _lecture(lid: str) -> Lecture:
    return Lecture(id=lid, title=lid, grade=1, credits="3", major="M", schedule="Mon1")


class CountingFetcher:
    def __init__(self, result=None, error=None, delay=0.01):
        self.calls = 0
        self.result = result or []
        self.error = error
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class TestCachedFetch(unittest.IsolatedAsyncioTestCase):
    async def test_one_call_for_ten_concurrent_requests(self) -> None:
        fetcher = CountingFetcher(result=[_lecture("CS101")])
        cache = LectureCatalogCache({"majors": fetcher})

        results = await asyncio.gather(*(cache.cached_fetch("majors") for _ in range(10)))

        self.assertEqual(fetcher.calls, 1)
        self.assertTrue(all(r is results[0] for r in results))

    async def test_later_calls_reuse_result(self) -> None:
        fetcher = CountingFetcher(result=[_lecture("CS101")])
        cache = LectureCatalogCache({"majors": fetcher})

        first = await cache.cached_fetch("majors")
        second = await cache.cached_fetch("majors")

        self.assertIs(first, second)
        self.assertEqual(fetcher.calls, 1)
        self.assertTrue(cache.is_settled("majors"))

    async def test_failure_is_shared_and_not_retried(self) -> None:
        fetcher = CountingFetcher(error=CatalogError("boom"))
        cache = LectureCatalogCache({"majors": fetcher})

        for _ in range(3):
            with self.assertRaises(CatalogError):
                await cache.cached_fetch("majors")
        self.assertEqual(fetcher.calls, 1)

    async def test_unknown_source(self) -> None:
        cache = LectureCatalogCache({})
        with self.assertRaises(KeyError):
            await cache.cached_fetch("nope")

    async def test_sources_fetched_in_parallel(self) -> None:
        started = []
        release = asyncio.Event()

        def make(key):
            async def fetch():
                started.append(key)
                await release.wait()
                return [_lecture(key)]

            return fetch

        cache = LectureCatalogCache({"a": make("a"), "b": make("b")})
        task = asyncio.ensure_future(cache.load_all())
        await asyncio.sleep(0.01)
        # both requests are in flight before either one finished
        self.assertEqual(sorted(started), ["a", "b"])
        release.set()
        lectures = await task
        self.assertEqual([lec.id for lec in lectures], ["a", "b"])


class TestLoadAll(unittest.IsolatedAsyncioTestCase):
    async def test_joins_in_source_order(self) -> None:
        slow = CountingFetcher(result=[_lecture("M1"), _lecture("M2")], delay=0.03)
        fast = CountingFetcher(result=[_lecture("L1")], delay=0.0)
        cache = LectureCatalogCache({"majors": slow, "liberal-arts": fast})

        lectures = await cache.load_all()

        self.assertEqual([lec.id for lec in lectures], ["M1", "M2", "L1"])
        self.assertIsInstance(lectures, tuple)

    async def test_one_failure_fails_the_aggregate(self) -> None:
        cache = LectureCatalogCache(
            {
                "majors": CountingFetcher(result=[_lecture("M1")]),
                "liberal-arts": CountingFetcher(error=ValueError("bad json")),
            }
        )
        with self.assertRaises(CatalogError):
            await cache.load_all()

    async def test_tolerate_partial(self) -> None:
        cache = LectureCatalogCache(
            {
                "majors": CountingFetcher(result=[_lecture("M1")]),
                "liberal-arts": CountingFetcher(error=CatalogError("down")),
            }
        )
        lectures = await cache.load_all(tolerate_partial=True)
        self.assertEqual([lec.id for lec in lectures], ["M1"])

    async def test_from_sources_reads_local_files(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "majors.json"
            p.write_text(json.dumps([{"id": "CS101", "title": "Intro", "grade": 1}]), encoding="utf-8")
            cache = LectureCatalogCache.from_sources([CatalogSource("majors", str(p))])
            lectures = await cache.load_all()
        self.assertEqual(lectures[0].id, "CS101")
        self.assertEqual(lectures[0].credits, "")


class TestFetchSource(unittest.TestCase):
    def test_missing_file_raises_catalog_error(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(CatalogError):
                fetch_source(str(Path(d) / "missing.json"))

    def test_non_list_raises_catalog_error(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "x.json"
            p.write_text('{"id": "CS101"}', encoding="utf-8")
            with self.assertRaises(CatalogError):
                fetch_source(str(p))

    @patch("timetabler.catalog.requests.get")
    def test_fetch_source_http(self, mock_get: MagicMock) -> None:
        resp = MagicMock()
        resp.json.return_value = [{"id": "CS101", "title": "Intro", "grade": "2", "credits": "3"}]
        mock_get.return_value = resp

        lectures = fetch_source("https://example.org/schedules-majors.json", timeout=5)

        mock_get.assert_called_once_with("https://example.org/schedules-majors.json", timeout=5)
        resp.raise_for_status.assert_called_once()
        self.assertEqual(lectures[0].grade, 2)

    @patch("timetabler.catalog.requests.get")
    def test_fetch_source_http_error(self, mock_get: MagicMock) -> None:
        mock_get.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(CatalogError):
            fetch_source("https://example.org/schedules-majors.json")

    def test_default_sources(self) -> None:
        urls = [s.location for s in default_sources("https://example.org/data/")]
        self.assertEqual(
            urls,
            [
                "https://example.org/data/schedules-majors.json",
                "https://example.org/data/schedules-liberal-arts.json",
            ],
        )

    def test_bundled_catalog_loads(self) -> None:
        lectures = []
        for source in default_sources():
            lectures.extend(fetch_source(source.location))
        self.assertTrue(any(lec.id == "CS101" for lec in lectures))


if __name__ == "__main__":
    unittest.main()
