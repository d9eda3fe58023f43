"""
Lecture catalog access.

The catalog is split over independent sources (one JSON array per source).
Each source is fetched at most once per process: the first call starts the
request, every later or concurrent call gets the same outcome, failures
included. Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from timetabler.config import DEFAULT_SOURCES, FETCH_TIMEOUT, catalog_base
from timetabler.log import get_logger
from timetabler.model import Lecture

logger = get_logger(__name__)

Fetcher = Callable[[], Awaitable[List[Lecture]]]


class CatalogError(Exception):
    """
    A catalog source could not be fetched or decoded.
    """


@dataclass(frozen=True)
class CatalogSource:
    key: str
    location: str


def default_sources(base: Optional[str] = None) -> list[CatalogSource]:
    """
    Build the default sources below `base` (URL or directory).
    """
    base = catalog_base(base)
    out: list[CatalogSource] = []
    for key, filename in DEFAULT_SOURCES:
        if base.startswith(("http://", "https://")):
            location = base.rstrip("/") + "/" + filename
        else:
            location = str(Path(base) / filename)
        out.append(CatalogSource(key=key, location=location))
    return out


# ---------------------------------------------------------------------------
# Fetching one source (blocking)
# ---------------------------------------------------------------------------


def _to_lectures(data: Any, location: str) -> List[Lecture]:
    if not isinstance(data, list):
        raise CatalogError(f"{location}: expected a JSON array, got {type(data).__name__}")
    return [Lecture.from_dict(item) for item in data if isinstance(item, dict)]


def fetch_source(location: str, timeout: float = FETCH_TIMEOUT) -> List[Lecture]:
    """
    Load one catalog source from an http(s) URL or a local JSON file.
    """
    try:
        if location.startswith(("http://", "https://")):
            resp = requests.get(location, timeout=timeout)
            resp.raise_for_status()
            data = resp.json()
        else:
            data = json.loads(Path(location).read_text(encoding="utf-8"))
    except (requests.RequestException, OSError, ValueError) as e:
        raise CatalogError(f"{location}: {e}") from e

    return _to_lectures(data, location)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class LectureCatalogCache:
    """
    Memoized, deduplicated access to several catalog sources.

    `fetchers` maps a source key to an async callable returning lectures.
    The cache is bound to the event loop of its first fetch.
    """

    def __init__(self, fetchers: Dict[str, Fetcher]) -> None:
        self._fetchers = dict(fetchers)
        self._tasks: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_sources(
        cls, sources: Iterable[CatalogSource], timeout: float = FETCH_TIMEOUT
    ) -> "LectureCatalogCache":
        def make_fetcher(location: str) -> Fetcher:
            async def fetch() -> List[Lecture]:
                return await asyncio.to_thread(fetch_source, location, timeout)

            return fetch

        return cls({s.key: make_fetcher(s.location) for s in sources})

    @property
    def keys(self) -> list[str]:
        return list(self._fetchers)

    def is_settled(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and task.done()

    async def _run(self, key: str) -> List[Lecture]:
        start = time.perf_counter()
        logger.info("Fetching catalog source %s", key)
        lectures = await self._fetchers[key]()
        logger.info(
            "Catalog source %s: %d lectures in %.1f ms",
            key,
            len(lectures),
            (time.perf_counter() - start) * 1000,
        )
        return lectures

    async def cached_fetch(self, key: str) -> List[Lecture]:
        """
        Fetch source `key`, issuing the underlying call at most once.
        """
        if key not in self._fetchers:
            raise KeyError(f"Unknown catalog source: {key!r}")

        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key))
            # A failure nobody awaited yet must not end up as "never retrieved"
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            self._tasks[key] = task

        # shield: one cancelled caller must not cancel the shared request
        return await asyncio.shield(task)

    async def load_all(
        self,
        keys: Optional[Sequence[str]] = None,
        tolerate_partial: bool = False,
    ) -> tuple[Lecture, ...]:
        """
        Fetch all sources concurrently and join them in source order.

        If a source fails the whole aggregate fails with CatalogError, unless
        `tolerate_partial` is set: then failed sources are logged and skipped.
        """
        keys = list(keys) if keys is not None else self.keys
        results = await asyncio.gather(
            *(self.cached_fetch(k) for k in keys),
            return_exceptions=True,
        )

        lectures: list[Lecture] = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                if isinstance(result, (KeyError, asyncio.CancelledError)):
                    raise result
                if not tolerate_partial:
                    if isinstance(result, CatalogError):
                        raise result
                    raise CatalogError(f"Catalog source {key!r} failed: {result}") from result
                logger.warning("Skipping catalog source %s: %s", key, result)
                continue
            lectures.extend(result)

        return tuple(lectures)
