"""
CLI (Command Line Interface).

    timetabler search <text> [--grade 2] [--day Mon] [--period 3] ...
    timetabler tables [--json]
    timetabler interactive

Note:
- The interactive UI lives in timetabler/interactive.py
- Timetables only live for the duration of one process
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Optional

from timetabler.catalog import CatalogError, LectureCatalogCache, default_sources
from timetabler.config import DAY_LABELS, catalog_base, default_dataset_path, log_level
from timetabler.log import get_logger, setup_logging
from timetabler.model import SearchCriteria
from timetabler.search import build_schedule_cache, filter_lectures
from timetabler.store import ScheduleStore, dump_collection, load_collection

logger = get_logger(__name__)


def _catalog_cache(base: Optional[str]) -> LectureCatalogCache:
    return LectureCatalogCache.from_sources(default_sources(catalog_base(base)))


def _initial_store(dataset: Optional[str]) -> ScheduleStore:
    """
    Store seeded from the default dataset; one empty table if there is none.
    """
    collection = load_collection(default_dataset_path(dataset))
    store = ScheduleStore(collection)
    if not collection:
        store.create_table("schedule-1")
    return store


def _cmd_search(args: argparse.Namespace) -> int:
    """
    Filter the catalog and print matching lectures.
    """
    criteria = SearchCriteria(
        query=(args.text or "").strip(),
        grades=args.grade or [],
        days=args.day or [],
        periods=args.period or [],
        majors=args.major or [],
        credits=(args.credits or "").strip() or None,
    )

    cache = _catalog_cache(args.catalog)
    try:
        lectures = asyncio.run(cache.load_all())
    except CatalogError as e:
        logger.debug("Catalog load failed", exc_info=True)
        print(f"Could not load the lecture catalog: {e}")
        return 1

    matches = filter_lectures(lectures, build_schedule_cache(lectures), criteria)
    if not matches:
        print("No results.")
        return 0

    from timetabler.interactive import lecture_row

    for lec in matches[: args.limit]:
        print(" | ".join(lecture_row(lec)))
    if len(matches) > args.limit:
        print(f"... and {len(matches) - args.limit} more results")

    return 0


def _cmd_tables(args: argparse.Namespace) -> int:
    store = _initial_store(args.dataset)

    if args.json:
        print(json.dumps(dump_collection(store.collection), ensure_ascii=False, indent=2))
        return 0

    from timetabler.interactive import render_store

    render_store(store)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="timetabler", description="Timetabler CLI")
    parser.add_argument("--log-level", type=str, default=None, help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="command", required=True)

    p_search = sub.add_parser("search", help="Search the lecture catalog")
    p_search.add_argument("text", type=str, nargs="?", default="", help="Part of a lecture code or title")
    p_search.add_argument("--grade", type=int, action="append", help="Grade (repeatable)")
    p_search.add_argument("--day", type=str, action="append", choices=DAY_LABELS, help="Day (repeatable)")
    p_search.add_argument("--period", type=int, action="append", help="Period index (repeatable)")
    p_search.add_argument("--major", type=str, action="append", help="Raw major string (repeatable)")
    p_search.add_argument("--credits", type=str, default=None, help="Credit prefix, e.g. 3")
    p_search.add_argument("--catalog", type=str, default=None, help="Catalog base URL or directory")
    p_search.add_argument("--limit", type=int, default=20, help="Max rows to print")

    p_tables = sub.add_parser("tables", help="Show the initial timetables")
    p_tables.add_argument("--dataset", type=str, default=None, help="Default dataset JSON file")
    p_tables.add_argument("--json", action="store_true", help="Print JSON instead of a grid")

    p_inter = sub.add_parser("interactive", help="Interactive menu mode")
    p_inter.add_argument("--dataset", type=str, default=None, help="Default dataset JSON file")
    p_inter.add_argument("--catalog", type=str, default=None, help="Catalog base URL or directory")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(log_level(args.log_level))

    if args.command == "search":
        raise SystemExit(_cmd_search(args))
    if args.command == "tables":
        raise SystemExit(_cmd_tables(args))

    if args.command == "interactive":
        from timetabler.interactive import run_interactive

        run_interactive(_initial_store(args.dataset), _catalog_cache(args.catalog))
        raise SystemExit(0)

    raise SystemExit(2)
