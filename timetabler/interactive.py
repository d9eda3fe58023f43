from __future__ import annotations

import asyncio
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from timetabler.catalog import LectureCatalogCache
from timetabler.config import CREDIT_CHOICES, DAY_LABELS, EVENING_FROM_PERIOD, GRADE_CHOICES, TIME_SLOTS
from timetabler.drag import DragRelocationEngine
from timetabler.grid import cell_at
from timetabler.model import Lecture, ScheduleTable
from timetabler.parse import major_label, strip_markup
from timetabler.search import SearchSession
from timetabler.store import ScheduleStore

console = Console()

SCHEDULE_COLORS = ("on #553333", "on #555533", "on #335555", "on #333355", "on #553355", "on #335533")

MAX_RESULTS = 20


def _prompt(msg: str) -> str:
    return console.input(msg)


def _println(msg: str = "") -> None:
    console.print(msg)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def lecture_colors(entries: ScheduleTable) -> dict[str, str]:
    """
    One background per lecture id, assigned in order of first appearance.
    """
    colors: dict[str, str] = {}
    for entry in entries:
        if entry.lecture.id not in colors:
            colors[entry.lecture.id] = SCHEDULE_COLORS[len(colors) % len(SCHEDULE_COLORS)]
    return colors


def render_table(title: str, entries: ScheduleTable, highlight: bool = False) -> Table:
    """
    Build a periods x days grid. Periods beyond the last slot are appended.
    """
    colors = lecture_colors(entries)
    cells: dict[tuple[str, int], list[tuple[int, str]]] = {}
    last_period = len(TIME_SLOTS)
    for index, entry in enumerate(entries):
        for p in entry.range:
            cells.setdefault((entry.day, p), []).append((index, entry.lecture.id))
            last_period = max(last_period, p)

    table = Table(
        title=title,
        box=box.HEAVY if highlight else box.SIMPLE,
        border_style="blue" if highlight else None,
    )
    table.add_column("Period", justify="right", style="dim")
    for day in DAY_LABELS:
        table.add_column(day, justify="center", min_width=8)

    for period in range(1, last_period + 1):
        label = TIME_SLOTS[period - 1] if period <= len(TIME_SLOTS) else "-"
        row = [f"{period} {label}"]
        for day in DAY_LABELS:
            items = cells.get((day, period), [])
            row.append(
                " ".join(f"[{colors[lid]}]#{i} {escape(lid)}[/]" for i, lid in items)
            )
        style = "bright_black" if period >= EVENING_FROM_PERIOD else None
        table.add_row(*row, style=style)

    return table


def render_store(store: ScheduleStore, active_table_id: Optional[str] = None) -> None:
    for n, (table_id, entries) in enumerate(store.collection.items(), start=1):
        console.print(
            render_table(f"Timetable {n} ({escape(table_id)})", entries, highlight=table_id == active_table_id)
        )
        for i, e in enumerate(entries):
            room = f" @ {escape(e.room)}" if e.room else ""
            _println(
                f"  #{i} [bold cyan]{escape(e.lecture.id)}[/] {escape(e.lecture.title)} | {e.day} "
                f"{e.range[0]}-{e.range[-1]}{room}"
            )


def lecture_row(lecture: Lecture) -> list[str]:
    return [
        lecture.id,
        str(lecture.grade),
        lecture.title,
        lecture.credits,
        major_label(lecture.major),
        strip_markup(lecture.schedule.replace("<p>", " / ")),
    ]


def results_table(lectures: list[Lecture], title: str) -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("#", justify="right")
    for col in ("Code", "Grade", "Title", "Credits", "Major", "Schedule"):
        table.add_column(col)
    for i, lec in enumerate(lectures, start=1):
        table.add_row(str(i), *(escape(cell) for cell in lecture_row(lec)))
    return table


# ---------------------------------------------------------------------------
# Menu
# ---------------------------------------------------------------------------


def run_interactive(store: ScheduleStore, catalog_cache: LectureCatalogCache) -> None:
    """
    Interactive menu loop over one store and one catalog cache.
    """
    engine = DragRelocationEngine(store, max_period=len(TIME_SLOTS))
    loop = asyncio.new_event_loop()
    try:
        while True:
            _println(f"\n=== Timetabler (interactive) ===")
            _println(f"Timetables: {len(store.collection)}")

            choice = _prompt(
                "\n[1] Search + add lecture\n"
                "[2] View timetables\n"
                "[3] Move an entry\n"
                "[4] Delete an entry\n"
                "[5] New timetable\n"
                "[6] Duplicate a timetable\n"
                "[7] Remove a timetable\n"
                "[0] Exit\n"
                "Select: "
            ).strip()

            if choice == "0":
                _println("Bye.")
                return

            if choice == "1":
                _flow_search_add(store, catalog_cache, loop)
            elif choice == "2":
                render_store(store)
            elif choice == "3":
                _flow_move(store, engine)
            elif choice == "4":
                _flow_delete(store)
            elif choice == "5":
                table_id = store.create_table()
                _println(f"Created: {escape(table_id)}")
            elif choice == "6":
                table_id = _pick_table(store)
                if table_id:
                    _println(f"Duplicated as: {escape(store.duplicate_table(table_id))}")
            elif choice == "7":
                _flow_remove_table(store)
            else:
                _println("Invalid choice.")
    finally:
        loop.close()


def _pick_table(store: ScheduleStore) -> Optional[str]:
    ids = store.table_ids()
    if not ids:
        _println("No timetables.")
        return None
    if len(ids) == 1:
        return ids[0]

    for i, table_id in enumerate(ids, start=1):
        _println(f"{i}) {escape(table_id)} ({len(store.collection[table_id])} entries)")
    pick = _prompt("Timetable number [blank = cancel]: ").strip()
    if not pick.isdigit() or not (1 <= int(pick) <= len(ids)):
        return None
    return ids[int(pick) - 1]


def _pick_entry(store: ScheduleStore, table_id: str) -> Optional[int]:
    entries = store.table(table_id)
    if not entries:
        _println("Timetable is empty.")
        return None
    console.print(render_table(escape(table_id), entries))
    pick = _prompt("Entry # [blank = cancel]: ").strip()
    if not pick.isdigit() or not (0 <= int(pick) < len(entries)):
        return None
    return int(pick)


def _ask_int(msg: str) -> Optional[int]:
    raw = _prompt(msg).strip()
    try:
        return int(raw)
    except ValueError:
        return None


def cell_from_point(raw: str) -> Optional[tuple[str, int]]:
    """
    Map an "x,y" pixel point on the grid to its (day, period) cell.
    """
    try:
        x, y = (float(v) for v in raw.split(","))
    except ValueError:
        return None
    return cell_at(x, y)


def _ask_preset() -> tuple[Optional[str], Optional[int]]:
    point = _prompt("Clicked point x,y in px [blank = pick day/period]: ").strip()
    if point:
        cell = cell_from_point(point)
        if cell is None:
            _println("No cell at that point, searching without a preset.")
            return None, None
        _println(f"Cell: {cell[0]} period {cell[1]}")
        return cell

    day = _prompt(f"Day {'/'.join(DAY_LABELS)} [blank = any]: ").strip() or None
    if day is not None and day not in DAY_LABELS:
        _println("Unknown day, ignoring.")
        day = None
    return day, _ask_int("Period [blank = any]: ")


def _flow_search_add(store: ScheduleStore, catalog_cache: LectureCatalogCache, loop: asyncio.AbstractEventLoop) -> None:
    table_id = _pick_table(store)
    if not table_id:
        return

    day, period = _ask_preset()


    session = SearchSession(store, catalog_cache, table_id, day=day, period=period)
    with console.status("Loading lectures..."):
        loop.run_until_complete(session.load())
    if session.error is not None:
        _println(f"[red]Could not load the lecture catalog:[/] {escape(str(session.error))}")
        session.close()
        return

    while not session.closed:
        query = _prompt("Search text or code [blank = all]: ").strip()
        session.set_query(query)
        session.sync_query(force=True)

        grade = _ask_int(f"Grade {'/'.join(str(g) for g in GRADE_CHOICES)} [blank = all]: ")
        session.update(grades=[grade] if grade else [])
        credits = _prompt(f"Credits {'/'.join(CREDIT_CHOICES)} [blank = all]: ").strip()
        session.update(credits=credits or None)

        results = session.results()
        _println(f"Results: {len(results)}")
        if not results:
            continue

        console.print(results_table(results[:MAX_RESULTS], f"Search results (max {MAX_RESULTS})"))

        pick = _prompt("Enter number to add [blank = new search, q = back]: ").strip().lower()
        if pick == "q":
            session.close()
            return
        if not pick:
            continue
        if not pick.isdigit() or not (1 <= int(pick) <= min(len(results), MAX_RESULTS)):
            _println("Out of range.")
            continue

        lecture = results[int(pick) - 1]
        n = session.add(lecture)
        if n:
            _println(f"Added: {escape(lecture.id)} ({n} blocks) to {escape(table_id)}")
        else:
            _println(f"{escape(lecture.id)} has no parsable schedule, nothing added.")


def _flow_move(store: ScheduleStore, engine: DragRelocationEngine) -> None:
    table_id = _pick_table(store)
    if not table_id:
        return
    index = _pick_entry(store, table_id)
    if index is None:
        return

    engine.start(table_id, index)
    render_store(store, active_table_id=engine.active_table_id)

    dx = _ask_int(f"Horizontal displacement in px ({engine.cell_width} = one day): ")
    dy = _ask_int(f"Vertical displacement in px ({engine.cell_height} = one period): ")
    if dx is None or dy is None:
        engine.cancel()
        _println("Not a number.")
        return

    if engine.end(dx, dy):
        e = store.table(table_id)[index]
        _println(f"Moved to {e.day} {e.range[0]}-{e.range[-1]}")
    else:
        _println("Move rejected (outside the grid or no change).")


def _flow_delete(store: ScheduleStore) -> None:
    table_id = _pick_table(store)
    if not table_id:
        return
    index = _pick_entry(store, table_id)
    if index is None:
        return
    store.delete_entry(table_id, index)
    _println(f"Deleted entry #{index}")


def _flow_remove_table(store: ScheduleStore) -> None:
    if not store.can_remove_table:
        _println("The last timetable cannot be removed.")
        return
    table_id = _pick_table(store)
    if table_id and store.remove_table(table_id):
        _println(f"Removed: {escape(table_id)}")
