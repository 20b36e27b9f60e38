# src/todo_calendar/tasks/calendar_grid.py

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import date, timedelta

from .task_models import CalendarCell, Task, format_date

GRID_CELLS = 42  # 6 weeks x 7 days


def month_start_offset(year: int, month: int) -> int:
    """Days of the previous month shown before the 1st (weeks start on Sunday)."""
    # date.weekday(): Monday=0 .. Sunday=6
    return (date(year, month, 1).weekday() + 1) % 7


def build_calendar_grid(
    year: int,
    month: int,
    tasks: Iterable[Task],
    *,
    today: date | None = None,
) -> list[CalendarCell]:
    """
    Month view as exactly 42 cells:
    trailing days of the previous month, the whole month, then the next month.
    """
    if today is None:
        today = date.today()

    counts = Counter(t.date_key for t in tasks)
    start = date(year, month, 1) - timedelta(days=month_start_offset(year, month))

    cells: list[CalendarCell] = []
    for i in range(GRID_CELLS):
        day = start + timedelta(days=i)
        cells.append(
            CalendarCell(
                date=day,
                is_current_month=(day.year == year and day.month == month),
                is_today=(day == today),
                task_count=counts.get(format_date(day), 0),
            )
        )
    return cells


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + delta
    return idx // 12, idx % 12 + 1
