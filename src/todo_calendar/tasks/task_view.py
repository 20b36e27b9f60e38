# src/todo_calendar/tasks/task_view.py

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from .task_models import Task, TaskFilter, format_date


def matches_filter(task: Task, task_filter: TaskFilter) -> bool:
    if task_filter == TaskFilter.ALL:
        return True
    if task_filter == TaskFilter.ACTIVE:
        return not task.completed
    if task_filter == TaskFilter.COMPLETED:
        return task.completed
    return task.priority.value == str(task_filter)


def filtered_tasks(tasks: Iterable[Task], task_filter: TaskFilter = TaskFilter.ALL) -> list[Task]:
    """
    List view order: incomplete before completed, then high < medium < low.
    Ties keep collection order (sorted() is stable).
    """
    selected = [t for t in tasks if matches_filter(t, task_filter)]
    return sorted(selected, key=lambda t: (t.completed, t.priority.rank))


def tasks_for_date(tasks: Iterable[Task], day: date | None) -> list[Task]:
    if day is None:
        return []
    key = format_date(day)
    return [t for t in tasks if t.date_key == key]


def task_count_for_date(tasks: Iterable[Task], day: date) -> int:
    return len(tasks_for_date(tasks, day))
