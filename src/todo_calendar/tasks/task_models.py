# src/todo_calendar/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort rank: high first, then medium, then low."""
        return _PRIORITY_RANK[self]

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        # Column default on the backend is 'medium'.
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class TaskFilter(StrEnum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def format_date(d: date) -> str:
    """Normalize a calendar date to the YYYY-MM-DD form stored in task_date."""
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_date(raw: str) -> date:
    return date.fromisoformat(raw.strip()[:10])


def _parse_ts(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if not raw:
        return datetime.now(UTC)
    return datetime.fromisoformat(str(raw))


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    created_at: datetime
    updated_at: datetime
    user_id: str | None

    text: str
    priority: Priority
    completed: bool
    task_date: date

    @property
    def date_key(self) -> str:
        return format_date(self.task_date)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Task:
        """Decode one `tasks` row as returned by the REST API."""
        if not isinstance(row, dict):
            raise ValueError("Task row must be an object")
        for key in ("id", "text", "task_date"):
            if row.get(key) is None:
                raise ValueError(f"Invalid or missing {key}")
        return cls(
            id=str(row["id"]),
            created_at=_parse_ts(row.get("created_at")),
            updated_at=_parse_ts(row.get("updated_at")),
            user_id=row.get("user_id"),
            text=str(row["text"]),
            priority=Priority.from_db(row.get("priority")),
            completed=bool(row.get("completed", False)),
            task_date=parse_date(str(row["task_date"])),
        )


@dataclass(frozen=True, slots=True)
class NewTask:
    text: str
    priority: Priority = Priority.MEDIUM
    task_date: date | None = None

    def to_insert(self, *, user_id: str, today: date | None = None) -> dict[str, Any]:
        return {
            "text": self.text.strip(),
            "priority": self.priority.value,
            "completed": False,
            "task_date": format_date(self.task_date or today or date.today()),
            "user_id": user_id,
        }


@dataclass(frozen=True, slots=True)
class TaskPatch:
    """Partial update; only fields that are not None are sent."""

    text: str | None = None
    completed: bool | None = None
    priority: Priority | None = None
    task_date: date | None = None

    def is_empty(self) -> bool:
        return all(v is None for v in (self.text, self.completed, self.priority, self.task_date))

    def fields(self) -> tuple[str, ...]:
        """Names of the Task fields this patch touches."""
        return tuple(
            name
            for name, value in (
                ("text", self.text),
                ("completed", self.completed),
                ("priority", self.priority),
                ("task_date", self.task_date),
            )
            if value is not None
        )

    def revert(self, current: Task, snapshot: Task) -> Task:
        """Undo only this patch's fields on `current`, taking values from `snapshot`."""
        return replace(current, **{name: getattr(snapshot, name) for name in self.fields()})

    def to_update(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.text is not None:
            out["text"] = self.text.strip()
        if self.completed is not None:
            out["completed"] = bool(self.completed)
        if self.priority is not None:
            out["priority"] = self.priority.value
        if self.task_date is not None:
            out["task_date"] = format_date(self.task_date)
        return out

    def apply(self, task: Task) -> Task:
        """Local (optimistic) version of the same update."""
        return replace(
            task,
            text=task.text if self.text is None else self.text.strip(),
            completed=task.completed if self.completed is None else bool(self.completed),
            priority=task.priority if self.priority is None else self.priority,
            task_date=task.task_date if self.task_date is None else self.task_date,
        )


@dataclass(frozen=True, slots=True)
class CalendarCell:
    date: date
    is_current_month: bool
    is_today: bool
    task_count: int
