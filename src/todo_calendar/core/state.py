# src/todo_calendar/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from ..tasks.task_models import Task, TaskFilter
from .ports import AuthUser

if TYPE_CHECKING:
    from ..auth.routes import Router
    from ..auth.session import AuthSubscription, SessionGateway
    from ..tasks.view_state import ViewStateController


@dataclass
class ViewState:
    """
    Process-local view state, rebuilt on each session.

    `tasks` mirrors the backend subset for the current user (newest first).
    It is eventually consistent with the backend, never authoritative.
    """

    visible_year: int
    visible_month: int

    selected_date: date | None = None
    active_filter: TaskFilter = TaskFilter.ALL
    tasks: dict[str, Task] = field(default_factory=dict)

    modal_open: bool = False
    dark_mode: bool = False
    loading: bool = False

    user: AuthUser | None = None
    last_error: str | None = None

    @classmethod
    def for_today(cls, today: date | None = None) -> ViewState:
        today = today or date.today()
        return cls(visible_year=today.year, visible_month=today.month)


@dataclass
class AppState:
    # Settings kept on the state for easy access in other modules.
    settings: Any

    gateway: SessionGateway
    router: Router
    controller: ViewStateController

    auth_subscription: AuthSubscription | None = None
    http_client: Any = None

    # Task ids in the order of the last printed list, so commands can say "/done 2".
    listing: list[str] = field(default_factory=list)
