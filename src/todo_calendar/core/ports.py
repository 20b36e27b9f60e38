# src/todo_calendar/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
The hosted backend (auth, rows, realtime) is swappable this way, and tests
run against in-memory fakes.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

TaskRow = dict[str, Any]
# Raw `tasks` row as exchanged with the REST API.

ChangeCallback = Callable[[], Awaitable[None] | None]
Disposer = Callable[[], Awaitable[None]]
Notifier = Callable[[str], None]
TokenProvider = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True, slots=True)
class AuthUser:
    id: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class AuthSession:
    access_token: str
    refresh_token: str | None
    expires_at: float | None
    user: AuthUser


class AuthEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class AuthClient(Protocol):
    """Email/password auth service (GoTrue-compatible)."""

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthSession: ...
    async def sign_up(self, *, email: str, password: str) -> AuthUser | None: ...
    async def sign_out(self, access_token: str) -> None: ...
    async def get_user(self, access_token: str) -> AuthUser | None: ...
    async def refresh_session(self, refresh_token: str) -> AuthSession: ...
    async def exchange_code_for_session(self, code: str) -> AuthSession: ...


class TaskBackend(Protocol):
    """Row-scoped CRUD on the `tasks` resource."""

    async def select_tasks(self, *, user_id: str) -> list[TaskRow]: ...
    async def insert_task(self, row: TaskRow) -> TaskRow: ...
    async def update_task(self, task_id: str, changes: TaskRow) -> None: ...
    async def delete_task(self, task_id: str) -> None: ...


class ChangeFeed(Protocol):
    """
    Standing "something changed" subscription.

    Delivers opaque invalidate events: callers must refetch or reconcile.
    """

    async def subscribe(self, *, user_id: str, on_change: ChangeCallback) -> Disposer: ...


class Navigator(Protocol):
    async def push(self, path: str) -> str: ...
