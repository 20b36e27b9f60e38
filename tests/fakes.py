# tests/fakes.py

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from todo_calendar.core.errors import AuthError, BackendError
from todo_calendar.core.ports import AuthSession, AuthUser, ChangeCallback, Disposer, TaskRow

_BASE_TS = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


class FakeTaskBackend:
    """
    In-memory `tasks` table.

    - fail_ops: operation names that raise BackendError on the next call(s)
    - gate: when set, every write waits for it (lets tests interleave calls)
    """

    def __init__(self, rows: list[TaskRow] | None = None) -> None:
        self.rows: list[TaskRow] = [dict(r) for r in (rows or [])]
        self.calls: list[tuple[str, Any]] = []
        self.fail_ops: set[str] = set()
        self.gate: asyncio.Event | None = None
        self._tick = len(self.rows)

    def _stamp(self) -> str:
        self._tick += 1
        return (_BASE_TS + timedelta(minutes=self._tick)).isoformat()

    async def _maybe_fail(self, op: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if op in self.fail_ops:
            raise BackendError(f"{op} failed", status_code=500)

    async def select_tasks(self, *, user_id: str) -> list[TaskRow]:
        self.calls.append(("select", user_id))
        if "select" in self.fail_ops:
            raise BackendError("select failed", status_code=500)
        rows = [dict(r) for r in self.rows if r.get("user_id") == user_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return rows

    async def insert_task(self, row: TaskRow) -> TaskRow:
        self.calls.append(("insert", dict(row)))
        await self._maybe_fail("insert")
        ts = self._stamp()
        stored = {"id": str(uuid.uuid4()), "created_at": ts, "updated_at": ts, **row}
        self.rows.append(stored)
        return dict(stored)

    async def update_task(self, task_id: str, changes: TaskRow) -> None:
        self.calls.append(("update", (task_id, dict(changes))))
        await self._maybe_fail("update")
        for r in self.rows:
            if r["id"] == task_id:
                r.update(changes)
                r["updated_at"] = self._stamp()

    async def delete_task(self, task_id: str) -> None:
        self.calls.append(("delete", task_id))
        await self._maybe_fail("delete")
        self.rows = [r for r in self.rows if r["id"] != task_id]

    def add_row(self, *, user_id: str, text: str, priority: str = "medium", completed: bool = False,
                task_date: str = "2024-03-15") -> TaskRow:
        ts = self._stamp()
        row = {
            "id": str(uuid.uuid4()),
            "created_at": ts,
            "updated_at": ts,
            "user_id": user_id,
            "text": text,
            "priority": priority,
            "completed": completed,
            "task_date": task_date,
        }
        self.rows.append(row)
        return row


@dataclass(slots=True)
class _Subscription:
    user_id: str
    on_change: ChangeCallback
    disposed: bool = False


@dataclass
class FakeChangeFeed:
    subscriptions: list[_Subscription] = field(default_factory=list)
    fail: bool = False

    async def subscribe(self, *, user_id: str, on_change: ChangeCallback) -> Disposer:
        if self.fail:
            raise BackendError("realtime unavailable")
        sub = _Subscription(user_id=user_id, on_change=on_change)
        self.subscriptions.append(sub)

        async def _dispose() -> None:
            sub.disposed = True

        return _dispose

    @property
    def active(self) -> list[_Subscription]:
        return [s for s in self.subscriptions if not s.disposed]

    async def fire(self) -> None:
        for sub in self.active:
            result = sub.on_change()
            if asyncio.iscoroutine(result):
                await result


class FakeAuthClient:
    """GoTrue stand-in: confirmed users sign in, tokens map to users."""

    def __init__(self) -> None:
        self.users: dict[str, tuple[str, AuthUser]] = {}
        self.tokens: dict[str, AuthUser] = {}
        self.codes: dict[str, AuthUser] = {}
        self.signed_out: list[str] = []
        self.fail_sign_out = False
        self.calls: list[str] = []
        # Absolute expiry stamped on every new session (None = never expires).
        self.expires_at: float | None = None

    def add_user(self, email: str, password: str, user_id: str | None = None) -> AuthUser:
        user = AuthUser(id=user_id or f"user-{len(self.users) + 1}", email=email)
        self.users[email] = (password, user)
        return user

    def _session_for(self, user: AuthUser) -> AuthSession:
        token = f"token-{uuid.uuid4().hex[:8]}"
        self.tokens[token] = user
        return AuthSession(access_token=token, refresh_token=f"r-{token}", expires_at=self.expires_at, user=user)

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthSession:
        self.calls.append("sign_in")
        entry = self.users.get(email)
        if entry is None or entry[0] != password:
            raise AuthError("Invalid login credentials", status_code=400)
        return self._session_for(entry[1])

    async def sign_up(self, *, email: str, password: str) -> AuthUser | None:
        self.calls.append("sign_up")
        if email in self.users:
            raise AuthError("User already registered", status_code=422)
        user = AuthUser(id=f"pending-{len(self.codes) + 1}", email=email)
        self.codes[f"code-{email}"] = user
        return user

    async def sign_out(self, access_token: str) -> None:
        self.calls.append("sign_out")
        if self.fail_sign_out:
            raise AuthError("network down")
        self.signed_out.append(access_token)
        self.tokens.pop(access_token, None)

    async def get_user(self, access_token: str) -> AuthUser | None:
        self.calls.append("get_user")
        user = self.tokens.get(access_token)
        if user is None:
            raise AuthError("invalid JWT", status_code=401)
        return user

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        self.calls.append("refresh")
        old = refresh_token.removeprefix("r-")
        user = self.tokens.pop(old, None)
        if user is None:
            raise AuthError("Invalid Refresh Token", status_code=400)
        return self._session_for(user)

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        self.calls.append("exchange")
        user = self.codes.pop(code, None)
        if user is None:
            raise AuthError("invalid flow state", status_code=404)
        return self._session_for(user)


@dataclass
class FakeNavigator:
    pushed: list[str] = field(default_factory=list)

    async def push(self, path: str) -> str:
        self.pushed.append(path)
        return path


@dataclass
class Notices:
    messages: list[str] = field(default_factory=list)

    def __call__(self, text: str) -> None:
        self.messages.append(text)
