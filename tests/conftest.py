# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from todo_calendar.cli.bootstrap import build_state
from todo_calendar.core.ports import AuthUser
from todo_calendar.core.preferences import ThemeStore
from todo_calendar.core.state import AppState
from todo_calendar.tasks.task_store import TaskStoreAdapter
from todo_calendar.tasks.view_state import ViewStateController

from .fakes import FakeAuthClient, FakeChangeFeed, FakeTaskBackend, Notices

TODAY = date(2024, 3, 20)
USER = AuthUser(id="user-1", email="kim@example.com")


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.
    """
    return SimpleNamespace(
        app_name="todo-calendar-test",
        log_level="DEBUG",
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        http_timeout_seconds=5.0,
        realtime_enabled=False,
        realtime_heartbeat_seconds=25.0,
        data_dir=tmp_path,
        preferences_path=tmp_path / "preferences.json",
    )


@pytest.fixture()
def backend() -> FakeTaskBackend:
    return FakeTaskBackend()


@pytest.fixture()
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture()
def notices() -> Notices:
    return Notices()


@pytest.fixture()
def store(backend: FakeTaskBackend, feed: FakeChangeFeed) -> TaskStoreAdapter:
    return TaskStoreAdapter(backend, feed, today=lambda: TODAY)


@pytest.fixture()
def controller(store: TaskStoreAdapter, settings: SimpleNamespace, notices: Notices) -> ViewStateController:
    return ViewStateController(
        store,
        theme=ThemeStore(settings.preferences_path),
        notify=notices,
        today=lambda: TODAY,
    )


@pytest.fixture()
def auth_client() -> FakeAuthClient:
    client = FakeAuthClient()
    client.add_user(USER.email or "", "secret123", user_id=USER.id)
    return client


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    auth_client: FakeAuthClient,
    backend: FakeTaskBackend,
    feed: FakeChangeFeed,
    notices: Notices,
) -> AppState:
    """AppState wired with deterministic fakes instead of HTTP/websocket clients."""
    return build_state(
        settings,
        auth_client=auth_client,
        task_backend_factory=lambda _tokens: backend,
        change_feed_factory=lambda _tokens: feed,
        notify=notices,
        today=lambda: TODAY,
    )
