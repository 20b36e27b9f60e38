# tests/test_bootstrap.py

from __future__ import annotations

import logging

import pytest

from todo_calendar.backend.realtime import DisabledChangeFeed
from todo_calendar.cli.bootstrap import build_state, create_initial_state, shutdown_state
from todo_calendar.config import Settings
from todo_calendar.core.ports import AuthUser
from todo_calendar.logging_setup import _ConsoleNoiseFilter

from .conftest import USER
from .fakes import FakeChangeFeed, FakeTaskBackend


@pytest.mark.asyncio
async def test_sign_in_event_initializes_controller(state, backend: FakeTaskBackend, feed: FakeChangeFeed) -> None:
    backend.add_row(user_id=USER.id, text="mine")

    await state.gateway.sign_in("kim@example.com", "secret123")

    assert state.controller.state.user == USER
    assert [t.text for t in state.controller.tasks] == ["mine"]
    assert [s.user_id for s in feed.active] == [USER.id]


@pytest.mark.asyncio
async def test_sign_out_event_tears_down(state, feed: FakeChangeFeed) -> None:
    await state.gateway.sign_in("kim@example.com", "secret123")
    state.listing = ["x"]

    await state.gateway.sign_out()

    assert feed.active == []
    assert state.controller.state.user is None
    assert state.listing == []


@pytest.mark.asyncio
async def test_backend_sees_current_access_token(state, auth_client) -> None:
    tokens: list[str | None] = []

    def _backend_factory(token_provider):
        backend = FakeTaskBackend()
        original = backend.select_tasks

        async def _select(*, user_id: str):
            tokens.append(await token_provider())
            return await original(user_id=user_id)

        backend.select_tasks = _select
        return backend

    wired = build_state(
        state.settings,
        auth_client=auth_client,
        task_backend_factory=_backend_factory,
        change_feed_factory=lambda _tokens: FakeChangeFeed(),
    )
    await wired.gateway.sign_in("kim@example.com", "secret123")

    assert tokens == [wired.gateway.access_token]


@pytest.mark.asyncio
async def test_user_update_keeps_controller_in_sync(state, auth_client) -> None:
    await state.gateway.sign_in("kim@example.com", "secret123")
    renamed = AuthUser(id=USER.id, email="kim@new.example.com")
    auth_client.tokens[state.gateway.access_token] = renamed

    await state.gateway.fetch_user()

    assert state.controller.state.user == renamed


@pytest.mark.asyncio
async def test_shutdown_unsubscribes_auth_listener(state, feed: FakeChangeFeed) -> None:
    await state.gateway.sign_in("kim@example.com", "secret123")

    await shutdown_state(state)

    assert state.auth_subscription is None
    assert feed.active == []


def test_create_initial_state_requires_backend_settings(settings) -> None:
    settings.supabase_url = ""
    with pytest.raises(RuntimeError, match="URL"):
        create_initial_state(settings=settings)

    settings.supabase_url = "https://example.supabase.co"
    settings.supabase_anon_key = ""
    with pytest.raises(RuntimeError, match="anon key"):
        create_initial_state(settings=settings)


@pytest.mark.asyncio
async def test_create_initial_state_wires_http_clients(settings) -> None:
    settings.data_dir = settings.data_dir / "nested"
    settings.preferences_path = settings.data_dir / "prefs.json"

    state = create_initial_state(settings=settings)
    try:
        assert settings.data_dir.is_dir()
        assert state.http_client is not None
        assert state.router.current_path == "/"
        assert isinstance(state.controller._store._feed, DisabledChangeFeed)
    finally:
        await shutdown_state(state)


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in ("TODOCAL_SUPABASE_URL", "SUPABASE_URL", "TODOCAL_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://front.supabase.co/")
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_ANON_KEY", " key ")
    monkeypatch.setenv("TODOCAL_REALTIME_ENABLED", "no")
    monkeypatch.setenv("TODOCAL_HTTP_TIMEOUT_SECONDS", "not-a-number")
    monkeypatch.setenv("TODOCAL_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("TODOCAL_PREFERENCES_PATH", raising=False)

    s = Settings.from_env()

    assert s.supabase_url == "https://front.supabase.co"
    assert s.supabase_anon_key == "key"
    assert s.realtime_enabled is False
    assert s.http_timeout_seconds == 20.0
    assert s.preferences_path == tmp_path / "preferences.json"


def test_console_filter_quiets_background_and_transports() -> None:
    f = _ConsoleNoiseFilter()

    def rec(name: str, level: int) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, "msg", None, None)

    assert f.filter(rec("todo_calendar.tasks.view_state", logging.INFO))
    assert not f.filter(rec("todo_calendar.backend.realtime", logging.INFO))
    assert f.filter(rec("todo_calendar.backend.realtime", logging.WARNING))
    assert not f.filter(rec("httpx", logging.INFO))
    assert f.filter(rec("websockets.client", logging.WARNING))
    assert not f.filter(rec("asyncio", logging.WARNING))
