# src/todo_calendar/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the backend clients, gateway, router and controller into AppState,
- connects auth-state events to the view-state lifecycle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

import httpx

from ..auth.routes import Router
from ..auth.session import SessionGateway
from ..backend.realtime import DisabledChangeFeed, RealtimeChangeFeed
from ..backend.supabase_http import SupabaseAuthClient, SupabaseTaskBackend
from ..config import get_settings
from ..core.ports import AuthClient, AuthEvent, AuthSession, ChangeFeed, Notifier, TaskBackend
from ..core.preferences import ThemeStore
from ..core.state import AppState
from ..tasks.task_store import TaskStoreAdapter
from ..tasks.view_state import ViewStateController

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.preferences_path.parent.mkdir(parents=True, exist_ok=True)


def _require_backend_settings(settings) -> None:
    if not getattr(settings, "supabase_url", ""):
        raise RuntimeError("Backend URL is not set. Set TODOCAL_SUPABASE_URL in your .env.")
    if not getattr(settings, "supabase_anon_key", ""):
        raise RuntimeError("Backend anon key is not set. Set TODOCAL_SUPABASE_ANON_KEY in your .env.")


def build_state(
    settings,
    *,
    auth_client: AuthClient,
    task_backend_factory,
    change_feed_factory,
    notify: Notifier | None = None,
    http_client: httpx.AsyncClient | None = None,
    today: Callable[[], date] = date.today,
) -> AppState:
    """
    Wire concrete (or fake) ports into AppState.

    The two factories receive the gateway's async token provider, because row
    access and the realtime channel both act on behalf of the signed-in user.
    It refreshes a token that is about to expire before handing it out.
    """
    gateway = SessionGateway(auth_client)
    router = Router(gateway)
    gateway.navigator = router

    backend: TaskBackend = task_backend_factory(gateway.valid_access_token)
    feed: ChangeFeed = change_feed_factory(gateway.valid_access_token)

    controller = ViewStateController(
        TaskStoreAdapter(backend, feed),
        theme=ThemeStore(settings.preferences_path),
        notify=notify,
        today=today,
    )

    state = AppState(
        settings=settings,
        gateway=gateway,
        router=router,
        controller=controller,
        http_client=http_client,
    )
    wire_auth_events(state)
    return state


def wire_auth_events(state: AppState) -> None:
    """
    Auth events drive the view-state lifecycle:
    - SIGNED_IN       -> initialize (load tasks, subscribe to changes)
    - SIGNED_OUT      -> teardown (dispose subscription, clear tasks)
    - other w/session -> refresh the local user identity
    """
    controller = state.controller

    async def _on_auth_event(event: AuthEvent, session: AuthSession | None) -> None:
        if event == AuthEvent.SIGNED_OUT:
            await controller.teardown()
            state.listing = []
            return
        if session is None:
            return
        if event == AuthEvent.SIGNED_IN or controller.user_id != session.user.id:
            await controller.initialize(session.user)
        else:
            controller.state.user = session.user

    state.auth_subscription = state.gateway.on_auth_state_change(_on_auth_event)


def create_initial_state(*, settings=None, notify: Notifier | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _require_backend_settings(settings)
    _ensure_local_dirs(settings)

    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds))
    base_url = settings.supabase_url
    anon_key = settings.supabase_anon_key

    def _backend(token_provider) -> TaskBackend:
        return SupabaseTaskBackend(http, base_url=base_url, anon_key=anon_key, token_provider=token_provider)

    def _feed(token_provider) -> ChangeFeed:
        if not settings.realtime_enabled:
            return DisabledChangeFeed()
        return RealtimeChangeFeed(
            base_url=base_url,
            anon_key=anon_key,
            token_provider=token_provider,
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
        )

    state = build_state(
        settings,
        auth_client=SupabaseAuthClient(http, base_url=base_url, anon_key=anon_key),
        task_backend_factory=_backend,
        change_feed_factory=_feed,
        notify=notify,
        http_client=http,
    )
    logger.info("App state ready backend=%s realtime=%s", base_url, settings.realtime_enabled)
    return state


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.controller.teardown()
    except Exception:
        logger.exception("Controller teardown failed.")

    if state.auth_subscription is not None:
        state.auth_subscription.unsubscribe()
        state.auth_subscription = None

    http = state.http_client
    if http is not None:
        try:
            await http.aclose()
        except Exception:
            logger.debug("HTTP client close failed.", exc_info=True)
