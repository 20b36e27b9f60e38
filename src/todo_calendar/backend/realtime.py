# src/todo_calendar/backend/realtime.py

"""
Realtime change feed (Phoenix channels over websockets).

The channel only tells us "a row of `tasks` for this user changed".
Payloads are ignored; the controller refetches the list.

Shutdown model:
- subscribe() starts one background asyncio task per subscription,
- the returned disposer leaves the channel, closes the socket and cancels the task,
- connection failures are logged; the feed does not reconnect on its own.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import itertools
import json
import logging
from typing import Any
from urllib.parse import urlencode, urlparse, urlunparse

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from ..core.ports import ChangeCallback, Disposer, TokenProvider

logger = logging.getLogger(__name__)

CHANNEL_NAME = "tasks-changes"
PHOENIX_TOPIC = "phoenix"


def build_realtime_url(base_url: str, anon_key: str) -> str:
    parsed = urlparse(base_url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    path = parsed.path.rstrip("/") + "/realtime/v1/websocket"
    query = urlencode({"apikey": anon_key, "vsn": "1.0.0"})
    return urlunparse((scheme, parsed.netloc, path, "", query, ""))


def channel_topic(name: str = CHANNEL_NAME) -> str:
    return f"realtime:{name}"


def join_message(*, topic: str, user_id: str, access_token: str | None, ref: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [
                {
                    "event": "*",
                    "schema": "public",
                    "table": "tasks",
                    "filter": f"user_id=eq.{user_id}",
                }
            ],
        },
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": topic, "event": "phx_join", "payload": payload, "ref": ref}


def leave_message(*, topic: str, ref: str) -> dict[str, Any]:
    return {"topic": topic, "event": "phx_leave", "payload": {}, "ref": ref}


def heartbeat_message(*, ref: str) -> dict[str, Any]:
    return {"topic": PHOENIX_TOPIC, "event": "heartbeat", "payload": {}, "ref": ref}


def is_change_message(message: Any, *, topic: str) -> bool:
    """True for postgres_changes deliveries on our channel."""
    if not isinstance(message, dict) or message.get("topic") != topic:
        return False
    return message.get("event") in {"postgres_changes", "INSERT", "UPDATE", "DELETE"}


def join_error(message: Any, *, topic: str, join_ref: str) -> str | None:
    """Error text if this is a failed reply to our join, else None."""
    if not isinstance(message, dict):
        return None
    if message.get("topic") != topic or message.get("event") != "phx_reply":
        return None
    if message.get("ref") != join_ref:
        return None
    payload = message.get("payload") or {}
    if payload.get("status") == "ok":
        return None
    response = payload.get("response") or {}
    return str(response.get("reason") or response or "join rejected")


class RealtimeSubscription:
    def __init__(
        self,
        *,
        url: str,
        topic: str,
        user_id: str,
        access_token: str | None,
        on_change: ChangeCallback,
        heartbeat_seconds: float,
    ) -> None:
        self._url = url
        self._topic = topic
        self._user_id = user_id
        self._access_token = access_token
        self._on_change = on_change
        self._heartbeat_s = max(1.0, float(heartbeat_seconds))
        self._refs = itertools.count(1)
        self._ws = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def _next_ref(self) -> str:
        return str(next(self._refs))

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"realtime:{self._user_id}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.send(json.dumps(leave_message(topic=self._topic, ref=self._next_ref())))
            with contextlib.suppress(Exception):
                await ws.close(code=1000, reason="Client closing")

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Realtime subscription closed user=%s", self._user_id)

    async def _run(self) -> None:
        try:
            async with connect(self._url) as ws:
                self._ws = ws
                join_ref = self._next_ref()
                await ws.send(
                    json.dumps(
                        join_message(
                            topic=self._topic,
                            user_id=self._user_id,
                            access_token=self._access_token,
                            ref=join_ref,
                        )
                    )
                )
                logger.info("Realtime channel %s joining (user=%s)", self._topic, self._user_id)

                heartbeat = asyncio.create_task(self._heartbeat_loop(ws))
                try:
                    async for raw in ws:
                        await self._handle_raw(raw, join_ref=join_ref)
                finally:
                    heartbeat.cancel()
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            if not self._closed and e.rcvd is not None and e.rcvd.code not in (1000, 1001):
                logger.warning("Realtime connection closed: %s", e)
        except Exception:
            if not self._closed:
                logger.exception("Realtime connection failed for user=%s", self._user_id)
        finally:
            self._ws = None

    async def _heartbeat_loop(self, ws) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_s)
            await ws.send(json.dumps(heartbeat_message(ref=self._next_ref())))

    async def _handle_raw(self, raw: str | bytes, *, join_ref: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON realtime frame")
            return

        err = join_error(message, topic=self._topic, join_ref=join_ref)
        if err is not None:
            logger.warning("Realtime join rejected: %s", err)
            return

        if not is_change_message(message, topic=self._topic):
            return

        logger.debug("Realtime change on %s", self._topic)
        try:
            result = self._on_change()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Realtime change handler failed")


class RealtimeChangeFeed:
    def __init__(
        self,
        *,
        base_url: str,
        anon_key: str,
        token_provider: TokenProvider,
        heartbeat_seconds: float = 25.0,
        channel_name: str = CHANNEL_NAME,
    ) -> None:
        self._url = build_realtime_url(base_url, anon_key)
        self._token_provider = token_provider
        self._heartbeat_seconds = heartbeat_seconds
        self._topic = channel_topic(channel_name)

    async def subscribe(self, *, user_id: str, on_change: ChangeCallback) -> Disposer:
        sub = RealtimeSubscription(
            url=self._url,
            topic=self._topic,
            user_id=user_id,
            access_token=await self._token_provider(),
            on_change=on_change,
            heartbeat_seconds=self._heartbeat_seconds,
        )
        sub.start()
        return sub.close


class DisabledChangeFeed:
    """Used when realtime is switched off in settings: never notifies."""

    async def subscribe(self, *, user_id: str, on_change: ChangeCallback) -> Disposer:
        logger.info("Realtime disabled; changes from other sessions show up on /reload only.")

        async def _dispose() -> None:
            return None

        return _dispose
