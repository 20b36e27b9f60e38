# src/todo_calendar/auth/session.py

"""
Session gateway.

Wraps the external auth client:
- validates credentials locally before any remote call,
- keeps the current session in memory (credential storage is the backend's job),
- fans out auth-state events to in-process listeners,
- asks the navigator to move the user between protected and auth views.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable

from ..core.errors import AuthError, BackendError
from ..core.ports import AuthClient, AuthEvent, AuthSession, AuthUser, Navigator
from .validation import validate_credentials

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, AuthSession | None], Awaitable[None] | None]

REFRESH_MARGIN_SECONDS = 60.0

SIGNUP_CONFIRM_MESSAGE = "Sign-up complete. Check your email to confirm your account."


class AuthSubscription:
    def __init__(self, gateway: SessionGateway, listener: AuthListener) -> None:
        self._gateway = gateway
        self._listener = listener

    def unsubscribe(self) -> None:
        self._gateway._remove_listener(self._listener)


class SessionGateway:
    def __init__(
        self,
        client: AuthClient,
        *,
        navigator: Navigator | None = None,
        clock: Callable[[], float] = time.time,
        refresh_margin_seconds: float = REFRESH_MARGIN_SECONDS,
    ) -> None:
        self._client = client
        self.navigator = navigator
        self._clock = clock
        self._refresh_margin = refresh_margin_seconds
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []
        self._refresh_lock = asyncio.Lock()

    # ---- state ----

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def user(self) -> AuthUser | None:
        return self._session.user if self._session else None

    @property
    def access_token(self) -> str | None:
        return self._session.access_token if self._session else None

    def _expiring(self, session: AuthSession) -> bool:
        if session.expires_at is None or not session.refresh_token:
            return False
        return session.expires_at - self._clock() <= self._refresh_margin

    async def valid_access_token(self) -> str | None:
        """
        Token provider for row access, the route guard and the realtime join.

        A token that expires within the margin is exchanged for a fresh one
        first. A failed refresh raises AuthError.
        """
        session = self._session
        if session is None or not self._expiring(session):
            return self.access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited.
            session = self._session
            if session is not None and self._expiring(session):
                logger.info("Access token expires soon; refreshing user=%s", session.user.id)
                await self.refresh()
        return self.access_token

    # ---- events ----

    def on_auth_state_change(self, listener: AuthListener) -> AuthSubscription:
        self._listeners.append(listener)
        return AuthSubscription(self, listener)

    def _remove_listener(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _emit(self, event: AuthEvent) -> None:
        logger.debug("Auth event %s (listeners=%d)", event.value, len(self._listeners))
        for listener in list(self._listeners):
            try:
                result = listener(event, self._session)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Auth listener failed for event %s", event.value)

    async def _navigate(self, path: str) -> None:
        if self.navigator is not None:
            await self.navigator.push(path)

    # ---- operations ----

    async def sign_in(self, email: str, password: str) -> AuthUser:
        email, password = validate_credentials(email, password)

        self._session = await self._client.sign_in_with_password(email=email, password=password)
        logger.info("Signed in user=%s", self._session.user.id)

        await self._emit(AuthEvent.SIGNED_IN)
        await self._navigate("/todo")
        return self._session.user

    async def sign_up(self, email: str, password: str, confirm_password: str) -> str:
        email, password = validate_credentials(email, password, confirm_password, confirm=True)

        await self._client.sign_up(email=email, password=password)
        logger.info("Sign-up requested for %s; waiting for email confirmation.", email)

        # No session until the user follows the confirmation link.
        await self._navigate("/login")
        return SIGNUP_CONFIRM_MESSAGE

    async def sign_out(self) -> None:
        token = self.access_token
        if token:
            try:
                await self._client.sign_out(token)
            except BackendError as e:
                logger.warning("Remote sign-out failed (%s); clearing local session anyway.", e.message)

        self._session = None
        logger.info("Signed out.")
        await self._emit(AuthEvent.SIGNED_OUT)
        await self._navigate("/")

    async def fetch_user(self) -> AuthUser | None:
        """Ask the backend who the stored token belongs to. No redirects."""
        try:
            token = await self.valid_access_token()
            if not token:
                return None
            user = await self._client.get_user(token)
        except AuthError:
            logger.info("Stored session was rejected by the auth service.")
            return None
        if user is None:
            return None
        if self._session is not None and user != self._session.user:
            self._session = AuthSession(
                access_token=self._session.access_token,
                refresh_token=self._session.refresh_token,
                expires_at=self._session.expires_at,
                user=user,
            )
            await self._emit(AuthEvent.USER_UPDATED)
        return user

    async def current_user(self) -> AuthUser | None:
        user = await self.fetch_user()
        if user is None:
            await self._navigate("/login")
        return user

    async def refresh(self) -> AuthSession:
        if self._session is None or not self._session.refresh_token:
            raise AuthError("No session to refresh.")
        self._session = await self._client.refresh_session(self._session.refresh_token)
        await self._emit(AuthEvent.TOKEN_REFRESHED)
        return self._session

    async def exchange_code(self, code: str) -> AuthSession:
        self._session = await self._client.exchange_code_for_session(code)
        logger.info("Email confirmation exchanged for a session user=%s", self._session.user.id)
        await self._emit(AuthEvent.SIGNED_IN)
        return self._session
