# src/todo_calendar/auth/routes.py

"""
Session boundary.

Per navigation, resolve the caller's session and:
- send unauthenticated users away from protected paths (/todo) to /login,
- send authenticated users away from auth paths (/login, /signup) to /todo.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode, urlsplit

from ..core.errors import BackendError
from ..core.ports import AuthUser
from .session import SessionGateway

logger = logging.getLogger(__name__)

PROTECTED_PATHS = ("/todo",)
AUTH_PATHS = ("/login", "/signup")

EMAIL_VERIFY_FAILED = "Email verification failed. Please try again."


def _with_query(path: str, **params: str) -> str:
    return f"{path}?{urlencode(params)}"


def resolve_redirect(path: str, user: AuthUser | None) -> str | None:
    """Where the guard sends a request for `path`, or None to let it through."""
    pathname = urlsplit(path).path or "/"

    if user is None and any(pathname.startswith(p) for p in PROTECTED_PATHS):
        return _with_query("/login", redirect=pathname)

    if user is not None and any(pathname.startswith(p) for p in AUTH_PATHS):
        return "/todo"

    return None


class Router:
    """Navigator that applies the session guard on every push."""

    def __init__(self, gateway: SessionGateway, *, initial_path: str = "/") -> None:
        self._gateway = gateway
        self.current_path = initial_path
        self.history: list[str] = []

    @property
    def view(self) -> str:
        """First path segment: "", "todo", "login", "signup"."""
        return urlsplit(self.current_path).path.strip("/").split("/")[0]

    async def push(self, path: str) -> str:
        user = await self._gateway.fetch_user()
        target = resolve_redirect(path, user) or path
        if target != path:
            logger.debug("Route guard redirected %s -> %s", path, target)
        self.current_path = target
        self.history.append(target)
        return target


async def auth_callback(gateway: SessionGateway, code: str | None, *, next_path: str = "/todo") -> str:
    """Exchange the emailed confirmation code; return where to go next."""
    if code:
        try:
            await gateway.exchange_code(code)
            return next_path
        except BackendError as e:
            logger.warning("Auth code exchange failed: %s", e.message)
    return _with_query("/login", error=EMAIL_VERIFY_FAILED)
