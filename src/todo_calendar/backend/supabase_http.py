# src/todo_calendar/backend/supabase_http.py

"""
HTTP clients for a Supabase-compatible backend.

- SupabaseAuthClient  -> GoTrue   (/auth/v1/...)
- SupabaseTaskBackend -> PostgREST (/rest/v1/tasks)

Both share one httpx.AsyncClient owned by the composition root.
No automatic retries: every failure is raised as BackendError/AuthError.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import time
from typing import Any

import httpx

from ..core.errors import AuthError, BackendError
from ..core.ports import AuthSession, AuthUser, TaskRow, TokenProvider

logger = logging.getLogger(__name__)

TASKS_TABLE = "tasks"


def extract_error(response: httpx.Response) -> str:
    """Best-effort readable message from a GoTrue/PostgREST error body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        for key in ("message", "msg", "error_description", "error"):
            msg = body.get(key)
            if isinstance(msg, str) and msg.strip():
                return msg.strip()

    text = (response.text or "").strip()
    if text:
        return f"HTTP {response.status_code}: {text[:300]}"
    return f"HTTP {response.status_code}: request failed"


def _pkce_pair() -> tuple[str, str]:
    verifier = secrets.token_urlsafe(56)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def _user_from_json(data: Any) -> AuthUser | None:
    if not isinstance(data, dict):
        return None
    user_id = data.get("id")
    if not isinstance(user_id, str) or not user_id:
        return None
    email = data.get("email")
    return AuthUser(id=user_id, email=email if isinstance(email, str) else None)


def _session_from_json(data: Any) -> AuthSession:
    if not isinstance(data, dict):
        raise AuthError("Unexpected response from the auth service.")
    token = data.get("access_token")
    user = _user_from_json(data.get("user"))
    if not isinstance(token, str) or not token or user is None:
        raise AuthError("Sign-in returned no access token or user id.")

    expires_at = data.get("expires_at")
    if not isinstance(expires_at, (int, float)):
        expires_in = data.get("expires_in")
        expires_at = time.time() + float(expires_in) if isinstance(expires_in, (int, float)) else None

    refresh = data.get("refresh_token")
    return AuthSession(
        access_token=token,
        refresh_token=refresh if isinstance(refresh, str) else None,
        expires_at=float(expires_at) if expires_at is not None else None,
        user=user,
    )


class _SupabaseHttp:
    def __init__(self, http: httpx.AsyncClient, *, base_url: str, anon_key: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[BackendError] = BackendError,
        access_token: str | None = None,
        extra_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._headers(access_token)
        if extra_headers:
            headers.update(extra_headers)
        url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise error_cls(f"Network error: {e}") from e

        if response.status_code >= 300:
            msg = extract_error(response)
            logger.info("%s %s -> %s %s", method, path, response.status_code, msg)
            raise error_cls(msg, status_code=response.status_code)
        return response


class SupabaseAuthClient(_SupabaseHttp):
    """GoTrue email/password client."""

    def __init__(self, http: httpx.AsyncClient, *, base_url: str, anon_key: str) -> None:
        super().__init__(http, base_url=base_url, anon_key=anon_key)
        self._code_verifier: str | None = None

    async def sign_in_with_password(self, *, email: str, password: str) -> AuthSession:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            error_cls=AuthError,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return _session_from_json(resp.json())

    async def sign_up(self, *, email: str, password: str) -> AuthUser | None:
        verifier, challenge = _pkce_pair()
        resp = await self._request(
            "POST",
            "/auth/v1/signup",
            error_cls=AuthError,
            json={
                "email": email,
                "password": password,
                "code_challenge": challenge,
                "code_challenge_method": "s256",
            },
        )
        # Kept for the confirmation-link exchange.
        self._code_verifier = verifier
        data = resp.json()
        if isinstance(data, dict) and "user" in data:
            return _user_from_json(data.get("user"))
        return _user_from_json(data)

    async def sign_out(self, access_token: str) -> None:
        await self._request("POST", "/auth/v1/logout", error_cls=AuthError, access_token=access_token)

    async def get_user(self, access_token: str) -> AuthUser | None:
        resp = await self._request("GET", "/auth/v1/user", error_cls=AuthError, access_token=access_token)
        return _user_from_json(resp.json())

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            error_cls=AuthError,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return _session_from_json(resp.json())

    async def exchange_code_for_session(self, code: str) -> AuthSession:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            error_cls=AuthError,
            params={"grant_type": "pkce"},
            json={"auth_code": code, "code_verifier": self._code_verifier or ""},
        )
        self._code_verifier = None
        return _session_from_json(resp.json())


class SupabaseTaskBackend(_SupabaseHttp):
    """PostgREST access to the `tasks` table; row-level security scopes it to the user."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        anon_key: str,
        token_provider: TokenProvider,
    ) -> None:
        super().__init__(http, base_url=base_url, anon_key=anon_key)
        self._token_provider = token_provider

    @property
    def _path(self) -> str:
        return f"/rest/v1/{TASKS_TABLE}"

    async def select_tasks(self, *, user_id: str) -> list[TaskRow]:
        resp = await self._request(
            "GET",
            self._path,
            access_token=await self._token_provider(),
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
        )
        rows = resp.json()
        if not isinstance(rows, list):
            raise BackendError("Unexpected response format while loading tasks.")
        return rows

    async def insert_task(self, row: TaskRow) -> TaskRow:
        resp = await self._request(
            "POST",
            self._path,
            access_token=await self._token_provider(),
            extra_headers={"Prefer": "return=representation"},
            params={"select": "*"},
            json=row,
        )
        data = resp.json()
        if isinstance(data, list):
            data = data[0] if len(data) == 1 else None
        if not isinstance(data, dict):
            raise BackendError("Insert did not return the created task.")
        return data

    async def update_task(self, task_id: str, changes: TaskRow) -> None:
        await self._request(
            "PATCH",
            self._path,
            access_token=await self._token_provider(),
            extra_headers={"Prefer": "return=minimal"},
            params={"id": f"eq.{task_id}"},
            json=changes,
        )

    async def delete_task(self, task_id: str) -> None:
        await self._request(
            "DELETE",
            self._path,
            access_token=await self._token_provider(),
            extra_headers={"Prefer": "return=minimal"},
            params={"id": f"eq.{task_id}"},
        )
