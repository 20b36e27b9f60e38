# tests/test_validation_and_routes.py

from __future__ import annotations

import pytest

from todo_calendar.auth.routes import Router, auth_callback, resolve_redirect
from todo_calendar.auth.session import SessionGateway
from todo_calendar.auth.validation import validate_credentials
from todo_calendar.core.errors import ValidationError

from .conftest import USER
from .fakes import FakeAuthClient


@pytest.mark.parametrize(
    "email",
    ["", "plainaddress", "no-at.example.com", "a@b", "two words@example.com", "a@b@c"],
)
def test_invalid_email_rejected(email: str) -> None:
    with pytest.raises(ValidationError, match="valid email"):
        validate_credentials(email, "secret123")


def test_short_password_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 6"):
        validate_credentials("kim@example.com", "12345")


def test_confirm_mismatch_rejected_only_when_confirming() -> None:
    assert validate_credentials("kim@example.com", "secret123", "other") == ("kim@example.com", "secret123")
    with pytest.raises(ValidationError, match="do not match"):
        validate_credentials("kim@example.com", "secret123", "other", confirm=True)


def test_email_is_trimmed() -> None:
    assert validate_credentials("  kim@example.com ", "secret123")[0] == "kim@example.com"


def test_anonymous_protected_path_goes_to_login_with_redirect() -> None:
    assert resolve_redirect("/todo", None) == "/login?redirect=%2Ftodo"
    assert resolve_redirect("/todo/2024-03", None) == "/login?redirect=%2Ftodo%2F2024-03"


def test_signed_in_auth_paths_go_to_todo() -> None:
    assert resolve_redirect("/login", USER) == "/todo"
    assert resolve_redirect("/signup?x=1", USER) == "/todo"


def test_other_paths_pass_through() -> None:
    assert resolve_redirect("/", None) is None
    assert resolve_redirect("/", USER) is None
    assert resolve_redirect("/login", None) is None
    assert resolve_redirect("/todo", USER) is None


@pytest.mark.asyncio
async def test_router_guards_with_live_session(auth_client: FakeAuthClient) -> None:
    gateway = SessionGateway(auth_client)
    router = Router(gateway)

    assert await router.push("/todo") == "/login?redirect=%2Ftodo"
    assert router.view == "login"

    await gateway.sign_in("kim@example.com", "secret123")
    assert await router.push("/login") == "/todo"
    assert router.view == "todo"
    assert router.history == ["/login?redirect=%2Ftodo", "/todo"]


@pytest.mark.asyncio
async def test_auth_callback_success_and_failure() -> None:
    client = FakeAuthClient()
    gateway = SessionGateway(client)
    await gateway.sign_up("new@example.com", "secret123", "secret123")

    assert await auth_callback(gateway, "code-new@example.com") == "/todo"
    assert gateway.user is not None and gateway.user.email == "new@example.com"

    failed = await auth_callback(gateway, "bogus")
    assert failed.startswith("/login?error=")
    assert "verification+failed" in failed
    assert await auth_callback(gateway, None, next_path="/todo") == failed


@pytest.mark.asyncio
async def test_auth_callback_honours_next() -> None:
    client = FakeAuthClient()
    gateway = SessionGateway(client)
    await gateway.sign_up("new@example.com", "secret123", "secret123")
    assert await auth_callback(gateway, "code-new@example.com", next_path="/todo?view=cal") == "/todo?view=cal"
