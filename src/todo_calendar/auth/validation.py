# src/todo_calendar/auth/validation.py

from __future__ import annotations

import re

from ..core.errors import ValidationError

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def validate_email(email: str | None) -> str:
    email = (email or "").strip()
    if not email or not EMAIL_REGEX.match(email):
        raise ValidationError("Please enter a valid email address.")
    return email


def validate_password(password: str | None) -> str:
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return password


def validate_credentials(
    email: str | None,
    password: str | None,
    confirm_password: str | None = None,
    *,
    confirm: bool = False,
) -> tuple[str, str]:
    """Run the same checks the login/sign-up forms run, in the same order."""
    email = validate_email(email)
    password = validate_password(password)
    if confirm and password != (confirm_password or ""):
        raise ValidationError("Passwords do not match.")
    return email, password
