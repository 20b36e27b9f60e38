# src/todo_calendar/core/errors.py

"""
Error taxonomy.

- ValidationError: rejected locally, before any remote call. Never retried.
- BackendError: the hosted service refused the call or could not be reached.
- AuthError: the auth service rejected credentials / session.

Nothing in this package retries automatically; every failure is terminal for
that attempt and the user has to act again.
"""

from __future__ import annotations


class TodoError(Exception):
    """Base class for errors that are safe to show to the user verbatim."""

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__


class ValidationError(TodoError):
    pass


class BackendError(TodoError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(BackendError):
    pass


def friendly_error_message(err: BaseException) -> str:
    """Short user-facing text for any error reaching the presentation layer."""
    if isinstance(err, TodoError):
        return err.message
    text = str(err).strip()
    return text or "Unknown error"
