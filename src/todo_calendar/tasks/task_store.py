# src/todo_calendar/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from ..core.errors import BackendError, ValidationError
from ..core.ports import ChangeCallback, ChangeFeed, Disposer, TaskBackend
from .task_models import NewTask, Task, TaskPatch

logger = logging.getLogger(__name__)


class TaskStoreAdapter:
    """
    Task CRUD scoped to the authenticated user, on top of the hosted backend.

    Scoping:
    - reads filter on user_id explicitly,
    - writes stamp user_id on insert,
    - the backend's row-level security is trusted for everything else.

    Failures raise BackendError (never retried here); local input problems
    raise ValidationError before anything leaves the process.
    """

    def __init__(
        self,
        backend: TaskBackend,
        feed: ChangeFeed,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._backend = backend
        self._feed = feed
        self._today = today

    @staticmethod
    def _decode(rows: list[dict]) -> list[Task]:
        out: list[Task] = []
        for row in rows:
            try:
                out.append(Task.from_row(row))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed task row id=%s", row.get("id") if isinstance(row, dict) else None)
        return out

    async def list(self, user_id: str) -> list[Task]:
        """All tasks owned by user_id, newest first."""
        rows = await self._backend.select_tasks(user_id=user_id)
        tasks = self._decode(rows)
        logger.debug("Loaded %d tasks for user=%s", len(tasks), user_id)
        return tasks

    async def create(self, user_id: str, new_task: NewTask) -> Task:
        if not new_task.text or not new_task.text.strip():
            raise ValidationError("Please enter a task.")
        if not user_id:
            raise ValidationError("You need to sign in first.")

        row = await self._backend.insert_task(new_task.to_insert(user_id=user_id, today=self._today()))
        try:
            task = Task.from_row(row)
        except (TypeError, ValueError) as e:
            raise BackendError(f"Backend returned an invalid task: {e}") from e
        logger.info("Task created id=%s date=%s priority=%s", task.id, task.date_key, task.priority.value)
        return task

    async def update(self, task_id: str, patch: TaskPatch) -> None:
        if patch.is_empty():
            raise ValidationError("Nothing to update.")
        if patch.text is not None and not patch.text.strip():
            raise ValidationError("Please enter a task.")

        await self._backend.update_task(task_id, patch.to_update())
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(patch.to_update()))

    async def delete(self, task_id: str) -> None:
        await self._backend.delete_task(task_id)
        logger.info("Task deleted id=%s", task_id)

    async def subscribe_changes(self, user_id: str, on_change: ChangeCallback) -> Disposer:
        """
        Open a standing insert/update/delete subscription for user_id.

        The returned disposer MUST be awaited on teardown; calling it twice is harmless.
        """
        dispose = await self._feed.subscribe(user_id=user_id, on_change=on_change)
        disposed = False

        async def _dispose_once() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            await dispose()

        logger.info("Subscribed to task changes user=%s", user_id)
        return _dispose_once
