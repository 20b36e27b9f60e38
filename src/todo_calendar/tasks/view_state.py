# src/todo_calendar/tasks/view_state.py

"""
View-state controller.

Owns the ViewState (task mirror, calendar cursor, selection, filter, theme)
and applies every mutation optimistically:

    snapshot (value copy) -> apply locally -> await remote call
        success -> keep (create: swap the local placeholder for the backend row)
        failure -> put back the touched fields from the snapshot, report to the user

Single asyncio loop, but reentrant: a second mutation may start while an
earlier one is in flight. Nothing is locked or versioned, so for one id the
last local write wins on screen and the backend decides the final state.
A change notification triggers a full refetch.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime

from ..core.errors import TodoError, ValidationError, friendly_error_message
from ..core.ports import AuthUser, Disposer, Notifier
from ..core.preferences import ThemeStore
from ..core.state import ViewState
from .calendar_grid import build_calendar_grid, shift_month
from .task_models import CalendarCell, NewTask, Priority, Task, TaskFilter, TaskPatch
from .task_store import TaskStoreAdapter
from .task_view import filtered_tasks, tasks_for_date

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"


def _log_notice(text: str) -> None:
    logger.info("%s", text)


class ViewStateController:
    def __init__(
        self,
        store: TaskStoreAdapter,
        *,
        theme: ThemeStore | None = None,
        notify: Notifier | None = None,
        today: Callable[[], date] = date.today,
        state: ViewState | None = None,
    ) -> None:
        self._store = store
        self._theme = theme
        self._today = today
        self.notify: Notifier = notify or _log_notice
        self.state = state or ViewState.for_today(today())
        self._dispose: Disposer | None = None

    # ---- lifecycle ----

    @property
    def user_id(self) -> str | None:
        return self.state.user.id if self.state.user else None

    async def initialize(self, user: AuthUser) -> None:
        """Load the user's tasks and theme, then open the change subscription."""
        if self._dispose is not None:
            await self.teardown()

        self.state.user = user
        if self._theme is not None:
            self.state.dark_mode = self._theme.load()

        await self.reload()

        try:
            self._dispose = await self._store.subscribe_changes(user.id, self.handle_change)
        except TodoError as e:
            # The list still works; it just will not follow other sessions.
            logger.warning("Change subscription failed user=%s: %s", user.id, e.message)

        logger.info("View state initialized user=%s tasks=%d", user.id, len(self.state.tasks))

    async def teardown(self) -> None:
        dispose, self._dispose = self._dispose, None
        if dispose is not None:
            try:
                await dispose()
            except Exception:
                logger.exception("Failed to dispose change subscription.")

        self.state.tasks = {}
        self.state.user = None
        self.state.selected_date = None
        self.state.modal_open = False
        self.state.last_error = None

    # ---- reads ----

    async def reload(self) -> bool:
        """Full refetch. On failure the current collection is left untouched."""
        user_id = self.user_id
        if not user_id:
            return False

        self.state.loading = True
        try:
            tasks = await self._store.list(user_id)
        except TodoError as e:
            self._report("Failed to load tasks", e)
            return False
        finally:
            self.state.loading = False

        self.state.tasks = {t.id: t for t in tasks}
        return True

    async def handle_change(self) -> None:
        logger.debug("Change notification -> refetch")
        await self.reload()

    @property
    def tasks(self) -> list[Task]:
        return list(self.state.tasks.values())

    def filtered_tasks(self) -> list[Task]:
        return filtered_tasks(self.state.tasks.values(), self.state.active_filter)

    def tasks_for_selected_date(self) -> list[Task]:
        return tasks_for_date(self.state.tasks.values(), self.state.selected_date)

    def calendar(self, *, today: date | None = None) -> list[CalendarCell]:
        return build_calendar_grid(
            self.state.visible_year,
            self.state.visible_month,
            self.state.tasks.values(),
            today=today or self._today(),
        )

    # ---- mutations (optimistic) ----

    async def add_task(
        self,
        text: str,
        priority: Priority = Priority.MEDIUM,
        task_date: date | None = None,
    ) -> Task | None:
        user_id = self.user_id
        if not user_id:
            self._report("Could not add the task", ValidationError("You need to sign in first."))
            return None
        if not text or not text.strip():
            self._report("Could not add the task", ValidationError("Please enter a task."))
            return None

        new_task = NewTask(text=text.strip(), priority=priority, task_date=task_date or self._today())
        now = datetime.now(UTC)
        placeholder = Task(
            id=f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}",
            created_at=now,
            updated_at=now,
            user_id=user_id,
            text=new_task.text,
            priority=new_task.priority,
            completed=False,
            task_date=new_task.task_date or self._today(),
        )
        # New tasks go on top, like the backend's created_at desc order.
        self.state.tasks = {placeholder.id: placeholder, **self.state.tasks}

        try:
            created = await self._store.create(user_id, new_task)
        except TodoError as e:
            self.state.tasks.pop(placeholder.id, None)
            self._report("Could not add the task", e)
            return None

        self._splice(placeholder.id, created)
        self.notify("Task added.")
        return created

    async def toggle_task(self, task_id: str) -> bool:
        task = self.state.tasks.get(task_id)
        if task is None:
            return False
        return await self._apply_patch(task_id, TaskPatch(completed=not task.completed), "Could not update the task")

    async def edit_task(self, task_id: str, new_text: str | None) -> bool:
        # Blank input means the edit was cancelled.
        if not new_text or not new_text.strip():
            return False
        if task_id not in self.state.tasks:
            return False
        return await self._apply_patch(task_id, TaskPatch(text=new_text.strip()), "Could not edit the task")

    async def delete_task(self, task_id: str) -> bool:
        keys = list(self.state.tasks)
        position = keys.index(task_id) if task_id in self.state.tasks else None
        snapshot = self.state.tasks.pop(task_id, None)

        try:
            await self._store.delete(task_id)
        except TodoError as e:
            if snapshot is not None and task_id not in self.state.tasks:
                self._insert_at(snapshot, position)
            self._report("Could not delete the task", e)
            return False
        return True

    async def _apply_patch(self, task_id: str, patch: TaskPatch, failure: str) -> bool:
        snapshot = self.state.tasks[task_id]
        self.state.tasks[task_id] = patch.apply(snapshot)

        try:
            await self._store.update(task_id, patch)
        except TodoError as e:
            # Only the fields this patch touched go back; other writes to the
            # same id that landed meanwhile stay. A refetch may also have
            # dropped the row; do not resurrect it.
            current = self.state.tasks.get(task_id)
            if current is not None:
                self.state.tasks[task_id] = patch.revert(current, snapshot)
            self._report(failure, e)
            return False
        return True

    def _splice(self, placeholder_id: str, created: Task) -> None:
        """Put the backend row where the placeholder was."""
        tasks = self.state.tasks
        if placeholder_id not in tasks:
            # A refetch already replaced the collection.
            if created.id not in tasks:
                self.state.tasks = {created.id: created, **tasks}
            return
        if created.id in tasks:
            tasks.pop(placeholder_id)
            return
        self.state.tasks = {
            (created.id if k == placeholder_id else k): (created if k == placeholder_id else v)
            for k, v in tasks.items()
        }

    def _insert_at(self, task: Task, position: int | None) -> None:
        items = list(self.state.tasks.items())
        if position is None or position > len(items):
            position = len(items)
        items.insert(position, (task.id, task))
        self.state.tasks = dict(items)

    # ---- cursor / selection / filter / theme ----

    def set_filter(self, value: TaskFilter | str) -> TaskFilter:
        try:
            task_filter = TaskFilter(value)
        except ValueError:
            allowed = ", ".join(f.value for f in TaskFilter)
            raise ValidationError(f"Unknown filter {value!r}. Use one of: {allowed}.") from None
        self.state.active_filter = task_filter
        return task_filter

    def next_month(self) -> None:
        self.state.visible_year, self.state.visible_month = shift_month(
            self.state.visible_year, self.state.visible_month, 1
        )

    def prev_month(self) -> None:
        self.state.visible_year, self.state.visible_month = shift_month(
            self.state.visible_year, self.state.visible_month, -1
        )

    def go_to_today(self) -> None:
        today = self._today()
        self.state.visible_year, self.state.visible_month = today.year, today.month

    def open_modal(self, day: date) -> None:
        self.state.selected_date = day
        self.state.modal_open = True

    def close_modal(self) -> None:
        self.state.modal_open = False
        self.state.selected_date = None

    def toggle_theme(self) -> bool:
        self.state.dark_mode = not self.state.dark_mode
        if self._theme is not None:
            self._theme.save(self.state.dark_mode)
        return self.state.dark_mode

    # ---- errors ----

    def _report(self, prefix: str, err: BaseException) -> None:
        msg = f"{prefix}: {friendly_error_message(err)}"
        self.state.last_error = msg
        logger.warning("%s", msg)
        self.notify(msg)
