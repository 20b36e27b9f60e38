# src/todo_calendar/cli/commands.py

from __future__ import annotations

import calendar
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..auth.routes import auth_callback
from ..core.errors import TodoError, ValidationError, friendly_error_message
from ..core.state import AppState
from ..tasks.task_models import CalendarCell, Priority, Task, parse_date

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str] | str]

logger = logging.getLogger(__name__)

SIGN_IN_HINT = "Please sign in first: /login <email> <password>"
WEEKDAY_HEADER = "Su   Mo   Tu   We   Th   Fr   Sa"
PRIORITY_MARK = {Priority.HIGH: "!!!", Priority.MEDIUM: "!! ", Priority.LOW: "!  "}


class CommandRegistry:
    """Slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            result = handler(state, args, emit)
            if inspect.isawaitable(result):
                result = await result
        except TodoError as e:
            return friendly_error_message(e)
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----


def render_task_line(i: int, task: Task) -> str:
    box = "[x]" if task.completed else "[ ]"
    return f"{i:>2}. {box} {PRIORITY_MARK[task.priority]} {task.date_key}  {task.text}"


def render_task_list(state: AppState, tasks: list[Task], *, title: str) -> str:
    state.listing = [t.id for t in tasks]
    if not tasks:
        return f"{title}: no tasks."
    lines = [f"{title}:"]
    lines.extend(render_task_line(i, t) for i, t in enumerate(tasks, start=1))
    return "\n".join(lines)


def _render_cell(cell: CalendarCell) -> str:
    if cell.is_today:
        mark = "*"
    elif not cell.is_current_month:
        mark = "."
    else:
        mark = " "
    count = f"{cell.task_count}" if cell.task_count else ""
    return f"{cell.date.day:>2}{mark}{count:<2}"


def render_calendar(year: int, month: int, cells: list[CalendarCell]) -> str:
    lines = [f"{calendar.month_name[month]} {year}", WEEKDAY_HEADER]
    for week in range(0, len(cells), 7):
        lines.append("".join(_render_cell(c) for c in cells[week : week + 7]).rstrip())
    lines.append("(* today, . other month, number = tasks that day)")
    return "\n".join(lines)


# ---- helpers ----


def _require_user(state: AppState) -> str | None:
    if state.controller.user_id is None:
        return SIGN_IN_HINT
    return None


def _resolve_task_ref(state: AppState, ref: str) -> str:
    """`ref` is a 1-based index into the last printed list, or a task id (prefix)."""
    if ref.isdigit():
        idx = int(ref) - 1
        if 0 <= idx < len(state.listing):
            return state.listing[idx]
        raise ValidationError(f"No task #{ref} in the last list. Use /list first.")

    matches = [tid for tid in state.controller.state.tasks if tid.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValidationError(f"No task with id {ref!r}.")
    raise ValidationError(f"Task id {ref!r} is ambiguous.")


def _parse_add_args(args: list[str], default_date: date | None) -> tuple[str, Priority, date | None]:
    """/add [YYYY-MM-DD] [low|medium|high] text..."""
    task_date = default_date
    priority = Priority.MEDIUM
    rest = list(args)

    if rest:
        try:
            task_date = parse_date(rest[0])
            rest.pop(0)
        except ValueError:
            pass

    if rest and rest[0].lower() in {p.value for p in Priority}:
        priority = Priority(rest.pop(0).lower())

    return " ".join(rest), priority, task_date


# ---- auth commands ----


async def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /login <email> <password>"
    user = await state.gateway.sign_in(args[0], args[1])
    return f"Signed in as {user.email or user.id}. {len(state.controller.state.tasks)} task(s) loaded."


async def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 3:
        return "Usage: /signup <email> <password> <confirm-password>"
    return await state.gateway.sign_up(args[0], args[1], args[2])


async def cmd_confirm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/confirm <code> -> finish sign-up with the code from the confirmation email."""
    target = await auth_callback(state.gateway, args[0] if args else None)
    target = await state.router.push(target)
    if state.router.view == "todo":
        return "Email confirmed. You are signed in."
    return f"Confirmation failed. Now at {target}."


async def cmd_logout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if state.gateway.user is None:
        return "You are not signed in."
    await state.gateway.sign_out()
    return "Signed out."


async def cmd_whoami(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    user = await state.gateway.current_user()
    if user is None:
        return f"Not signed in (now at {state.router.current_path})."
    return f"Signed in as {user.email or user.id} (id={user.id})."


async def cmd_go(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    path = args[0] if args else "/"
    if not path.startswith("/"):
        path = "/" + path
    target = await state.router.push(path)
    return f"Now at {target}"


# ---- task commands ----


def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    ctl = state.controller
    if args:
        ctl.set_filter(args[0].lower())
    return render_task_list(state, ctl.filtered_tasks(), title=f"Tasks ({ctl.state.active_filter.value})")


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    ctl = state.controller
    # Inside the day view, new tasks default to the selected day.
    default_date = ctl.state.selected_date if ctl.state.modal_open else None
    text, priority, task_date = _parse_add_args(args, default_date)
    task = await ctl.add_task(text, priority, task_date)
    if task is None:
        return ctl.state.last_error or "Task was not added."
    return f"Added: {task.text} ({task.priority.value}, {task.date_key})"


async def cmd_done(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    if not args:
        return "Usage: /done <n|id>"
    task_id = _resolve_task_ref(state, args[0])
    ok = await state.controller.toggle_task(task_id)
    task = state.controller.state.tasks.get(task_id)
    if not ok or task is None:
        return state.controller.state.last_error or "Task not found."
    return f"{'Completed' if task.completed else 'Reopened'}: {task.text}"


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    if len(args) < 2:
        return "Usage: /edit <n|id> <new text>"
    task_id = _resolve_task_ref(state, args[0])
    ok = await state.controller.edit_task(task_id, " ".join(args[1:]))
    if not ok:
        return state.controller.state.last_error or "Nothing changed."
    # A refetch may have dropped the row while the edit was in flight.
    task = state.controller.state.tasks.get(task_id)
    if task is None:
        return "Task not found."
    return f"Edited: {task.text}"


async def cmd_rm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    if not args:
        return "Usage: /rm <n|id>"
    task_id = _resolve_task_ref(state, args[0])
    ok = await state.controller.delete_task(task_id)
    if not ok:
        return state.controller.state.last_error or "Delete failed."
    state.listing = [tid for tid in state.listing if tid != task_id]
    return "Deleted."


def cmd_filter(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return f"Filter is {state.controller.state.active_filter.value}."
    task_filter = state.controller.set_filter(args[0].lower())
    return f"Filter set to {task_filter.value}."


def cmd_cal(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    vs = state.controller.state
    return render_calendar(vs.visible_year, vs.visible_month, state.controller.calendar())


def cmd_month(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /month next   -> following month
    /month prev   -> previous month
    /month today  -> back to the current month
    """
    sub = (args[0].lower() if args else "today")
    ctl = state.controller
    if sub in ("next", "n", "+"):
        ctl.next_month()
    elif sub in ("prev", "p", "-"):
        ctl.prev_month()
    elif sub in ("today", "t", "now"):
        ctl.go_to_today()
    else:
        return "Usage: /month next | /month prev | /month today"
    return cmd_cal(state, [], emit)


def cmd_day(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    if not args:
        return "Usage: /day YYYY-MM-DD"
    try:
        day = parse_date(args[0])
    except ValueError:
        return f"Not a date: {args[0]} (expected YYYY-MM-DD)"
    ctl = state.controller
    ctl.open_modal(day)
    title = f"{day.isoformat()} (new /add tasks go here; /close to leave)"
    return render_task_list(state, ctl.tasks_for_selected_date(), title=title)


def cmd_close(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.controller.close_modal()
    return "Day view closed."


def cmd_theme(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    dark = state.controller.toggle_theme()
    return f"Theme: {'dark' if dark else 'light'}"


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if hint := _require_user(state):
        return hint
    if not await state.controller.reload():
        return state.controller.state.last_error or "Reload failed."
    return f"Reloaded {len(state.controller.state.tasks)} task(s)."


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password> <confirm>.")
registry.register("confirm", cmd_confirm, help_text="Finish sign-up with the emailed code: /confirm <code>.")
registry.register("logout", cmd_logout, help_text="Sign out.")
registry.register("whoami", cmd_whoami, help_text="Show the signed-in user.")
registry.register("go", cmd_go, help_text="Navigate: /go /todo | /login | /signup.")
registry.register("list", cmd_list, help_text="List tasks: /list [all|active|completed|high|medium|low].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add [YYYY-MM-DD] [low|medium|high] text.")
registry.register("done", cmd_done, help_text="Toggle completion: /done <n|id>.")
registry.register("edit", cmd_edit, help_text="Edit text: /edit <n|id> <new text>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <n|id>.", aliases=["del"])
registry.register("filter", cmd_filter, help_text="Set the list filter: /filter <name>.")
registry.register("cal", cmd_cal, help_text="Show the month calendar.")
registry.register("month", cmd_month, help_text="Move the calendar: /month next | prev | today.")
registry.register("day", cmd_day, help_text="Open a day: /day YYYY-MM-DD.")
registry.register("close", cmd_close, help_text="Close the day view.")
registry.register("theme", cmd_theme, help_text="Toggle light/dark theme.")
registry.register("reload", cmd_reload, help_text="Refetch tasks from the server.")
