# src/todo_calendar/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _prompt(state: AppState) -> str:
    view = state.router.view or "home"
    vs = state.controller.state
    if vs.modal_open and vs.selected_date is not None:
        view = f"{view}:{vs.selected_date.isoformat()}"
    return f"({view}) >>> "


async def run_console_loop(state: AppState) -> None:
    """
    Async REPL.

    input() runs in a worker thread so realtime refetches keep running on the
    event loop while the user is typing.
    """
    logger.info("Console connector started.")
    print_ts("[CONSOLE] Type /help for commands, /exit to quit.\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, _prompt(state))).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            # Bare text is a quick add.
            user_input = f"/add {user_input}"

        try:
            reply = await command_registry.handle(state, user_input, emit=print_ts)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is not None:
            print_ts(reply)

    logger.info("Console connector finished.")
