# src/todo_calendar/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, lands on /todo (the route guard sends
anonymous users to /login), then runs the console REPL until /exit.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import print_ts, run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    state = create_initial_state(settings=settings, notify=print_ts)
    try:
        landing = await state.router.push("/todo")
        if state.router.view != "todo":
            print_ts(f"Not signed in; at {landing}. Use /login <email> <password> or /signup.")
        await run_console_loop(state)
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    except RuntimeError as e:
        # Missing backend configuration ends up here.
        logger.error("%s", e)
        raise SystemExit(1) from e

    logger.info("Bye.")


if __name__ == "__main__":
    main()
