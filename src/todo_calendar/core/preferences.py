# src/todo_calendar/core/preferences.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

LIGHT = "light"
DARK = "dark"


class ThemeStore:
    """Single light/dark flag kept in a small JSON file (best-effort)."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load(self) -> bool:
        """True when the saved theme is dark. Missing/broken file -> light."""
        if not self._path.exists():
            return False
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable preferences file %s; using light theme.", self._path)
            return False
        return isinstance(data, dict) and data.get("theme") == DARK

    def save(self, dark: bool) -> None:
        theme = DARK if dark else LIGHT
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(".tmp")
            tmp.write_text(json.dumps({"theme": theme}), "utf-8")
            os.replace(tmp, self._path)
            logger.debug("Saved theme=%s to %s", theme, self._path)
        except OSError:
            logger.exception("Failed to save theme preference to %s", self._path)
