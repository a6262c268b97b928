"""Simple JSON state for commands.

- Project state: ``.forge/state.json`` (meant to be committed, shared by the team)
- User state: ``.forge/state.local.json`` (meant to be gitignored, per user)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from forge.infrastructure.filesystem import atomic_write_json, read_json

PROJECT_STATE_FILE = "state.json"
USER_STATE_FILE = "state.local.json"

logger = logging.getLogger(__name__)


class StateManager:
    """Key/value state stored next to the project config."""

    def __init__(self, forge_dir: Path) -> None:
        self.forge_dir = forge_dir

    def _read(self, filename: str) -> dict[str, Any]:
        path = self.forge_dir / filename
        if not path.is_file():
            return {}
        try:
            data = read_json(path)
        except (OSError, UnicodeError, json.JSONDecodeError):
            logger.warning("Failed to read %s; treating it as empty", path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object", path)
            return {}
        return data

    def _write(self, filename: str, data: dict[str, Any]) -> None:
        atomic_write_json(self.forge_dir / filename, data)

    def get_project(self, key: str, default: Any = None) -> Any:
        return self._read(PROJECT_STATE_FILE).get(key, default)

    def set_project(self, key: str, value: Any) -> None:
        state = self._read(PROJECT_STATE_FILE)
        state[key] = value
        self._write(PROJECT_STATE_FILE, state)

    def get_user(self, key: str, default: Any = None) -> Any:
        return self._read(USER_STATE_FILE).get(key, default)

    def set_user(self, key: str, value: Any) -> None:
        state = self._read(USER_STATE_FILE)
        state[key] = value
        self._write(USER_STATE_FILE, state)
