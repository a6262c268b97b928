"""Shared pytest fixtures for forge tests."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

_FORGE_ENV_VARS = (
    "FORGE_HOME",
    "FORGE_PROJECT",
    "FORGE_DEBUG",
    "FORGE_LOG_LEVEL",
    "FORGE_LOG_FORMAT",
    "FORGE_COLOR",
    "FORGE_QUIET",
    "FORGE_SILENT",
    "FORGE_INSTALL_MODE",
    "FORGE_OFFLINE",
    "FORGE_RESTART_COUNT",
    "FORGE_MAX_RESTARTS",
    "NO_COLOR",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own FORGE_* settings out of every test."""
    for var in _FORGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root and forge logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    forge = logging.getLogger("forge")
    forge_level = forge.level
    forge_disabled = forge.disabled
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    forge.setLevel(forge_level)
    forge.disabled = forge_disabled


@pytest.fixture
def restore_sys_path() -> Generator[None]:
    """Undo ``sys.path`` changes made by shared-module activation."""
    original = sys.path[:]
    yield
    sys.path[:] = original


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def forge_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated framework home, exported as FORGE_HOME."""
    home = tmp_path / "forge-home"
    (home / "site-packages").mkdir(parents=True)
    monkeypatch.setenv("FORGE_HOME", str(home))
    return home


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Project root with an empty ``.forge/`` marker directory."""
    root = tmp_path / "project"
    (root / ".forge").mkdir(parents=True)
    return root


@pytest.fixture
def write_config(project: Path) -> Callable[[str, str], Path]:
    """Write ``.forge/<name>`` with *text* and return its path."""

    def _write(text: str, name: str = "config.yml") -> Path:
        path = project / ".forge" / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_module(project: Path) -> Callable[[str, str], Path]:
    """Write a command module under ``.forge/`` and return its path."""

    def _write(relpath: str, source: str) -> Path:
        path = project / ".forge" / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    return _write
