"""Project discovery and config file loading.

Walk-up finder locates the ``.forge/`` marker directory, similar to how git
finds ``.git/``. Supports the ``FORGE_PROJECT`` env var and the ``--root`` CLI
flag as explicit overrides.
"""

from __future__ import annotations

import json
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from forge.config.models import ProjectFile
from forge.exceptions import ConfigError, ConfigKind
from forge.trace import trace

MARKER_DIRNAME = ".forge"
PROJECT_ENV_VAR = "FORGE_PROJECT"

# Searched in order inside the marker directory; first existing file wins.
CONFIG_FILENAMES: tuple[str, ...] = (
    "config.yml",
    "config.yaml",
    "config.json",
    "config.toml",
)


def discover_project(start: Path) -> Path | None:
    """Walk up from *start* looking for a directory containing ``.forge/``.

    Returns the project root, or None when the filesystem root is reached.
    """
    current = start.resolve()
    while True:
        trace("discovery", "checking %s", current)
        if (current / MARKER_DIRNAME).is_dir():
            trace("discovery", "project discovered at %s", current)
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    trace("discovery", "reached filesystem root, no project found")
    return None


def explicit_project_root(root: Path | None, env: Mapping[str, str]) -> Path | None:
    """Return the project root named by ``--root`` or ``FORGE_PROJECT``.

    ``--root`` takes precedence. Either source pointing at a directory
    without a marker is an error rather than a silent fallback to discovery.
    """
    if root is not None:
        source, candidate = "--root", root
    elif env.get(PROJECT_ENV_VAR):
        source, candidate = PROJECT_ENV_VAR, Path(env[PROJECT_ENV_VAR])
    else:
        return None

    candidate = candidate.expanduser().resolve()
    if not (candidate / MARKER_DIRNAME).is_dir():
        raise ConfigError(
            ConfigKind.PROJECT_NOT_FOUND,
            candidate,
            f"{source} points at a directory without {MARKER_DIRNAME}/",
        )
    trace("discovery", "using explicit project root from %s: %s", source, candidate)
    return candidate


def find_project_root(root: Path | None, start: Path, env: Mapping[str, str]) -> Path | None:
    """Explicit root first, then walk-up discovery from *start*."""
    explicit = explicit_project_root(root, env)
    if explicit is not None:
        return explicit
    return discover_project(start)


def find_config_file(forge_dir: Path) -> Path | None:
    """Return the first config file present in *forge_dir*, if any."""
    for name in CONFIG_FILENAMES:
        candidate = forge_dir / name
        if candidate.is_file():
            return candidate
    return None


def _parse_document(path: Path) -> Any:
    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in (".yml", ".yaml"):
        return YAML(typ="safe").load(raw)
    if suffix == ".json":
        return json.loads(raw) if raw.strip() else None
    if suffix == ".toml":
        return tomllib.loads(raw)
    msg = f"unsupported config format '{suffix}'"
    raise ValueError(msg)


def load_project_file(path: Path) -> ProjectFile:
    """Parse and validate a project config file.

    Raises:
        ConfigError: ``parse-failure`` if the document cannot be parsed,
            ``invalid-structure`` if it parses but does not fit
            :class:`ProjectFile`.
    """
    try:
        data = _parse_document(path)
    except (OSError, UnicodeError, ValueError, YAMLError, tomllib.TOMLDecodeError) as exc:
        # json.JSONDecodeError is a ValueError subclass.
        raise ConfigError(ConfigKind.PARSE_FAILURE, path, str(exc)) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(
            ConfigKind.INVALID_STRUCTURE,
            path,
            f"expected a mapping at the top level, got {type(data).__name__}",
        )

    try:
        return ProjectFile.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(ConfigKind.INVALID_STRUCTURE, path, problems) from exc
