"""The per-user framework home and its install manifest.

Layout under ``$FORGE_HOME`` (default ``~/.forge``)::

    site-packages/   shared dependencies and shared command modules
    manifest.json    which dependencies forge has installed
    .install.lock    advisory lock held while installing
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from forge.infrastructure.filesystem import atomic_write_json, read_json

HOME_ENV_VAR = "FORGE_HOME"

logger = logging.getLogger(__name__)


def default_forge_home(env: Mapping[str, str]) -> Path:
    """``$FORGE_HOME`` if set, else ``~/.forge``."""
    override = env.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".forge"


class ForgeHome:
    """Paths inside one framework home directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def site_packages(self) -> Path:
        return self.root / "site-packages"

    @property
    def manifest_path(self) -> Path:
        return self.root / "manifest.json"

    @property
    def lock_path(self) -> Path:
        return self.root / ".install.lock"

    def ensure(self) -> None:
        """Create the home and its site-packages directory if missing."""
        if not self.site_packages.is_dir():
            logger.debug("Creating forge home at %s", self.root)
        self.site_packages.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"ForgeHome({str(self.root)!r})"


class InstallManifest(BaseModel):
    """Dependencies forge has installed, keyed by normalized dependency key.

    Values are the specifier strings exactly as they were installed.
    """

    model_config = {"frozen": True}

    dependencies: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> InstallManifest:
        """Read the manifest; a missing or corrupted file reads as empty."""
        if not path.is_file():
            return cls()
        try:
            return cls.model_validate(read_json(path))
        except (OSError, UnicodeError, json.JSONDecodeError, PydanticValidationError):
            logger.warning("Ignoring unreadable install manifest %s", path, exc_info=True)
            return cls()

    def save(self, path: Path) -> None:
        atomic_write_json(path, self.model_dump())

    def installed_keys(self) -> set[str]:
        return set(self.dependencies)

    def with_installed(self, entries: Mapping[str, str]) -> InstallManifest:
        """Return a copy that also records *entries* (key -> specifier)."""
        return InstallManifest(dependencies={**self.dependencies, **entries})
