"""Pydantic models for project config files and module metadata.

Sparse contract: defaults are baked in here, ``.forge/config.*`` only
contains what a project wants to change. Unknown keys are ignored so newer
config files keep working with older forge releases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

LogFormat = Literal["json", "pretty"]
ColorMode = Literal["auto", "always", "never"]
InstallMode = Literal["auto", "manual"]

LOG_LEVELS: tuple[str, ...] = (
    "silent",
    "trace",
    "debug",
    "info",
    "warning",
    "error",
    "critical",
)

# Accepted on the command line and in the environment, mapped onto LOG_LEVELS.
LOG_LEVEL_ALIASES: dict[str, str] = {
    "warn": "warning",
    "fatal": "critical",
}

COLOR_ALIASES: dict[str, ColorMode] = {
    "auto": "auto",
    "always": "always",
    "on": "always",
    "true": "always",
    "never": "never",
    "off": "never",
    "false": "never",
    "disable": "never",
}


def normalize_log_level(value: str | None) -> str | None:
    """Return the canonical level name, or None if *value* is not a level."""
    if value is None:
        return None
    lowered = value.strip().lower()
    lowered = LOG_LEVEL_ALIASES.get(lowered, lowered)
    return lowered if lowered in LOG_LEVELS else None


def normalize_color_mode(value: str | None) -> ColorMode | None:
    """Map colour aliases (on/off/true/false/disable) onto a ColorMode."""
    if value is None:
        return None
    return COLOR_ALIASES.get(value.strip().lower())


# --- .forge/config.* ---


class ProjectFile(BaseModel):
    """Top-level structure of ``.forge/config.{yml,yaml,json,toml}``."""

    model_config = {"frozen": True, "extra": "ignore"}

    modules: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)

    # Scalar overrides merged below env vars and CLI flags.
    log_level: str | None = None
    log_format: LogFormat | None = None
    color_mode: ColorMode | None = None
    install_mode: InstallMode | None = None
    offline: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str | None) -> str | None:
        if value is None:
            return None
        level = normalize_log_level(value)
        if level is None:
            msg = f"unknown log level {value!r} (expected one of {', '.join(LOG_LEVELS)})"
            raise ValueError(msg)
        return level

    @field_validator("modules", "dependencies")
    @classmethod
    def _non_empty_entries(cls, value: list[str]) -> list[str]:
        for entry in value:
            if not entry.strip():
                raise ValueError("entries must be non-empty strings")
        return value

    def overrides(self) -> dict[str, Any]:
        """Return only the fields the file actually set."""
        return self.model_dump(exclude_unset=True)


# --- __module__ declared by command modules ---


class ModuleMetadata(BaseModel):
    """Per-module metadata, read from a module-level ``__module__`` mapping.

    Attributes:
        group: Group name override. ``False`` registers the module's commands
            at the top level; ``None`` derives the group from the specifier.
        description: Group description shown in help.
        override: Later registrations of an existing command name win instead
            of raising a duplicate error.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    group: str | Literal[False] | None = None
    description: str | None = None
    override: bool = False

    @field_validator("group")
    @classmethod
    def _valid_group(cls, value: str | bool | None) -> str | bool | None:
        if isinstance(value, str) and not value.strip():
            raise ValueError("group name must not be empty")
        return value
