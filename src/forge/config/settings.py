"""Resolved configuration: CLI flags, env vars and the project file in one object.

Priority chain (highest to lowest):
  1. Init kwargs: bootstrap CLI flags that were actually given
  2. Environment: ``FORGE_*`` variables plus the ``NO_COLOR`` convention,
     read from an explicit snapshot rather than ``os.environ``
  3. Project file: ``.forge/config.*`` discovered via walk-up
  4. Code defaults: baked into :class:`ResolvedConfig`

Only the known scalar fields are layered. ``modules``, ``dependencies`` and
``settings`` come wholesale from the project file.

Uses Pydantic Settings v2 with two custom sources. The per-call inputs (env
snapshot, parsed project file) are handed to the sources through
thread-local storage while the model is being constructed.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from forge.bootstrap import BootstrapOptions
from forge.config.discovery import MARKER_DIRNAME, find_config_file, find_project_root, load_project_file
from forge.config.models import (
    ColorMode,
    InstallMode,
    LogFormat,
    ProjectFile,
    normalize_color_mode,
    normalize_log_level,
)
from forge.exceptions import ConfigError, ConfigKind
from forge.infrastructure.home import default_forge_home
from forge.trace import trace

RESTART_COUNT_ENV_VAR = "FORGE_RESTART_COUNT"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

# env var -> field name, for plain pass-through values
_ENV_FIELDS: dict[str, str] = {
    "FORGE_LOG_LEVEL": "log_level",
    "FORGE_LOG_FORMAT": "log_format",
    "FORGE_INSTALL_MODE": "install_mode",
}
_ENV_FLAGS: dict[str, str] = {
    "FORGE_DEBUG": "debug",
    "FORGE_QUIET": "quiet",
    "FORGE_SILENT": "silent",
    "FORGE_OFFLINE": "offline",
}


def _env_flag(raw: str) -> bool | str:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return raw  # left for pydantic to reject


def read_env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Translate an environment snapshot into ResolvedConfig field values."""
    data: dict[str, Any] = {}
    for var, field in _ENV_FIELDS.items():
        if env.get(var):
            data[field] = env[var]
    for var, field in _ENV_FLAGS.items():
        if env.get(var):
            data[field] = _env_flag(env[var])

    if env.get("FORGE_COLOR"):
        data["color_mode"] = normalize_color_mode(env["FORGE_COLOR"]) or env["FORGE_COLOR"]
    elif env.get("NO_COLOR"):
        data["color_mode"] = "never"
    return data


class EnvSnapshotSource(PydanticBaseSettingsSource):
    """Read settings from an explicit environment mapping."""

    def __init__(self, settings_cls: type[BaseSettings], env: Mapping[str, str]) -> None:
        super().__init__(settings_cls)
        self._data = read_env_overrides(env)

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._data


class ProjectFileSource(PydanticBaseSettingsSource):
    """Read settings from an already-validated ``.forge/config.*`` file."""

    def __init__(self, settings_cls: type[BaseSettings], project: ProjectFile | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = project.overrides() if project is not None else {}

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Thread-local storage for per-call inputs during construction.
_tls = threading.local()


class ResolvedConfig(BaseSettings):
    """The single, immutable configuration for one forge invocation.

    Attributes:
        project_present: Whether a ``.forge/`` marker directory was found.
            When False, ``project_root``, ``forge_dir`` and ``config_path``
            are None and only project-independent commands register.
        forge_home: Per-user framework home holding shared dependencies
            and the install manifest.
        user_dir: Directory the user invoked forge from.
        restart_count: Restarts that preceded this process in the current
            launcher chain.
        warnings: Non-fatal notices collected before logging existed.
    """

    model_config = {"frozen": True}

    # --- Project context (derived, passed as init kwargs) ---
    project_present: bool = False
    project_root: Path | None = None
    forge_dir: Path | None = None
    config_path: Path | None = None
    user_dir: Path = Field(default_factory=Path.cwd)
    forge_home: Path = Field(default_factory=lambda: default_forge_home(os.environ))

    # --- Layered scalars ---
    debug: bool = False
    quiet: bool = False
    silent: bool = False
    log_level: str = "info"
    log_format: LogFormat = "pretty"
    color_mode: ColorMode = "auto"
    install_mode: InstallMode = "auto"
    offline: bool = False

    # --- Taken wholesale from the project file ---
    modules: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    settings: dict[str, Any] = Field(default_factory=dict)

    restart_count: int = 0
    warnings: tuple[str, ...] = ()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Replace env/dotenv/secret sources with the snapshot and project file."""
        return (
            init_settings,
            EnvSnapshotSource(settings_cls, getattr(_tls, "env", None) or {}),
            ProjectFileSource(settings_cls, getattr(_tls, "project", None)),
        )

    @model_validator(mode="before")
    @classmethod
    def _derive_log_level(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("log_level"):
            if data.get("debug") is True:
                data["log_level"] = "debug"
            elif data.get("silent") is True:
                data["log_level"] = "silent"
            elif data.get("quiet") is True:
                data["log_level"] = "warning"
        return data

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = normalize_log_level(value)
        if level is None:
            msg = f"unknown log level {value!r}"
            raise ValueError(msg)
        return level

    def command_settings(self, command_path: str) -> dict[str, Any]:
        """Settings block for ``"<group>.<command>"`` (or a bare command name)."""
        block = self.settings.get(command_path)
        return dict(block) if isinstance(block, Mapping) else {}


def _cli_overrides(bootstrap: BootstrapOptions) -> dict[str, Any]:
    """Only flags that were given, so unset flags never mask lower layers."""
    overrides: dict[str, Any] = {}
    for flag in ("debug", "quiet", "silent"):
        if getattr(bootstrap, flag):
            overrides[flag] = True
    for name in ("log_level", "log_format", "color_mode"):
        value = getattr(bootstrap, name)
        if value is not None:
            overrides[name] = value
    return overrides


def _restart_count(env: Mapping[str, str]) -> int:
    try:
        return max(0, int(env.get(RESTART_COUNT_ENV_VAR, "0")))
    except ValueError:
        return 0


def resolve(bootstrap: BootstrapOptions, env: Mapping[str, str] | None = None) -> ResolvedConfig:
    """Discover the project, load its config and merge every layer.

    Raises:
        ConfigError: The config file failed to parse, had the wrong shape, a
            layered value was invalid, or an explicit root has no marker.
    """
    env = dict(os.environ) if env is None else dict(env)
    user_dir = bootstrap.user_dir.resolve()

    project_root = find_project_root(bootstrap.root, user_dir, env)
    forge_dir: Path | None = None
    config_path: Path | None = None
    project: ProjectFile | None = None
    warnings: list[str] = []

    if project_root is not None:
        forge_dir = project_root / MARKER_DIRNAME
        config_path = find_config_file(forge_dir)
        if config_path is None:
            warnings.append(f"No config file found in {forge_dir}; continuing with defaults")
        else:
            trace("config", "loading %s", config_path)
            project = load_project_file(config_path)

    _tls.env = env
    _tls.project = project
    try:
        config = ResolvedConfig(
            project_present=project_root is not None,
            project_root=project_root,
            forge_dir=forge_dir,
            config_path=config_path,
            user_dir=user_dir,
            forge_home=default_forge_home(env),
            restart_count=_restart_count(env),
            warnings=tuple(warnings),
            **_cli_overrides(bootstrap),
        )
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(
            ConfigKind.INVALID_STRUCTURE,
            config_path,
            f"{problems} (check FORGE_* environment variables)",
        ) from exc
    finally:
        _tls.env = None
        _tls.project = None

    trace("config", "resolved: %r", config)
    return config


def get_setting(config: ResolvedConfig, command_path: str, key: str, default: Any = None) -> Any:
    """Look up one setting for ``"<group>.<command>"``, falling back to *default*."""
    return config.command_settings(command_path).get(key, default)
