"""Exception hierarchy for forge.

Every expected failure raised by a pipeline phase derives from
:class:`ForgeError`; the dispatcher renders those as a single line and exits
with :data:`~forge.exit_codes.USER_ERROR`. Anything else that escapes is
wrapped in :class:`InternalError`.

:class:`ExitNotification` is deliberately *not* a ``ForgeError``: it is a
control signal that must unwind untouched to the dispatcher.

Hierarchy
---------
ForgeError
├── ConfigError
├── UnresolvedModuleError
├── ModuleLoadError
├── DependencyInstallError
├── DuplicateCommandError
├── ValidationError
├── CommandError
└── InternalError
ExitNotification
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import StrEnum
from pathlib import Path


class ForgeError(Exception):
    """Base exception for all user-visible forge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Configuration ---------------------------------------------------------


class ConfigKind(StrEnum):
    PARSE_FAILURE = "parse-failure"
    INVALID_STRUCTURE = "invalid-structure"
    PROJECT_NOT_FOUND = "project-not-found"


class ConfigError(ForgeError):
    """Raised when the project config cannot be read or is malformed."""

    def __init__(self, kind: ConfigKind, path: Path | None, detail: str) -> None:
        where = f" in {path}" if path is not None else ""
        super().__init__(f"{_KIND_LABELS[kind]}{where}: {detail}")
        self.kind = kind
        self.path = path
        self.detail = detail


_KIND_LABELS: dict[ConfigKind, str] = {
    ConfigKind.PARSE_FAILURE: "Failed to parse config",
    ConfigKind.INVALID_STRUCTURE: "Invalid config structure",
    ConfigKind.PROJECT_NOT_FOUND: "Project not found",
}


# --- Modules ---------------------------------------------------------------


class UnresolvedModuleError(ForgeError):
    """Raised when a module specifier matches neither a local nor a shared module."""

    def __init__(self, specifier: str, searched: Sequence[Path]) -> None:
        self.specifier = specifier
        self.searched: tuple[Path, ...] = tuple(searched)
        locations = ", ".join(str(p) for p in self.searched) or "(nowhere)"
        super().__init__(
            f"Module not found: {specifier} (searched: {locations})",
            hint="Add the package to 'dependencies' or run: forge module install",
        )


class ModuleLoadError(ForgeError):
    """Raised when a resolved module fails to import or declares bad metadata."""

    def __init__(self, specifier: str, path: Path, detail: str) -> None:
        super().__init__(f"Failed to load module {specifier} from {path}: {detail}")
        self.specifier = specifier
        self.path = path


# --- Dependencies ----------------------------------------------------------


class DependencyInstallError(ForgeError):
    """Raised when installing shared dependencies fails."""

    def __init__(
        self,
        specifiers: Iterable[str],
        output: str,
        *,
        hint: str | None = "Try running: forge module install",
        message: str | None = None,
    ) -> None:
        self.specifiers: tuple[str, ...] = tuple(sorted(specifiers))
        self.output = output
        if message is None:
            last_line = output.strip().splitlines()[-1] if output.strip() else "unknown error"
            message = f"Failed to install dependencies {', '.join(self.specifiers)}: {last_line}"
        super().__init__(message, hint=hint)


# --- Registration ----------------------------------------------------------


class DuplicateCommandError(ForgeError):
    """Raised when two commands claim the same name in one scope."""

    def __init__(self, name: str, group: str | None, first: str, second: str) -> None:
        scope = f"group '{group}'" if group else "top level"
        super().__init__(
            f"Duplicate command '{name}' in {scope}: declared by {first} and {second}",
            hint="Rename one command or set override: true in the later module's __module__",
        )
        self.name = name
        self.group = group


# --- Invocation ------------------------------------------------------------


class ValidationError(ForgeError):
    """Raised for invalid command-line usage reported by the argument parser."""

    def __init__(self, message: str, *, hint: str | None = "Try 'forge --help' for more information.") -> None:
        super().__init__(message, hint=hint)


class CommandError(ForgeError):
    """Raised by command code through :func:`forge.command.die`."""


class InternalError(ForgeError):
    """Wraps an unclassified exception that escaped every other boundary."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            f"Internal error: {type(cause).__name__}: {cause}",
            hint="Run again with --debug for the full trace.",
        )
        self.__cause__ = cause


# --- Control flow ----------------------------------------------------------


class ExitReason(StrEnum):
    RESTART_REQUIRED = "restart-required"
    USER_REQUESTED = "user-requested"
    VALIDATION_ERROR = "validation-error"


class ExitNotification(Exception):  # noqa: N818
    """Request to end the process with a specific exit code.

    Only the dispatcher catches this; every intermediate frame lets it pass.
    """

    def __init__(self, exit_code: int, reason: ExitReason, message: str | None = None) -> None:
        super().__init__(message or f"exit {exit_code} ({reason})")
        self.exit_code = exit_code
        self.reason = reason
