"""Public API for command modules.

A command module is a Python file listed under ``modules`` in
``.forge/config.yml``. Every module-level :class:`ForgeCommand` becomes a
command; an optional ``__module__`` mapping customizes the group::

    import click

    from forge.command import ForgeCommand, command

    __module__ = {"group": "basic", "description": "Basic example commands"}

    ping = ForgeCommand(
        description="Simple ping command",
        execute=lambda options, args, context: print("pong!"),
    )

    def _define(cmd):
        cmd.params.append(click.Argument(["name"]))
        cmd.params.append(click.Option(["-l", "--loud"], is_flag=True))

    @command("Greet someone", define_command=_define)
    def greet(options, args, context):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NoReturn

import click

from forge.config.models import ModuleMetadata
from forge.exceptions import CommandError, ExitNotification, ExitReason

if TYPE_CHECKING:
    from forge.config.settings import ResolvedConfig
    from forge.infrastructure.state import StateManager

Execute = Callable[[dict[str, Any], list[str], "ForgeContext"], Any]
DefineCommand = Callable[[click.Command], None]


@dataclass(frozen=True)
class ForgeCommand:
    """A command descriptor.

    "Simple" commands set only ``description`` and ``execute``. "Rich"
    commands also provide ``define_command``, which receives the click
    command and may append options and arguments to ``cmd.params``.

    Attributes:
        execute: Called as ``execute(options, args, context)``. ``options``
            holds parsed option values, ``args`` the positional values. May
            be a coroutine function.
        usage: Free-form usage hint appended to the command's help.
        name: Command name; defaults to the attribute name in the module.
        requires_project: Only register when a project is present.
        manages_dependencies: Skip the automatic dependency install when
            this command is invoked, so it runs while dependencies are missing.
    """

    description: str
    execute: Execute
    usage: str | None = None
    define_command: DefineCommand | None = None
    name: str | None = None
    requires_project: bool = False
    manages_dependencies: bool = False


@dataclass(frozen=True)
class ForgeContext:
    """Everything a command needs from the framework, passed explicitly."""

    config: ResolvedConfig
    log: Any
    command_name: str
    group_name: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    state: StateManager | None = None

    @property
    def command_path(self) -> str:
        return f"{self.group_name}.{self.command_name}" if self.group_name else self.command_name


def command(
    description: str,
    *,
    usage: str | None = None,
    define_command: DefineCommand | None = None,
    name: str | None = None,
    requires_project: bool = False,
) -> Callable[[Execute], ForgeCommand]:
    """Decorator form: turn an ``execute`` function into a :class:`ForgeCommand`."""

    def decorator(fn: Execute) -> ForgeCommand:
        return ForgeCommand(
            description=description,
            execute=fn,
            usage=usage,
            define_command=define_command,
            name=name,
            requires_project=requires_project,
        )

    return decorator


def die(message: str, cause: BaseException | None = None) -> NoReturn:
    """Abort the current command with a one-line error (exit code 1)."""
    raise CommandError(message) from cause


def request_exit(code: int = 0) -> NoReturn:
    """End the process with *code* without treating it as an error."""
    raise ExitNotification(code, ExitReason.USER_REQUESTED)


__all__ = [
    "ForgeCommand",
    "ForgeContext",
    "ModuleMetadata",
    "command",
    "die",
    "request_exit",
]
