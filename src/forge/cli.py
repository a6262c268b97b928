"""Bind a :class:`~forge.registry.CommandTree` onto click.

The root group re-declares the global flags the bootstrap parser already
consumed, so they show up in ``--help`` and invalid values are rejected
with a proper usage error. Their values are not read again here: the
resolved configuration is authoritative.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import click

from forge import __version__
from forge.command import ForgeContext
from forge.config.logging import get_logger
from forge.config.models import LOG_LEVELS, normalize_color_mode, normalize_log_level
from forge.exceptions import ValidationError
from forge.infrastructure.state import StateManager
from forge.output.console import create_console

if TYPE_CHECKING:
    from rich.console import Console

    from forge.config.settings import ResolvedConfig
    from forge.dependencies import Installer
    from forge.registry import CommandTree, GroupNode, RegisteredCommand

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"], "max_content_width": 100}


class ForgeClickCommand(click.Command):
    """Click command bound to a :class:`~forge.command.ForgeCommand`."""

    def __init__(self, *args: Any, registered: RegisteredCommand | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.registered = registered


class ForgeGroup(click.Group):
    """Click group that lists commands in registration order.

    Sets ``command_class = ForgeClickCommand`` so subcommands created
    through the group decorator are bound the same way.
    """

    command_class = ForgeClickCommand

    def list_commands(self, ctx: click.Context) -> list[str]:
        return list(self.commands)


class AppContext:
    """Shared context flowing through click's command hierarchy.

    Created once per invocation by the dispatcher. State is created lazily
    so ``--help`` never touches the filesystem.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        console: Console | None = None,
        *,
        installer: Installer | None = None,
    ) -> None:
        self.config = config
        self.console = console or create_console(config.color_mode)
        self.installer = installer
        self._state: StateManager | None = None

    @property
    def state(self) -> StateManager | None:
        """Project state, or None outside a project."""
        if self._state is None and self.config.forge_dir is not None:
            self._state = StateManager(self.config.forge_dir)
        return self._state

    def context_for(self, registered: RegisteredCommand) -> ForgeContext:
        return ForgeContext(
            config=self.config,
            log=get_logger("forge.command", command=registered.path),
            command_name=registered.name,
            group_name=registered.group,
            settings=self.config.command_settings(registered.path),
            state=self.state,
        )


# --- Global option types ----------------------------------------------------


class ColorModeType(click.ParamType):
    name = "mode"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        mode = normalize_color_mode(str(value))
        if mode is None:
            self.fail(f"{value!r} is not one of auto, always, never (or on/off/true/false)", param, ctx)
        return mode


class LogLevelType(click.ParamType):
    name = "level"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> str:
        level = normalize_log_level(str(value))
        if level is None:
            self.fail(f"{value!r} is not one of {', '.join(LOG_LEVELS)}", param, ctx)
        return level


def _global_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option(
            "-r",
            "--root",
            type=click.Path(file_okay=False),
            expose_value=False,
            help="Project root (directory containing .forge/).",
        ),
        click.option("-d", "--debug", is_flag=True, expose_value=False, help="Debug output."),
        click.option("-q", "--quiet", is_flag=True, expose_value=False, help="Only warnings and errors."),
        click.option("-s", "--silent", is_flag=True, expose_value=False, help="No log output."),
        click.option("--log-level", type=LogLevelType(), expose_value=False, help="Log level."),
        click.option(
            "--log-format",
            type=click.Choice(["json", "pretty"], case_sensitive=False),
            expose_value=False,
            help="Log output format.",
        ),
        click.option("--color", type=ColorModeType(), expose_value=False, help="Color mode."),
        click.option("--no-color", is_flag=True, expose_value=False, help="Disable color."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


# --- Command binding --------------------------------------------------------


def split_params(cmd: click.Command, values: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Separate option values from positional values, in declaration order."""
    options: dict[str, Any] = {}
    args: list[Any] = []
    for param in cmd.params:
        if param.name is None or param.name not in values:
            continue
        value = values[param.name]
        if isinstance(param, click.Argument):
            if param.nargs == 1:
                if value is not None:
                    args.append(value)
            elif value:
                args.extend(value)
        else:
            options[param.name] = value
    return options, args


def run_execute(registered: RegisteredCommand, options: dict[str, Any], args: list[str], context: ForgeContext) -> Any:
    """Call ``execute``, driving it to completion if it is a coroutine."""
    result = registered.command.execute(options, args, context)
    if inspect.isawaitable(result):
        return asyncio.run(_await(result))
    return result


async def _await(awaitable: Any) -> Any:
    return await awaitable


def bind_command(registered: RegisteredCommand) -> ForgeClickCommand:
    """Create the click command for one registered command.

    ``define_command`` runs first; commands that declare no arguments get a
    catch-all ``ARGS...`` so simple commands accept free positionals.
    """
    spec = registered.command

    def callback(**values: Any) -> None:
        ctx = click.get_current_context()
        app = ctx.find_object(AppContext)
        if app is None:
            msg = "forge commands must run under the forge root group"
            raise RuntimeError(msg)
        options, args = split_params(ctx.command, values)
        context = app.context_for(registered)
        context.log.debug("executing", options=options, args=args)
        run_execute(registered, options, args, context)

    cmd = ForgeClickCommand(
        registered.name,
        callback=callback,
        help=spec.description,
        short_help=spec.description,
        epilog=spec.usage,
        context_settings=CONTEXT_SETTINGS,
        registered=registered,
    )
    if spec.define_command is not None:
        spec.define_command(cmd)
    if not any(isinstance(p, click.Argument) for p in cmd.params):
        cmd.params.append(click.Argument(["args"], nargs=-1))
    return cmd


def bind_group(node: GroupNode) -> ForgeGroup:
    group = ForgeGroup(
        node.name,
        help=node.description or f"{node.name} commands",
        context_settings=CONTEXT_SETTINGS,
    )
    for registered in node.commands.values():
        group.add_command(bind_command(registered))
    return group


def build_cli(config: ResolvedConfig, tree: CommandTree, app: AppContext | None = None) -> ForgeGroup:
    """Root click group for *tree*, with the global options and ``--version``."""
    app = app or AppContext(config)

    @click.group(
        cls=ForgeGroup,
        name="forge",
        invoke_without_command=True,
        context_settings=CONTEXT_SETTINGS,
    )
    @click.version_option(version=__version__, prog_name="forge")
    @_global_options
    @click.pass_context
    def cli(ctx: click.Context) -> None:
        """forge: modular command-line framework."""
        ctx.obj = app
        if ctx.invoked_subcommand is None:
            click.echo(ctx.get_help())
            raise ValidationError("subcommand required", hint=None)

    for name in tree.order:
        if name in tree.groups:
            cli.add_command(bind_group(tree.groups[name]))
        else:
            cli.add_command(bind_command(tree.commands[name]))
    return cli
