"""The in-process forge pipeline and its single error boundary.

One invocation walks these phases in order::

    START -> BOOTSTRAPPED -> CONFIGURED -> DEPENDENCIES_OK | RESTART_REQUESTED
          -> MODULES_LOADED -> TREE_BUILT -> EXECUTING -> DONE | FAILED

Every exception raised by a phase unwinds to :meth:`Dispatcher.run`, which
is the only place that renders errors and picks the exit code.
"""

from __future__ import annotations

import dataclasses
import os
import sys
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import click
from rich.markup import escape

from forge import builtins, exit_codes
from forge.bootstrap import BootstrapOptions, parse_bootstrap
from forge.cli import AppContext, build_cli
from forge.command import ForgeCommand
from forge.config.logging import configure_logging, get_logger
from forge.config.settings import ResolvedConfig, resolve
from forge.dependencies import DependencyInstaller, Installer
from forge.exceptions import (
    ExitNotification,
    ExitReason,
    ForgeError,
    InternalError,
    ValidationError,
)
from forge.infrastructure.home import ForgeHome
from forge.modules import ModuleDescriptor, activate_shared_path, load_builtin, load_module, resolve_module
from forge.output.console import create_console, print_error
from forge.registry import CommandTree, build_tree
from forge.trace import trace

if TYPE_CHECKING:
    from rich.console import Console


class Phase(StrEnum):
    START = "start"
    BOOTSTRAPPED = "bootstrapped"
    CONFIGURED = "configured"
    DEPENDENCIES_OK = "dependencies-ok"
    RESTART_REQUESTED = "restart-requested"
    MODULES_LOADED = "modules-loaded"
    TREE_BUILT = "tree-built"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"


def builtin_descriptors(project_present: bool) -> list[ModuleDescriptor]:
    """Builtin modules, without project-only commands outside a project."""
    descriptors = []
    for module in builtins.BUILTIN_MODULES:
        descriptor = load_builtin(module)
        if not project_present:
            exports = {n: c for n, c in descriptor.exports.items() if not c.requires_project}
            descriptor = dataclasses.replace(descriptor, exports=exports)
        descriptors.append(descriptor)
    return descriptors


def invoked_builtin(descriptors: Sequence[ModuleDescriptor], words: Sequence[str]) -> ForgeCommand | None:
    """The builtin command named by the leading command *words*, if any."""
    if not words:
        return None
    tree = build_tree(descriptors)
    path = ".".join(words) if words[0] in tree.groups else words[0]
    registered = tree.find(path)
    return registered.command if registered is not None else None


def load_user_modules(config: ResolvedConfig) -> list[ModuleDescriptor]:
    """Resolve and import ``config.modules`` in declaration order."""
    if not config.project_present:
        return []
    return [load_module(resolve_module(specifier, config)) for specifier in config.modules]


class Dispatcher:
    """Runs one forge invocation.

    Args:
        env: Environment snapshot; defaults to ``os.environ``.
        installer: Installer collaborator handed to the dependency phase.
    """

    def __init__(self, env: Mapping[str, str] | None = None, *, installer: Installer | None = None) -> None:
        self.env: dict[str, str] = dict(os.environ) if env is None else dict(env)
        self.installer = installer
        self.phase = Phase.START
        self.bootstrap: BootstrapOptions | None = None
        self.config: ResolvedConfig | None = None
        self.log: Any = None
        self.tree: CommandTree | None = None

    def _enter(self, phase: Phase) -> None:
        previous, self.phase = self.phase, phase
        if self.log is not None:
            self.log.debug("phase transition", previous=str(previous), phase=str(phase))
        else:
            trace("dispatch", "%s -> %s", previous, phase)

    @property
    def debug(self) -> bool:
        if self.config is not None:
            return self.config.debug
        return bool(self.bootstrap and self.bootstrap.debug)

    def _console(self) -> Console:
        color = "auto"
        if self.config is not None:
            color = self.config.color_mode
        elif self.bootstrap is not None and self.bootstrap.color_mode is not None:
            color = self.bootstrap.color_mode
        return create_console(color)

    def _notify_install(self, specs: Sequence[str]) -> None:
        if self.config is not None and self.config.silent:
            return
        self._console().print(f"[info]Installing dependencies:[/info] {escape(', '.join(specs))}")

    def _hint_for(self, error: ForgeError) -> str | None:
        if isinstance(error, InternalError):
            return None if self.debug else error.hint
        if isinstance(error, ValidationError) or self.debug:
            return error.hint
        return None

    def _report(self, error: ForgeError) -> None:
        console = self._console()
        if self.debug:
            console.print_exception()
        print_error(console, error.message, self._hint_for(error))

    # --- Pipeline ------------------------------------------------------------

    def _pipeline(self, raw_args: Sequence[str]) -> int:
        self.bootstrap = parse_bootstrap(raw_args)
        self._enter(Phase.BOOTSTRAPPED)

        config = self.config = resolve(self.bootstrap, self.env)
        configure_logging(config.log_level, config.log_format, config.color_mode)
        self.log = get_logger("forge.dispatcher")
        self._enter(Phase.CONFIGURED)
        for warning in config.warnings:
            self.log.warning(warning)
        if config.restart_count:
            self.log.debug("restarted process", restart_count=config.restart_count)

        builtins_loaded = builtin_descriptors(config.project_present)
        if config.project_present:
            target = invoked_builtin(builtins_loaded, self.bootstrap.command_words)
            if target is not None and target.manages_dependencies:
                self.log.debug("dependency check skipped", command=" ".join(self.bootstrap.command_words))
            else:
                DependencyInstaller(
                    config,
                    installer=self.installer,
                    notify=self._notify_install,
                    log=get_logger("forge.dependencies"),
                ).ensure()
        self._enter(Phase.DEPENDENCIES_OK)

        site_packages = ForgeHome(config.forge_home).site_packages
        if site_packages.is_dir():
            activate_shared_path(site_packages)
        descriptors = builtins_loaded + load_user_modules(config)
        self._enter(Phase.MODULES_LOADED)

        self.tree = build_tree(descriptors)
        self._enter(Phase.TREE_BUILT)

        cli = build_cli(config, self.tree, AppContext(config, self._console(), installer=self.installer))
        self._enter(Phase.EXECUTING)
        code = cli.main(args=list(raw_args), prog_name="forge", standalone_mode=False)
        self._enter(Phase.DONE)
        return exit_codes.SUCCESS if code is None else int(code)

    def _interruptible(self, raw_args: Sequence[str]) -> int:
        """Run the pipeline, turning Ctrl-C into a user-requested exit."""
        try:
            return self._pipeline(raw_args)
        except (click.Abort, KeyboardInterrupt) as exc:
            self._enter(Phase.FAILED)
            self._console().print()
            raise ExitNotification(exit_codes.INTERRUPTED, ExitReason.USER_REQUESTED, "interrupted") from exc

    def run(self, raw_args: Sequence[str]) -> int:
        """Run the pipeline and translate its outcome into an exit code."""
        try:
            return self._interruptible(raw_args)
        except ExitNotification as exc:
            if exc.reason is ExitReason.RESTART_REQUIRED:
                self._enter(Phase.RESTART_REQUESTED)
            elif self.phase is not Phase.FAILED:
                self._enter(Phase.DONE)
            return exc.exit_code
        except click.UsageError as exc:
            self._enter(Phase.FAILED)
            command_path = exc.ctx.command_path if exc.ctx is not None else "forge"
            self._report(
                ValidationError(exc.format_message(), hint=f"Try '{command_path} --help' for more information.")
            )
            return exit_codes.USER_ERROR
        except click.ClickException as exc:
            self._enter(Phase.FAILED)
            self._report(ForgeError(exc.format_message()))
            return exc.exit_code
        except ForgeError as exc:
            self._enter(Phase.FAILED)
            self._report(exc)
            return exit_codes.USER_ERROR
        except Exception as exc:
            self._enter(Phase.FAILED)
            self._report(InternalError(exc))
            return exit_codes.INTERNAL_ERROR


def run(raw_args: Sequence[str], *, env: Mapping[str, str] | None = None, installer: Installer | None = None) -> int:
    """Run forge in-process and return the exit code."""
    return Dispatcher(env, installer=installer).run(raw_args)


def main() -> None:
    """Entry point for ``python -m forge``."""
    sys.exit(run(sys.argv[1:]))
