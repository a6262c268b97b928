"""``forge module ...``: inspect and install shared dependencies."""

from __future__ import annotations

from typing import Any

import click
from rich.markup import escape
from rich.table import Table

from forge.cli import AppContext
from forge.command import ForgeCommand, ForgeContext
from forge.dependencies import DependencyInstaller, dependency_key
from forge.infrastructure.home import ForgeHome, InstallManifest
from forge.output.console import create_console

__module__ = {"group": "module", "description": "Manage shared modules and dependencies"}


def _list(options: dict[str, Any], args: list[str], context: ForgeContext) -> None:
    home = ForgeHome(context.config.forge_home)
    manifest = InstallManifest.load(home.manifest_path)
    console = create_console(context.config.color_mode, stderr=False)

    declared = {dependency_key(spec): spec for spec in context.config.dependencies}
    keys = list(declared) + [k for k in manifest.dependencies if k not in declared]
    if not keys:
        console.print("No dependencies declared or installed.")
        console.print(f"Forge home: [path]{home.root}[/path]")
        return

    table = Table(title=f"Dependencies ({home.root})")
    table.add_column("Dependency", style="command")
    table.add_column("Specifier")
    table.add_column("Status")
    for key in keys:
        installed = key in manifest.dependencies
        if key in declared:
            status = "[ok]installed[/ok]" if installed else "[warning]missing[/warning]"
        else:
            status = "[hint]installed, not declared[/hint]"
        table.add_row(escape(key), escape(declared.get(key) or manifest.dependencies[key]), status)
    console.print(table)


def _install(options: dict[str, Any], args: list[str], context: ForgeContext) -> None:
    console = create_console(context.config.color_mode, stderr=False)
    app = click.get_current_context().find_object(AppContext)
    installer = app.installer if app is not None else None
    installed = DependencyInstaller(context.config, installer=installer, log=context.log).install_declared()
    if installed:
        console.print(f"[ok]Installed:[/ok] {escape(', '.join(installed))}")
    else:
        console.print("All dependencies are already installed.")


list_ = ForgeCommand(
    name="list",
    description="List declared and installed dependencies",
    execute=_list,
    manages_dependencies=True,
)

install = ForgeCommand(
    description="Install the project's declared dependencies",
    execute=_install,
    requires_project=True,
    manages_dependencies=True,
)
