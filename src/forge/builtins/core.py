"""Top-level builtin commands."""

from __future__ import annotations

import os
import subprocess
from typing import Any

from forge.command import ForgeCommand, ForgeContext, request_exit
from forge.infrastructure.home import HOME_ENV_VAR, ForgeHome

__module__ = {"group": False, "description": "Built-in commands"}


def _launch_shell(options: dict[str, Any], args: list[str], context: ForgeContext) -> None:
    home = ForgeHome(context.config.forge_home)
    home.ensure()
    shell = os.environ.get("SHELL") or "/bin/sh"
    env = {**os.environ, HOME_ENV_VAR: str(home.root)}
    context.log.debug("launching shell", shell=shell, cwd=str(home.root))
    proc = subprocess.run([shell], cwd=home.root, env=env, check=False)
    request_exit(proc.returncode)


cd = ForgeCommand(
    description="Launch a shell in the forge home directory",
    execute=_launch_shell,
)
