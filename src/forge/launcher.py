"""Console-script entry point that honors the restart exit code.

The actual CLI runs in a child interpreter (``python -m forge``). When the
child exits with :data:`~forge.exit_codes.RESTART` (dependencies were just
installed) it is run again with ``FORGE_RESTART_COUNT`` incremented, up to
``FORGE_MAX_RESTARTS`` times.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Callable, Mapping, Sequence

import click

from forge import exit_codes
from forge.config.settings import RESTART_COUNT_ENV_VAR

MAX_RESTARTS_ENV_VAR = "FORGE_MAX_RESTARTS"
DEFAULT_MAX_RESTARTS = 3

Spawn = Callable[[list[str], dict[str, str]], int]


def spawn_child(args: list[str], env: dict[str, str]) -> int:
    """Run ``python -m forge *args`` and return its exit code.

    Ctrl-C reaches the child through the terminal's process group. The parent
    keeps waiting instead of killing it, so the child's own interrupt handling
    decides the exit code.
    """
    with subprocess.Popen([sys.executable, "-m", "forge", *args], env=env) as proc:
        while True:
            try:
                code = proc.wait()
            except KeyboardInterrupt:
                continue
            return 128 - code if code < 0 else code


def max_restarts_from(env: Mapping[str, str]) -> int:
    raw = env.get(MAX_RESTARTS_ENV_VAR)
    if not raw:
        return DEFAULT_MAX_RESTARTS
    try:
        return max(0, int(raw))
    except ValueError:
        return DEFAULT_MAX_RESTARTS


def run_with_restarts(
    args: Sequence[str],
    *,
    spawn: Spawn = spawn_child,
    max_restarts: int = DEFAULT_MAX_RESTARTS,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run the child until it exits with something other than the restart code.

    Returns the child's final exit code, or
    :data:`~forge.exit_codes.USER_ERROR` once the restart ceiling is hit.
    """
    base_env = dict(os.environ if env is None else env)
    restarts = 0
    while True:
        child_env = {**base_env, RESTART_COUNT_ENV_VAR: str(restarts)}
        code = spawn(list(args), child_env)
        if code != exit_codes.RESTART:
            return code
        if restarts >= max_restarts:
            click.echo(
                f"ERROR: forge requested a restart {restarts + 1} times in a row; "
                f"giving up (limit {max_restarts}, set {MAX_RESTARTS_ENV_VAR} to change it)",
                err=True,
            )
            return exit_codes.USER_ERROR
        restarts += 1


def main() -> None:
    """Entry point for the ``forge`` console script."""
    try:
        code = run_with_restarts(sys.argv[1:], max_restarts=max_restarts_from(os.environ))
    except KeyboardInterrupt:
        code = exit_codes.INTERRUPTED
    sys.exit(code)
