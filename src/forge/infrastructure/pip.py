"""Out-of-process package installation via ``python -m pip --target``.

One pip subprocess installs the whole pending set, giving a single
success/failure result. pip is never imported into the forge process.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0


@dataclass(frozen=True)
class InstallResult:
    """Outcome of one installer invocation."""

    ok: bool
    output: str


class PipInstaller:
    """Install specifiers into a target directory with pip.

    *run* defaults to :func:`subprocess.run` and is injectable for tests.
    """

    def __init__(
        self,
        target: Path,
        *,
        python: str | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        run: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.target = target
        self.python = python or sys.executable
        self.timeout = timeout
        self._run = run

    def command(self, specifiers: Sequence[str]) -> list[str]:
        return [
            self.python,
            "-m",
            "pip",
            "install",
            "--disable-pip-version-check",
            "--no-input",
            "--upgrade",
            "--target",
            str(self.target),
            *specifiers,
        ]

    def __call__(self, specifiers: Sequence[str]) -> InstallResult:
        cmd = self.command(specifiers)
        logger.debug("Running installer: %s", " ".join(cmd))
        try:
            proc = self._run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return InstallResult(ok=False, output=f"pip timed out after {self.timeout:g}s")
        except OSError as exc:
            return InstallResult(ok=False, output=f"could not run pip: {exc}")

        output = "\n".join(part for part in (proc.stdout, proc.stderr) if part)
        if proc.returncode != 0:
            logger.debug("pip exited with %d", proc.returncode)
            return InstallResult(ok=False, output=output or f"pip exited with {proc.returncode}")
        return InstallResult(ok=True, output=output)
