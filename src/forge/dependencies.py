"""Shared dependency installation and the restart handshake.

Dependencies are installed out of process into the framework home's
``site-packages``. A process that installed something cannot safely use it
(imports may already be cached), so a successful install ends with
:class:`~forge.exceptions.ExitNotification` carrying the restart code and
the launcher runs forge again.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from forge.exceptions import DependencyInstallError, ExitNotification, ExitReason
from forge.exit_codes import RESTART
from forge.infrastructure.filesystem import file_lock
from forge.infrastructure.home import ForgeHome, InstallManifest
from forge.infrastructure.pip import InstallResult, PipInstaller

if TYPE_CHECKING:
    from forge.config.settings import ResolvedConfig

Installer = Callable[[Sequence[str]], InstallResult]
Notify = Callable[[Sequence[str]], None]
Check = Callable[[Sequence[str]], None]

_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_NORMALIZE = re.compile(r"[-_.]+")
_URL_PREFIXES = ("http://", "https://", "file:", "git+", "hg+", "svn+", "bzr+")


class InstallOutcome(StrEnum):
    NOOP = "noop"
    INSTALLED = "installed"


@dataclass
class InstallState:
    """Bookkeeping for a single ensure pass."""

    pending: set[str] = field(default_factory=set)
    attempted: set[str] = field(default_factory=set)
    attempt_count: int = 0


def _is_location(specifier: str) -> bool:
    spec = specifier.strip()
    return (
        spec.startswith(_URL_PREFIXES)
        or spec.startswith((".", "/", "~"))
        or " @ " in spec
        or spec.endswith((".whl", ".tar.gz", ".zip"))
    )


def dependency_key(specifier: str) -> str:
    """Identity used to decide whether *specifier* is already installed.

    Named requirements compare by their PEP 503 normalized project name, so
    ``Left_Pad>=1.0`` and ``left-pad`` are the same dependency. URLs, direct
    references and paths compare verbatim.
    """
    spec = specifier.strip()
    if _is_location(spec):
        return spec
    match = _NAME.match(spec)
    if match is None:
        return spec
    return _NORMALIZE.sub("-", match.group(1)).lower()


def pending_dependencies(specifiers: Iterable[str], installed: Iterable[str]) -> dict[str, str]:
    """Declared specifiers whose key is not installed, as key -> specifier.

    Declaration order is kept; later duplicates of the same key are dropped.
    """
    have = set(installed)
    pending: dict[str, str] = {}
    for spec in specifiers:
        key = dependency_key(spec)
        if key not in have and key not in pending:
            pending[key] = spec
    return pending


def ensure_dependencies(
    specifiers: Iterable[str],
    installed: Iterable[str],
    *,
    install: Installer,
    notify: Notify,
    state: InstallState | None = None,
    check: Check | None = None,
) -> InstallOutcome:
    """Install whatever is missing, then request a restart.

    Returns :attr:`InstallOutcome.NOOP` when nothing is pending. Otherwise
    *check* (if given) sees the pending set first and may refuse by raising,
    then *notify* is called once with the pending set, *install* once with the
    full set, and the call never returns normally.

    Raises:
        ExitNotification: Installation succeeded; the process must restart.
        DependencyInstallError: Installation failed or was refused. Not retried.
    """
    state = state if state is not None else InstallState()
    pending = pending_dependencies(specifiers, installed)
    state.pending = set(pending.values())
    if not pending:
        return InstallOutcome.NOOP

    if check is not None:
        check(list(pending.values()))
    install_pending(pending, install=install, notify=notify, state=state)
    raise ExitNotification(RESTART, ExitReason.RESTART_REQUIRED, "dependencies installed")


def install_pending(
    pending: Mapping[str, str],
    *,
    install: Installer,
    notify: Notify,
    state: InstallState,
) -> InstallOutcome:
    """Run the installer once for *pending*; raise on failure."""
    specs = list(pending.values())
    notify(specs)
    state.attempted.update(specs)
    state.attempt_count += 1
    result = install(specs)
    if not result.ok:
        raise DependencyInstallError(specs, result.output)
    return InstallOutcome.INSTALLED


def _default_notify(specs: Sequence[str]) -> None:
    from rich.markup import escape

    from forge.output.console import create_console

    console = create_console("auto")
    console.print(f"[info]Installing dependencies:[/info] {escape(', '.join(specs))}")


class DependencyInstaller:
    """Reconcile ``config.dependencies`` with the framework home.

    The manifest is read and written under the home's advisory lock, so two
    concurrent forge processes never install into the same target at once.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        *,
        installer: Installer | None = None,
        notify: Notify | None = None,
        log: Any = None,
    ) -> None:
        self.config = config
        self.home = ForgeHome(config.forge_home)
        self.installer: Installer = installer or PipInstaller(self.home.site_packages)
        self.notify: Notify = notify or _default_notify
        self.log = log if log is not None else structlog.get_logger("forge.dependencies")
        self.state = InstallState()

    def _check_offline(self, pending: Sequence[str]) -> None:
        if self.config.offline:
            raise DependencyInstallError(
                pending,
                "",
                message=f"Offline mode is enabled but dependencies are missing: {', '.join(pending)}",
                hint="Disable offline mode or install dependencies on a connected machine first",
            )

    def _check_mode(self, pending: Sequence[str]) -> None:
        self._check_offline(pending)
        if self.config.install_mode == "manual":
            raise DependencyInstallError(
                pending,
                "",
                message=f"Missing dependencies: {', '.join(pending)} (install them with: forge module install)",
                hint=None,
            )

    def _recording(self, manifest: InstallManifest) -> Installer:
        """Wrap the installer so a successful run is written to the manifest."""

        def install(specs: Sequence[str]) -> InstallResult:
            self.log.info("installing dependencies", dependencies=list(specs))
            result = self.installer(specs)
            if result.ok:
                manifest.with_installed({dependency_key(s): s for s in specs}).save(self.home.manifest_path)
            return result

        return install

    def ensure(self) -> InstallOutcome:
        """Install missing dependencies and request a restart.

        Raises:
            ExitNotification: Something was installed; restart required.
            DependencyInstallError: Installation failed or is not allowed
                by ``install_mode``/``offline``.
        """
        declared = self.config.dependencies
        if not declared:
            self.log.debug("no dependencies declared")
            return InstallOutcome.NOOP

        self.home.ensure()
        with file_lock(self.home.lock_path):
            manifest = InstallManifest.load(self.home.manifest_path)
            try:
                outcome = ensure_dependencies(
                    declared,
                    manifest.installed_keys(),
                    install=self._recording(manifest),
                    notify=self.notify,
                    state=self.state,
                    check=self._check_mode,
                )
            except ExitNotification:
                self.log.info("dependencies installed, restart required")
                raise
        self.log.debug("dependencies satisfied", count=len(declared))
        return outcome

    def install_declared(self) -> list[str]:
        """Install missing dependencies without requesting a restart.

        Ignores ``install_mode``; this is the manual install path. Returns
        the specifiers that were installed.
        """
        self.home.ensure()
        with file_lock(self.home.lock_path):
            manifest = InstallManifest.load(self.home.manifest_path)
            pending = pending_dependencies(self.config.dependencies, manifest.installed_keys())
            if not pending:
                return []
            self._check_offline(list(pending.values()))
            install_pending(pending, install=self._recording(manifest), notify=self.notify, state=self.state)
        return list(pending.values())
