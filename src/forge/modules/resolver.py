"""Map module specifiers to files, local first, then shared.

Priority order:
  1. Local: specifiers starting with ``.`` resolve against the project's
     ``.forge/`` directory (``./website`` -> ``.forge/website.py``).
  2. Shared: anything else is a package path under the framework home's
     ``site-packages`` (``acme.tools`` or ``acme/tools``). The same path
     under ``.forge/`` is probed first.

Local always shadows shared, so a module can be overridden during
development without touching the installed copy. Nothing is cached; every
call probes the filesystem as it is at that moment.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from forge.config.models import ModuleMetadata
from forge.exceptions import UnresolvedModuleError
from forge.infrastructure.home import ForgeHome

if TYPE_CHECKING:
    from forge.command import ForgeCommand
    from forge.config.settings import ResolvedConfig

logger = logging.getLogger(__name__)

_SEGMENT_SPLIT = re.compile(r"[./]")


class ModuleOrigin(StrEnum):
    LOCAL = "local"
    SHARED = "shared"
    BUILTIN = "builtin"


@dataclass(frozen=True)
class ModuleDescriptor:
    """A resolved command module.

    The resolver fills in location fields; :func:`forge.modules.loader.load_module`
    returns a copy with ``exports`` and ``metadata`` populated.
    """

    specifier: str
    resolved_path: Path
    origin: ModuleOrigin
    exports: Mapping[str, ForgeCommand] = field(default_factory=dict)
    metadata: ModuleMetadata = field(default_factory=ModuleMetadata)

    @property
    def group_override(self) -> str | bool | None:
        return self.metadata.group


def candidate_paths(base: Path) -> list[Path]:
    """Probe order for one base path: exact file, ``.py`` file, package directory."""
    return [base, base.with_name(base.name + ".py"), base / "__init__.py"]


def _first_existing(candidates: list[Path]) -> Path | None:
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def is_local_specifier(specifier: str) -> bool:
    return specifier.startswith(".")


def shared_base(specifier: str, site_packages: Path) -> Path | None:
    """Base path for a shared specifier, or None if it is not a package path."""
    segments = _SEGMENT_SPLIT.split(specifier)
    if not segments or any(not s for s in segments):
        return None
    return site_packages.joinpath(*segments)


def resolve_module(specifier: str, config: ResolvedConfig) -> ModuleDescriptor:
    """Resolve *specifier* to a loadable file.

    Raises:
        UnresolvedModuleError: Neither location has the module; the error
            lists every path that was probed.
    """
    searched: list[Path] = []

    if is_local_specifier(specifier):
        if config.forge_dir is not None:
            candidates = candidate_paths((config.forge_dir / specifier).resolve())
            searched.extend(candidates)
            found = _first_existing(candidates)
            if found is not None:
                logger.debug("Resolved %s locally: %s", specifier, found)
                return ModuleDescriptor(specifier, found, ModuleOrigin.LOCAL)
        raise UnresolvedModuleError(specifier, searched)

    # A project copy of a shared package path wins over the installed one.
    if config.forge_dir is not None:
        local_base = shared_base(specifier, config.forge_dir)
        if local_base is not None:
            candidates = candidate_paths(local_base)
            searched.extend(candidates)
            found = _first_existing(candidates)
            if found is not None:
                logger.debug("Resolved %s to local override: %s", specifier, found)
                return ModuleDescriptor(specifier, found, ModuleOrigin.LOCAL)

    base = shared_base(specifier, ForgeHome(config.forge_home).site_packages)
    if base is not None:
        candidates = candidate_paths(base)
        searched.extend(candidates)
        found = _first_existing(candidates)
        if found is not None:
            logger.debug("Resolved %s from shared modules: %s", specifier, found)
            return ModuleDescriptor(specifier, found, ModuleOrigin.SHARED)

    raise UnresolvedModuleError(specifier, searched)
