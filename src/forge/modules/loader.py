"""Import resolved command modules and collect their commands.

Each module file is executed under a unique synthetic module name so two
projects (or a local override and its shared original) never collide in
``sys.modules``. Unlike plugin discovery, a module that fails to import is
fatal: the user asked for it by name in the project config.
"""

from __future__ import annotations

import dataclasses
import hashlib
import importlib
import importlib.util
import logging
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from forge.command import ForgeCommand
from forge.config.models import ModuleMetadata
from forge.exceptions import DuplicateCommandError, ExitNotification, ModuleLoadError
from forge.modules.resolver import ModuleDescriptor, ModuleOrigin

METADATA_ATTR = "__module__"

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"\W")


def activate_shared_path(site_packages: Path) -> None:
    """Put the shared site-packages first on ``sys.path``.

    Shared dependencies then shadow whatever the surrounding environment has
    installed under the same name.
    """
    entry = str(site_packages)
    if entry in sys.path:
        return
    sys.path.insert(0, entry)
    importlib.invalidate_caches()
    logger.debug("Activated shared modules path %s", entry)


def synthetic_module_name(descriptor: ModuleDescriptor) -> str:
    digest = hashlib.sha256(str(descriptor.resolved_path).encode()).hexdigest()[:8]
    stem = _UNSAFE_CHARS.sub("_", descriptor.specifier.strip("./")) or "module"
    return f"forge_{descriptor.origin}_{stem}_{digest}"


def read_metadata(module: ModuleType) -> ModuleMetadata:
    """Validate the module's ``__module__`` mapping, if it declares one."""
    raw: Any = vars(module).get(METADATA_ATTR)
    if raw is None:
        return ModuleMetadata()
    if isinstance(raw, ModuleMetadata):
        return raw
    if not isinstance(raw, dict):
        msg = f"{METADATA_ATTR} must be a mapping, got {type(raw).__name__}"
        raise TypeError(msg)
    return ModuleMetadata.model_validate(raw)


def describe_module(descriptor: ModuleDescriptor, module: ModuleType) -> ModuleDescriptor:
    """Return *descriptor* completed with the module's metadata and commands.

    Commands are collected in definition order. Underscore-prefixed names
    are private and skipped.
    """
    try:
        metadata = read_metadata(module)
    except (TypeError, PydanticValidationError) as exc:
        raise ModuleLoadError(descriptor.specifier, descriptor.resolved_path, str(exc)) from exc

    exports: dict[str, ForgeCommand] = {}
    for attr, value in vars(module).items():
        if attr.startswith("_") or not isinstance(value, ForgeCommand):
            continue
        name = value.name or attr
        existing = exports.get(name)
        if existing is value:
            continue
        if existing is not None:
            raise DuplicateCommandError(name, None, descriptor.specifier, descriptor.specifier)
        exports[name] = value

    logger.debug(
        "Module %s exports %d command(s): %s",
        descriptor.specifier,
        len(exports),
        ", ".join(exports) or "(none)",
    )
    return dataclasses.replace(descriptor, exports=exports, metadata=metadata)


def load_module(descriptor: ModuleDescriptor) -> ModuleDescriptor:
    """Execute the module file and collect its commands.

    Raises:
        ModuleLoadError: The file failed to import or has invalid metadata.
    """
    path = descriptor.resolved_path
    module_name = synthetic_module_name(descriptor)
    search_locations = [str(path.parent)] if path.name == "__init__.py" else None

    spec = importlib.util.spec_from_file_location(
        module_name, path, submodule_search_locations=search_locations
    )
    if spec is None or spec.loader is None:
        raise ModuleLoadError(descriptor.specifier, path, "could not create a module spec")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except ExitNotification:
        sys.modules.pop(module_name, None)
        raise
    except Exception as exc:
        # Clean up partial module registration
        sys.modules.pop(module_name, None)
        raise ModuleLoadError(descriptor.specifier, path, f"{type(exc).__name__}: {exc}") from exc

    logger.debug("Loaded module %s from %s", descriptor.specifier, path)
    return describe_module(descriptor, module)


def load_builtin(module: ModuleType) -> ModuleDescriptor:
    """Describe one of forge's own, already-imported command modules."""
    descriptor = ModuleDescriptor(
        specifier=module.__name__,
        resolved_path=Path(getattr(module, "__file__", None) or module.__name__),
        origin=ModuleOrigin.BUILTIN,
    )
    return describe_module(descriptor, module)
