"""Command modules: specifier resolution and in-process loading."""

from forge.modules.loader import activate_shared_path, load_builtin, load_module
from forge.modules.resolver import ModuleDescriptor, ModuleOrigin, resolve_module

__all__ = [
    "ModuleDescriptor",
    "ModuleOrigin",
    "activate_shared_path",
    "load_builtin",
    "load_module",
    "resolve_module",
]
