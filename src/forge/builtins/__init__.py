"""Commands that ship with forge itself."""

from forge.builtins import core, module

BUILTIN_MODULES = (core, module)

__all__ = ["BUILTIN_MODULES"]
