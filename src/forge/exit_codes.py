"""Exit-code constants shared by the dispatcher and the launcher.

Every process exit goes through one of these values so the launcher and
scripts wrapping ``forge`` can rely on them.
"""

from __future__ import annotations

SUCCESS: int = 0
"""Command completed, or help/version was shown."""

USER_ERROR: int = 1
"""Config, module, dependency, registration or argument validation failure."""

INTERNAL_ERROR: int = 2
"""An unclassified exception escaped every known error boundary."""

RESTART: int = 42
"""Dependencies were installed; the launcher must re-execute the CLI."""

INTERRUPTED: int = 130
"""User pressed Ctrl+C (128 + SIGINT)."""
