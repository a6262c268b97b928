"""Minimal synchronous trace output for the phases that run before logging.

The bootstrap parser and config resolver execute before structlog is
configured, so they write here instead. Output is enabled by the
``FORGE_DEBUG`` environment variable and goes straight to stderr.
"""

from __future__ import annotations

import os
import sys

TRACE_ENV_VAR = "FORGE_DEBUG"


def trace_enabled() -> bool:
    return os.environ.get(TRACE_ENV_VAR, "").lower() not in ("", "0", "false", "no")


def trace(name: str, message: str, *args: object) -> None:
    """Write ``[name] message`` to stderr when tracing is enabled."""
    if not trace_enabled():
        return
    text = message % args if args else message
    sys.stderr.write(f"[trace {name}] {text}\n")
    sys.stderr.flush()
