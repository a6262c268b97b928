"""structlog configuration for forge.

Two output modes:
- pretty (default): colored console output to stderr
- json (--log-format json): structured JSON lines to stderr

Everything before :func:`configure_logging` runs uses :func:`forge.trace.trace`
instead of a logger.
"""

from __future__ import annotations

import logging
import sys

import structlog

from forge.config.models import ColorMode, LogFormat

TRACE = 5
SILENT = logging.CRITICAL + 10

_LEVELS: dict[str, int] = {
    "silent": SILENT,
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

logging.addLevelName(TRACE, "TRACE")


def level_number(level: str) -> int:
    """Numeric stdlib level for a normalized forge level name."""
    return _LEVELS[level]


def use_color(color: ColorMode, stream: object = None) -> bool:
    if color == "always":
        return True
    if color == "never":
        return False
    stream = stream if stream is not None else sys.stderr
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def configure_logging(
    level: str = "info",
    log_format: LogFormat = "pretty",
    color: ColorMode = "auto",
) -> None:
    """Configure structlog processors and output routing.

    Safe to call more than once; the root handler is replaced, not stacked.

    Args:
        level: Normalized level name for the ``forge`` logger. ``silent``
            suppresses forge's log output entirely.
        log_format: ``json`` for JSON lines, ``pretty`` for console output.
        color: Color mode for the console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=use_color(color))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    forge_logger = logging.getLogger("forge")
    forge_logger.setLevel(level_number(level))
    forge_logger.disabled = level == "silent"


def get_logger(name: str, **context: object) -> structlog.stdlib.BoundLogger:
    """A structlog logger under the ``forge`` hierarchy, bound to *context*."""
    logger_name = name if name == "forge" or name.startswith("forge.") else f"forge.{name}"
    return structlog.get_logger(logger_name).bind(**context)
