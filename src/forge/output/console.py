"""Rich Console factory and theme for forge output.

Consoles write to the live ``sys.stderr``/``sys.stdout`` at print time, so
output captured by test runners lands where expected. In non-TTY
environments rich disables color codes unless the color mode is ``always``.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

from forge.config.models import ColorMode

FORGE_THEME = Theme(
    {
        "error": "bold red",
        "warning": "bold yellow",
        "hint": "dim",
        "info": "bold cyan",
        "ok": "bold green",
        "group": "bold",
        "command": "cyan",
        "path": "dim",
    }
)


def create_console(
    color_mode: ColorMode = "auto",
    *,
    stderr: bool = True,
    width: int | None = None,
) -> Console:
    """Create a Console honoring *color_mode*.

    Args:
        color_mode: ``always`` forces ANSI output, ``never`` strips it and
            ``auto`` leaves the decision to terminal detection.
        stderr: Write to stderr (default) instead of stdout.
        width: Override terminal width (useful for consistent test output).
    """
    return Console(
        stderr=stderr,
        theme=FORGE_THEME,
        force_terminal=True if color_mode == "always" else None,
        no_color=color_mode == "never",
        highlight=False,
        soft_wrap=True,
        width=width,
    )


def print_error(console: Console, message: str, hint: str | None = None) -> None:
    """Render ``ERROR: message`` and an optional hint line."""
    console.print(f"[error]ERROR:[/error] {escape(message)}")
    if hint:
        console.print(f"[hint]{escape(hint)}[/hint]")
