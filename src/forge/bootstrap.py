"""Bootstrap parsing: pull global options out of raw arguments before any config exists.

Runs a throwaway click command that ignores unknown options and stops at the
first positional argument (the command name), so subcommand flags are never
mistaken for global ones. Nothing here may fail: anything the permissive
parse cannot make sense of is dropped and left for the full parser in
:mod:`forge.cli` to reject.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import click
from pydantic import BaseModel, Field

from forge.config.models import ColorMode, LogFormat, normalize_color_mode, normalize_log_level
from forge.trace import trace


class BootstrapOptions(BaseModel):
    """Global flags as given on the command line.

    Value options stay ``None`` when absent so the config resolver can tell
    "not given" apart from "given as the default" when layering.
    """

    model_config = {"frozen": True}

    debug: bool = False
    quiet: bool = False
    silent: bool = False
    log_level: str | None = None
    log_format: LogFormat | None = None
    color_mode: ColorMode | None = None
    root: Path | None = None
    user_dir: Path = Field(default_factory=Path.cwd)
    command_words: tuple[str, ...] = ()
    """Up to two leading positionals: the command, or group and command."""


def _bootstrap_command() -> click.Command:
    return click.Command(
        "forge",
        params=[
            click.Option(["-r", "--root"], type=click.Path(path_type=Path)),
            click.Option(["-d", "--debug"], is_flag=True),
            click.Option(["-q", "--quiet"], is_flag=True),
            click.Option(["-s", "--silent"], is_flag=True),
            click.Option(["--log-level"]),
            click.Option(["--log-format"]),
            click.Option(["--color"]),
            click.Option(["--no-color"], is_flag=True),
        ],
        add_help_option=False,
        context_settings={
            "ignore_unknown_options": True,
            "allow_extra_args": True,
            "allow_interspersed_args": False,
        },
    )


def parse_bootstrap(raw_args: Sequence[str]) -> BootstrapOptions:
    """Extract bootstrap options from *raw_args*; never raises on bad input."""
    trace("bootstrap", "args: %r", list(raw_args))
    try:
        ctx = _bootstrap_command().make_context("forge", list(raw_args), resilient_parsing=True)
    except click.ClickException as exc:
        trace("bootstrap", "permissive parse gave up (%s); using defaults", exc.format_message())
        return BootstrapOptions()

    params = ctx.params
    log_level = normalize_log_level(params.get("log_level"))
    if params.get("log_level") is not None and log_level is None:
        trace("bootstrap", "ignoring unknown --log-level %r", params["log_level"])

    log_format = params.get("log_format")
    if log_format not in (None, "json", "pretty"):
        trace("bootstrap", "ignoring unknown --log-format %r", log_format)
        log_format = None

    color_mode = "never" if params.get("no_color") else normalize_color_mode(params.get("color"))

    options = BootstrapOptions(
        debug=bool(params.get("debug")),
        quiet=bool(params.get("quiet")),
        silent=bool(params.get("silent")),
        log_level=log_level,
        log_format=log_format,
        color_mode=color_mode,
        root=params.get("root"),
        command_words=tuple(arg for arg in ctx.args if not arg.startswith("-"))[:2],
    )
    trace("bootstrap", "options: %r", options)
    return options
