"""Cyclopts CLI entry point for refmt."""

from __future__ import annotations

import sys
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

from cyclopts import App, Parameter

from refmt import __version__
from refmt.cli.format_cmd import format_commands
from refmt.cli.formatters_cmd import formatters_commands
from refmt.cli.output import OutputMode, render
from refmt.lib.ops import get_all_operations

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    output: OutputMode = OutputMode.TEXT
    verbosity: int = 0


_GLOBAL_OPTIONS: ContextVar[GlobalOptions] = ContextVar("_GLOBAL_OPTIONS", default=GlobalOptions())


def emit(payload: object) -> None:
    """Print an operation output in the mode chosen by the global flags."""

    print(render(payload, _GLOBAL_OPTIONS.get().output))


def split_global_options(argv: Sequence[str]) -> tuple[list[str], GlobalOptions]:
    """Pull output and verbosity flags out of ``argv``, wherever they appear.

    Everything after ``--`` is passed through untouched.
    """

    output = OutputMode.TEXT
    explicit: OutputMode | None = None
    verbosity = 0
    rest: list[str] = []
    args = iter(argv)
    for arg in args:
        if arg == "--":
            rest.append(arg)
            rest.extend(args)
            break
        if arg == "--json":
            explicit = OutputMode.JSON
        elif arg == "--porcelain":
            explicit = explicit or OutputMode.PORCELAIN
        elif arg in ("-v", "--verbose"):
            verbosity += 1
        elif arg == "-vv":
            verbosity += 2
        elif arg == "--format":
            value = next(args, None)
            if value is None:
                raise SystemExit("--format requires a value")
            output = OutputMode.parse(value)
        elif arg.startswith("--format="):
            output = OutputMode.parse(arg.partition("=")[2])
        else:
            rest.append(arg)
    return rest, GlobalOptions(output=explicit or output, verbosity=verbosity)


app = App(
    name="refmt",
    help="Run formatter pipelines over files.",
    version=__version__,
    help_formatter="plain",
)


@app.default
def root(
    json_mode: Annotated[
        bool,
        Parameter(name="--json", help="Emit command output as JSON."),
    ] = False,
    output_format: Annotated[
        str | None,
        Parameter(name="--format", help="Set output format: text, json, or porcelain."),
    ] = None,
    porcelain: Annotated[
        bool,
        Parameter(name="--porcelain", help="Emit one tab-separated key=value line per record."),
    ] = False,
    verbose: Annotated[
        bool,
        Parameter(name=["--verbose", "-v"], help="Log more detail to stderr (repeatable)."),
    ] = False,
) -> None:
    """Global options; they are accepted before or after the command."""

    _ = (json_mode, output_format, porcelain, verbose)
    app.help_print()


@app.command(name="serve")
def serve() -> None:
    """Start the MCP server on stdio."""

    from refmt.server.main import run_server

    run_server()


_GROUPS = {
    "format": App(name="format", help="Format files", help_formatter="plain"),
    "formatters": App(name="formatters", help="Formatter catalog commands", help_formatter="plain"),
}
for _name, _group in _GROUPS.items():
    app.command(_group, name=_name)

_CLI_COMMANDS: dict[str, str] = {}
_CLI_DESCRIPTIONS: dict[str, str] = {}


def _register_operations(handlers: dict[str, Callable[..., None]]) -> None:
    for op in get_all_operations():
        handler = handlers.get(op.name)
        if handler is None:
            raise ValueError(f"No CLI handler registered for operation '{op.name}'")
        handler.__name__ = f"cmd_{op.mcp_name}"  # type: ignore[attr-defined]
        _GROUPS[op.cli_group].command(handler, name=op.cli_name, help=op.description)
        _CLI_COMMANDS[f"{op.cli_group}.{op.cli_name}"] = op.name
        _CLI_DESCRIPTIONS[op.name] = op.description


def get_registered_cli_commands() -> set[str]:
    return set(_CLI_COMMANDS)


def get_registered_cli_descriptions() -> dict[str, str]:
    return dict(_CLI_DESCRIPTIONS)


def _error_text(exc: Exception) -> str:
    if isinstance(exc, KeyError) and exc.args:
        return str(exc.args[0])
    return str(exc).strip() or type(exc).__name__


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for ``refmt`` and ``python -m refmt``."""

    from refmt.lib.logging import configure_logging

    args, options = split_global_options(sys.argv[1:] if argv is None else argv)
    configure_logging(json_mode=options.output is OutputMode.JSON, verbosity=options.verbosity)

    token = _GLOBAL_OPTIONS.set(options)
    try:
        app(args)
    except TimeoutError as exc:
        print(f"error: {_error_text(exc)}", file=sys.stderr)
        raise SystemExit(124) from None
    except (KeyError, ValueError, OSError) as exc:
        print(f"error: {_error_text(exc)}", file=sys.stderr)
        raise SystemExit(1) from None
    finally:
        _GLOBAL_OPTIONS.reset(token)


_register_operations({**format_commands(emit), **formatters_commands(emit)})
