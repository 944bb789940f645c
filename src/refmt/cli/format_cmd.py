"""CLI command handlers for format.* operations."""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import Annotated, Any

from cyclopts import Parameter

from refmt.lib.ops.format import (
    FormatInput,
    FormatOutput,
    format_apply_sync,
    format_check_sync,
)

Emitter = Callable[[Any], None]


def _payload(
    path: str,
    formatters: tuple[str, ...],
    stop_after_first: bool,
    timeout_ms: int | None,
    lines: str | None,
    quiet: bool,
) -> FormatInput:
    start_line: int | None = None
    end_line: int | None = None
    if lines is not None:
        start_raw, sep, end_raw = lines.partition(":")
        try:
            start_line = int(start_raw) if start_raw.strip() else None
            if not sep:
                end_line = start_line
            elif end_raw.strip():
                end_line = int(end_raw)
        except ValueError as error:
            raise ValueError(f"Invalid --lines value {lines!r}; expected START:END.") from error
    return FormatInput(
        path=path,
        formatters=formatters,
        stop_after_first=stop_after_first,
        timeout_ms=timeout_ms,
        start_line=start_line,
        end_line=end_line,
        quiet=quiet,
    )


def _exit_for(output: FormatOutput, *, check: bool) -> None:
    if output.error is not None:
        raise SystemExit(2 if check else 1)
    if check and output.changed:
        raise SystemExit(1)


def _format_command(
    emit: Emitter,
    sync_handler: Callable[[FormatInput], FormatOutput],
    check: bool,
    path: str,
    formatter: Annotated[
        tuple[str, ...],
        Parameter(
            name=["--formatter", "-f"],
            help="Formatter to run, in order (repeatable).",
            negative_iterable=(),
        ),
    ] = (),
    stop_after_first: Annotated[
        bool,
        Parameter(name="--stop-after-first", help="Run only the first available formatter."),
    ] = False,
    timeout_ms: Annotated[
        int | None,
        Parameter(name="--timeout-ms", help="Wall-clock budget for the whole pipeline."),
    ] = None,
    lines: Annotated[
        str | None,
        Parameter(name="--lines", help="Restrict range-aware formatters to START:END lines."),
    ] = None,
    quiet: Annotated[
        bool,
        Parameter(name="--quiet", help="Suppress formatter notifications."),
    ] = False,
) -> None:
    output = sync_handler(_payload(path, formatter, stop_after_first, timeout_ms, lines, quiet))
    emit(output)
    _exit_for(output, check=check)


def format_commands(emit: Emitter) -> dict[str, Callable[..., None]]:
    """CLI handlers for the format.* operations, keyed by operation name."""

    return {
        "format.apply": partial(_format_command, emit, format_apply_sync, False),
        "format.check": partial(_format_command, emit, format_check_sync, True),
    }
