"""CLI command handlers for formatters.* operations."""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from typing import Annotated, Any

from cyclopts import Parameter

from refmt.lib.ops.formatters import (
    FormattersInfoInput,
    FormattersListInput,
    FormattersPlanInput,
    formatters_info_sync,
    formatters_list_sync,
    formatters_plan_sync,
)

Emitter = Callable[[Any], None]


def _formatters_list(
    emit: Emitter,
    formatter: Annotated[
        tuple[str, ...],
        Parameter(
            name=["--formatter", "-f"],
            help="Limit the listing to these formatters (repeatable).",
            negative_iterable=(),
        ),
    ] = (),
    path: Annotated[
        str | None,
        Parameter(name="--path", help="File whose directory drives cwd resolution."),
    ] = None,
) -> None:
    emit(formatters_list_sync(FormattersListInput(path=path, formatters=formatter)))


def _formatters_plan(
    emit: Emitter,
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
) -> None:
    emit(
        formatters_plan_sync(
            FormattersPlanInput(
                path=path,
                formatters=formatter,
                stop_after_first=stop_after_first,
            )
        )
    )


def _formatters_info(
    emit: Emitter,
    name: str,
    path: Annotated[
        str | None,
        Parameter(name="--path", help="File whose directory drives cwd resolution."),
    ] = None,
) -> None:
    emit(formatters_info_sync(FormattersInfoInput(name=name, path=path)))


def formatters_commands(emit: Emitter) -> dict[str, Callable[..., None]]:
    return {
        "formatters.list": partial(_formatters_list, emit),
        "formatters.plan": partial(_formatters_plan, emit),
        "formatters.info": partial(_formatters_info, emit),
    }
