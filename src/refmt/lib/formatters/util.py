"""Helpers used by formatter definitions."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from refmt.lib.domain import Context


def find_upwards(names: Sequence[str], start: str | Path) -> Path | None:
    """Return the first directory at or above ``start`` containing one of ``names``."""

    current = Path(start).expanduser().resolve()
    for directory in (current, *current.parents):
        for name in names:
            if (directory / name).exists():
                return directory
    return None


def root_file(names: Sequence[str]) -> Callable[[Any, Context], str | None]:
    """Build a ``cwd`` resolver locating the nearest directory with a marker file."""

    markers = tuple(names)

    def _resolve(_spec: Any, ctx: Context) -> str | None:
        found = find_upwards(markers, ctx.dirname)
        return found.as_posix() if found is not None else None

    return _resolve


def line_range_args(*templates: str) -> Callable[[Any, Context], list[str]]:
    """Build ``range_args`` from templates with ``{start}``/``{end}`` line placeholders."""

    def _args(_spec: Any, ctx: Context) -> list[str]:
        if ctx.range is None:
            return []
        start, end = ctx.range.start[0], ctx.range.end[0]
        return [template.format(start=start, end=end) for template in templates]

    return _args
