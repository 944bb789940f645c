"""Text rendering protocol shared by output dataclasses and the CLI."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from itertools import zip_longest
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class FormatContext:
    """Rendering knobs passed to ``format_text``."""

    verbosity: int = 0
    width: int = 80


@runtime_checkable
class TextFormattable(Protocol):
    def format_text(self, ctx: FormatContext | None = None) -> str: ...


def align_columns(
    rows: Sequence[Sequence[str]],
    *,
    gap: int = 2,
    width: int | None = None,
) -> str:
    """Left-align ``rows`` into columns, cutting lines longer than ``width``.

    >>> align_columns([["black", "yes"], ["prettier", "no"]])
    'black     yes\\nprettier  no'
    """

    widths = [max(map(len, column)) for column in zip_longest(*rows, fillvalue="")]
    lines: list[str] = []
    for row in rows:
        line = (" " * gap).join(cell.ljust(size) for cell, size in zip(row, widths)).rstrip()
        if width is not None and len(line) > width:
            line = line[: max(width - 3, 0)] + "..."
        lines.append(line)
    return "\n".join(lines)
