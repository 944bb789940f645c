"""Core domain models for formatting runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from refmt.lib.types import TargetId

if TYPE_CHECKING:
    from refmt.lib.errors import FormatError
    from refmt.lib.formatters.spec import FormatterSpec

SelectionMode = Literal["v", "V"]

# Field metadata flag read by `refmt.lib.serialization.to_jsonable`.
NOT_SERIALIZED = {"serialize": False}


@dataclass(frozen=True, slots=True)
class Range:
    """Half-open text range using (1, 0) indexing: rows from 1, columns from 0."""

    start: tuple[int, int]
    end: tuple[int, int]

    def normalized(self) -> Range:
        if self.end < self.start:
            return Range(start=self.end, end=self.start)
        return self

    def contains_row(self, row: int) -> bool:
        return self.start[0] <= row <= self.end[0]


def range_from_selection(
    start: tuple[int, int],
    end: tuple[int, int],
    mode: SelectionMode,
    end_line_length: int = 0,
) -> Range:
    """Build a range from visual selection marks.

    Marks are (row, col) pairs with both row and column 1-indexed. The user may
    start a selection at the end and move backwards, so the pair is normalized
    to start <= end first. Linewise selections (``V``) always span whole lines.
    """

    start_row, start_col = start
    end_row, end_col = end
    if start_row == end_row and end_col < start_col:
        start_col, end_col = end_col, start_col
    elif end_row < start_row:
        start_row, end_row = end_row, start_row
        start_col, end_col = end_col, start_col

    if mode == "V":
        start_col = 1
        end_col = end_line_length

    return Range(start=(start_row, start_col - 1), end=(end_row, end_col - 1))


@dataclass(frozen=True, slots=True)
class TargetMetadata:
    """Host-provided metadata for one target."""

    path: str
    shiftwidth: int = 4


@dataclass(frozen=True, slots=True)
class Context:
    """Read-only snapshot of a target taken at the start of a run."""

    target: TargetId
    filename: str
    dirname: str
    range: Range | None = None
    shiftwidth: int = 4


@dataclass(frozen=True, slots=True)
class FormatterInfo:
    """Resolved, queryable view of one formatter for one context."""

    name: str
    command: str
    available: bool
    cwd: str | None = None
    available_msg: str | None = None
    error: bool = False
    spec: FormatterSpec | None = field(
        default=None, repr=False, compare=False, metadata=NOT_SERIALIZED
    )


@dataclass(frozen=True, slots=True)
class RunOptions:
    exclusive: bool = True
    dry_run: bool = False
    undojoin: bool = False


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of one pipeline run."""

    error: FormatError | None = None
    did_edit: bool = False
    text: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def split_lines(text: str) -> tuple[list[str], bool]:
    """Split text into lines, reporting whether it ended with a newline."""

    lines = text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
        return lines, True
    return lines, False


def join_lines(lines: list[str], trailing_newline: bool) -> str:
    text = "\n".join(lines)
    if trailing_newline and lines:
        return text + "\n"
    return text
